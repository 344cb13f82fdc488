"""
Retail conformance engine.

Turns untyped retail extracts (POS, e-commerce, inventory, returns,
product and store masters) into flagged clean records, surrogate-keyed
dimensions and grain-unique fact tables.
"""

__version__ = "0.1.0"
