"""
Batch conformance pipeline and landing-file readers.
"""
