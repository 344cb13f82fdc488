"""Packaged configuration files (conformance rule set)."""
