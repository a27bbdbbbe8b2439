"""Bundled rule sets."""
