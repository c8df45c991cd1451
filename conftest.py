"""Lets the test suite import the top-level packages from a source checkout."""
