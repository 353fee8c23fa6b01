"""Utility modules for sqloflow."""
