"""Utility module for the completer package."""
