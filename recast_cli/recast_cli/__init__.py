"""Recast operator CLI."""

__version__ = "0.3.0"
