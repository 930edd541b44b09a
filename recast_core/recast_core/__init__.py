"""Recast core: record store, entitlement engine, usage recorder and billing reconciler."""

__version__ = "0.3.0"
