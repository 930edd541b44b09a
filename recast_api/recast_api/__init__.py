"""Recast HTTP API: content repurposing, history and Stripe billing endpoints."""

__version__ = "0.3.0"
