"""Aggregate exchange and on-chain crypto holdings into one portfolio view."""

__version__ = "0.1.0"
