"""Tillpoint: order lifecycle and shift reconciliation backend."""

__version__ = "1.0.0"
