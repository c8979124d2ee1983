"""Offline-first sync core and integration adapters for Homestead."""

__version__ = "1.0.0"
