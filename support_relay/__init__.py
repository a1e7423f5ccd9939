"""Realtime relay between customers and support managers."""

__version__ = "1.0.0"
