"""Deduplicating work queue for executable actions."""

__version__ = "0.1.0"
