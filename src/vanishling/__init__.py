"""Ephemeral content-addressed file store with journal-backed TTL expiry."""

__version__ = "1.0.0"
