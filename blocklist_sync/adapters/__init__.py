"""Adapters for external systems: the remote blocklist service."""
