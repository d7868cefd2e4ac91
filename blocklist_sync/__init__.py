"""Keep a blocked-users list consistent between a synchronized key-value store and a remote API."""

__version__ = "1.0.0"
