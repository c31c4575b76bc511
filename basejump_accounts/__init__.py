"""Multi-tenant account and membership management."""

__version__ = "0.1.0"
