"""Incremental service, endpoint and dependency extraction for polyglot repositories."""

__version__ = "1.0.0"
