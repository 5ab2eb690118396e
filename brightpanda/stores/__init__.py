"""Persistent stores used across scans."""

from .change_cache import CacheEntry, CacheStats, ChangeCache

__all__ = ["CacheEntry", "CacheStats", "ChangeCache"]
