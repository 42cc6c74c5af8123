"""Storage module for the response cache and the exclusion list."""

from property_finder.storage.cache import CacheStore, MemoryCache, SQLiteCache
from property_finder.storage.exclusions import SQLiteExclusionStore

__all__ = ["CacheStore", "MemoryCache", "SQLiteCache", "SQLiteExclusionStore"]
