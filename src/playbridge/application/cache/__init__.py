"""Cache abstractions injected into adapters and services."""

from playbridge.application.cache.base_cache import BaseCache, CacheEntry, InMemoryCache

__all__ = ["BaseCache", "CacheEntry", "InMemoryCache"]
