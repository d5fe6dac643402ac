"""Base cache interface and in-memory implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry[V]:
    """Cache entry with value and metadata."""

    value: V
    created_at: float
    ttl_seconds: int

    # Uses time.monotonic(), so wall clock jumps don't expire entries early.
    def is_expired(self) -> bool:
        """Check if cache entry is expired."""
        return time.monotonic() > (self.created_at + self.ttl_seconds)


class BaseCache[V](ABC):
    """Base cache interface with string keys.

    Keys are namespaced strings like ``catalog:navidrome:<query>`` so a whole
    namespace can be dropped with delete_prefix().
    """

    @abstractmethod
    async def get(self, key: str) -> V | None:
        """Get value from cache.

        Returns:
            Cached value if found and not expired, None otherwise
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: V, ttl_seconds: int | None = None) -> None:
        """Set value in cache."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete value from cache.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix.

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all entries from cache."""
        pass


class InMemoryCache[V](BaseCache[V]):
    """In-memory cache implementation using a dictionary.

    Process-local: every worker process has its own copy.
    """

    # Hey future me, _lock guards EVERY touch of _cache. get() deletes expired
    # entries on read, so even reads mutate the dict.
    def __init__(self, default_ttl: int = 300) -> None:
        self._cache: dict[str, CacheEntry[V]] = {}
        self._lock = asyncio.Lock()
        self._default_ttl = default_ttl

    async def get(self, key: str) -> V | None:
        """Get value from cache."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            return entry.value

    async def set(self, key: str, value: V, ttl_seconds: int | None = None) -> None:
        """Set value in cache, overwriting any existing entry."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        async with self._lock:
            self._cache[key] = CacheEntry(
                value=value,
                created_at=time.monotonic(),
                ttl_seconds=ttl,
            )

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix."""
        async with self._lock:
            doomed = [key for key in self._cache if key.startswith(prefix)]
            for key in doomed:
                del self._cache[key]
            return len(doomed)

    async def clear(self) -> None:
        """Clear all entries from cache."""
        async with self._lock:
            self._cache.clear()

    async def cleanup_expired(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            expired_keys = [
                key for key, entry in self._cache.items() if entry.is_expired()
            ]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics (unlocked, for monitoring only)."""
        total_entries = len(self._cache)
        expired_entries = sum(1 for entry in self._cache.values() if entry.is_expired())
        return {
            "total_entries": total_entries,
            "active_entries": total_entries - expired_entries,
            "expired_entries": expired_entries,
        }
