"""In-memory TTL cache for listing query results."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from catalog.schemas import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")


class QueryCache(Generic[T]):
    """Maps a filter signature to a result set for ``ttl`` seconds.

    Expired entries are never swept; they stay in place until the next
    :meth:`set` for the same key overwrites them. :meth:`get` treats them as a
    miss, while :meth:`peek` still returns them.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            ttl: Seconds an entry is served after it was stored
            clock: Monotonic time source
        """
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> CacheEntry[T] | None:
        """Get a fresh entry by key.

        Args:
            key: Cache key to lookup

        Returns:
            The entry, or None if absent or expired
        """
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            self._misses += 1
            return None
        self._hits += 1
        return entry

    def peek(self, key: str) -> CacheEntry[T] | None:
        """Return the stored entry without checking its age."""
        return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        return entry.is_fresh(self._clock(), self.ttl)

    def set(self, key: str, data: T) -> CacheEntry[T]:
        entry = CacheEntry(data=data, timestamp=self._clock())
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        """Drop one entry.

        Returns:
            Whether an entry was removed
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
        }
