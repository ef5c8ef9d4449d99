"""Local in-memory query cache implementation.

Simple dict-based cache suitable for single-process use and testing.

Usage:
    cache = InMemoryQueryCache(stale_time=30.0)
    cache.set(("requirement", "detail", 1), entity)
    cache.invalidate(("requirement",))
"""

from __future__ import annotations

import copy as cp
import time
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from entityspace.cache.keys import matches_prefix
from entityspace.core.types import QueryKey


@dataclass(slots=True)
class CacheEntry:
    """Stored value with freshness metadata."""

    value: Any
    updated_at: float
    stale: bool = False


class InMemoryQueryCache:
    """In-memory cache keyed by query tuples.

    Structure:
        _entries[key] = CacheEntry(value, updated_at, stale)

    Values are copied on the way in and out so callers never share state
    with the cache.

    Args:
        stale_time: Seconds after which an entry counts as stale.
        clock: Time source returning seconds; defaults to time.monotonic.
        history: Number of recent invalidation prefixes kept in ``invalidations``.
    """

    def __init__(
        self,
        stale_time: float = 30.0,
        clock: Callable[[], float] | None = None,
        history: int = 100,
    ):
        self.stale_time = stale_time
        self._clock = clock or time.monotonic
        self._entries: dict[QueryKey, CacheEntry] = {}
        self.invalidations: deque[QueryKey] = deque(maxlen=history)
        """Most recent prefixes passed to invalidate(), oldest first."""

    def get(self, key: QueryKey) -> Any | None:
        """Get a copy of the value stored under a key.

        Args:
            key: Exact cache key.

        Returns:
            Copy of the stored value, or None if absent.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        return cp.deepcopy(entry.value)

    def set(self, key: QueryKey, value: Any) -> None:
        """Store a copy of a value and mark it fresh.

        Args:
            key: Exact cache key.
            value: Value to store.
        """
        self._entries[key] = CacheEntry(value=cp.deepcopy(value), updated_at=self._clock())

    def remove(self, key: QueryKey) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every entry under a prefix stale.

        Args:
            prefix: Key prefix; ``()`` matches everything.

        Returns:
            Number of entries marked.
        """
        self.invalidations.append(prefix)
        count = 0
        for key, entry in self._entries.items():
            if matches_prefix(key, prefix):
                entry.stale = True
                count += 1
        return count

    def keys(self, prefix: QueryKey = ()) -> Iterator[QueryKey]:
        for key in list(self._entries):
            if matches_prefix(key, prefix):
                yield key

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        return entry.stale or self._clock() - entry.updated_at >= self.stale_time

    def clear(self) -> None:
        self._entries.clear()
        self.invalidations.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
