"""Query cache protocol for swappable backends.

The cache layer abstracts where query results live, enabling:
- Local in-memory (default)
- Shared/persistent caches supplied by the host application

Keys are ordered tuples; invalidation works on key prefixes.

Usage:
    cache = InMemoryQueryCache()
    manager = CacheManager(adapter, cache)
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from entityspace.core.types import QueryKey


@runtime_checkable
class QueryCache(Protocol):
    """Abstract query cache. Implementations handle actual data."""

    def get(self, key: QueryKey) -> Any | None:
        """Get the value stored under an exact key."""
        ...

    def set(self, key: QueryKey, value: Any) -> None:
        """Store a value under an exact key, marking it fresh."""
        ...

    def remove(self, key: QueryKey) -> bool:
        """Remove an exact key. Returns True if it existed."""
        ...

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every entry under a key prefix stale. Returns the number marked."""
        ...

    def keys(self, prefix: QueryKey = ()) -> Iterator[QueryKey]:
        """Iterate stored keys under a prefix."""
        ...

    def is_stale(self, key: QueryKey) -> bool:
        """Check if a key is missing, invalidated, or older than the stale time."""
        ...

    def __contains__(self, key: object) -> bool:
        """Check if an exact key is stored, whatever its value."""
        ...
