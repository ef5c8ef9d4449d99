"""Query cache: key normalization, invalidation planning and optimistic patches.

Provides:
- QueryCache: protocol for cache backends
- InMemoryQueryCache: default in-process backend
- cache_key / invalidation_keys: deterministic key construction
- OptimisticPatch: reversible speculative mutation
- CacheManager: per-entity-type cache facade
"""

from entityspace.cache.keys import (
    DEFAULT_QUERY_PARAMS,
    MutationKind,
    QueryDescriptor,
    cache_key,
    freeze,
    invalidation_keys,
    matches_prefix,
    normalize_params,
)
from entityspace.cache.local import CacheEntry, InMemoryQueryCache
from entityspace.cache.manager import CacheManager
from entityspace.cache.patch import OptimisticPatch, PatchStatus, Snapshot
from entityspace.cache.protocol import QueryCache

__all__ = [
    # Protocol
    "QueryCache",
    # Implementations
    "InMemoryQueryCache",
    "CacheEntry",
    # Keys
    "MutationKind",
    "QueryDescriptor",
    "DEFAULT_QUERY_PARAMS",
    "cache_key",
    "freeze",
    "invalidation_keys",
    "matches_prefix",
    "normalize_params",
    # Patches
    "OptimisticPatch",
    "PatchStatus",
    "Snapshot",
    # Manager
    "CacheManager",
]
