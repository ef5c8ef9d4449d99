"""Cache manager: the only writer of the shared query cache for one entity type.

Usage:
    manager = CacheManager(adapter, cache)
    key = manager.cache_key("workspace", {"page": 2})
    patch = manager.apply_optimistic_patch(MutationKind.CREATE, draft)
    ...
    patch.commit()
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from entityspace.adapters.models import ListPage
from entityspace.adapters.protocol import EntityAdapter
from entityspace.cache import keys as cache_keys
from entityspace.cache.keys import DETAIL, SEARCH, STATS, WORKSPACE, MutationKind
from entityspace.cache.patch import OptimisticPatch, Snapshot
from entityspace.cache.protocol import QueryCache
from entityspace.core.entity import Entity
from entityspace.core.errors import MutationConflict
from entityspace.core.types import EntityKey, QueryKey
from entityspace.filtering.models import FilterStats

logger = structlog.get_logger(__name__)


class CacheManager:
    """Reads, writes, patches and invalidates cached queries of one entity type.

    Args:
        adapter: Adapter of the entity type.
        cache: Shared query cache.
    """

    def __init__(self, adapter: EntityAdapter, cache: QueryCache):
        self.adapter = adapter
        self.cache = cache
        self._pending: dict[EntityKey, OptimisticPatch] = {}

    @property
    def entity_type(self) -> str:
        return self.adapter.entity_type

    # Keys

    def cache_key(self, operation: str, params: Any = None, grouped: bool = False) -> QueryKey:
        return cache_keys.cache_key(self.entity_type, operation, params, grouped)

    def invalidation_keys(self, mutation: MutationKind, entity: Entity | None = None) -> list[QueryKey]:
        return cache_keys.invalidation_keys(mutation, entity, self.adapter)

    # Reads and writes

    def get_cached(self, operation: str, params: Any = None, grouped: bool = False) -> Any | None:
        return self.cache.get(self.cache_key(operation, params, grouped))

    def set_cached(
        self, operation: str, value: Any, params: Any = None, grouped: bool = False
    ) -> QueryKey:
        key = self.cache_key(operation, params, grouped)
        self.cache.set(key, value)
        return key

    def remove_cached(self, operation: str, params: Any = None, grouped: bool = False) -> bool:
        return self.cache.remove(self.cache_key(operation, params, grouped))

    def read_fresh(self, key: QueryKey) -> Any | None:
        """Get a cached value only if it is not stale."""
        if self.cache.is_stale(key):
            return None
        return self.cache.get(key)

    def find_entity(self, entity_id: EntityKey) -> Entity | None:
        """Look an entity up in the detail cache, then in cached pages."""
        detail = self.cache.get((self.entity_type, DETAIL, entity_id))
        if isinstance(detail, Entity):
            return detail
        for key in self._page_keys():
            page = self.cache.get(key)
            if isinstance(page, ListPage):
                for item in page.items:
                    if isinstance(item, Entity) and item.id == entity_id:
                        return item
        return None

    # Invalidation

    def invalidate(self, mutation: MutationKind, entity: Entity | None = None) -> list[QueryKey]:
        """Invalidate every prefix a mutation affects.

        Returns:
            The prefixes that were invalidated.
        """
        prefixes = self.invalidation_keys(mutation, entity)
        for prefix in prefixes:
            self.cache.invalidate(prefix)
        logger.debug(
            "cache_invalidated",
            entity_type=self.entity_type,
            mutation=mutation.value,
            prefixes=len(prefixes),
        )
        return prefixes

    def clear_entity_cache(self) -> int:
        """Remove every cached entry of this entity type.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for key in list(self.cache.keys((self.entity_type,))):
            removed += int(self.cache.remove(key))
        self._pending.clear()
        logger.info("entity_cache_cleared", entity_type=self.entity_type, removed=removed)
        return removed

    def cache_stats(self) -> dict[str, int]:
        all_keys = list(self.cache.keys((self.entity_type,)))
        return {
            "total_queries": len(all_keys),
            "stale_queries": sum(1 for key in all_keys if self.cache.is_stale(key)),
            "pending_patches": sum(1 for patch in self._pending.values() if patch.is_pending),
        }

    # Optimistic patches

    def pending_patch(self, entity_id: EntityKey) -> OptimisticPatch | None:
        """Get the unresolved patch for an entity id, if any."""
        patch = self._pending.get(entity_id)
        if patch is not None and not patch.is_pending:
            del self._pending[entity_id]
            return None
        return patch

    def apply_optimistic_patch(self, mutation: MutationKind, entity: Entity) -> OptimisticPatch:
        """Speculatively apply a mutation to every cached view of the entity.

        Cached workspace and search pages get the entity prepended (create),
        replaced (update) or removed (delete), with totals adjusted. The detail
        key is set or removed and the cached stats total follows creates and
        deletes.

        Args:
            mutation: CREATE, UPDATE or DELETE.
            entity: Entity as it should appear after the mutation.

        Returns:
            Pending patch holding a snapshot of every touched key.

        Raises:
            MutationConflict: If the entity already has an unresolved patch.
            ValueError: For bulk mutation kinds.
        """
        if mutation.is_bulk:
            raise ValueError("Bulk mutations are patched per entity")
        if self.pending_patch(entity.id) is not None:
            raise MutationConflict(f"Entity {entity.id!r} already has a pending patch")

        applied: list[Snapshot] = []
        try:
            for key in self._page_keys():
                page = self.cache.get(key)
                if not isinstance(page, ListPage):
                    continue
                self._apply(applied, key, lambda p=page: _patched_page(p, mutation, entity))

            detail_key = (self.entity_type, DETAIL, entity.id)
            if mutation is MutationKind.DELETE:
                if detail_key in self.cache:
                    applied.append(Snapshot.capture(self.cache, detail_key))
                    self.cache.remove(detail_key)
            else:
                self._apply(applied, detail_key, lambda: _as_optimistic(entity))

            stats_key = (self.entity_type, STATS)
            stats = self.cache.get(stats_key)
            if isinstance(stats, FilterStats) and mutation is not MutationKind.UPDATE:
                delta = 1 if mutation is MutationKind.CREATE else -1
                self._apply(applied, stats_key, lambda: stats.adjusted(delta))
        except Exception:
            logger.error(
                "optimistic_patch_failed",
                entity_type=self.entity_type,
                mutation=mutation.value,
                entity_id=entity.id,
                applied=len(applied),
                exc_info=True,
            )
            self._build(mutation, entity, applied).rollback()
            raise

        patch = self._build(mutation, entity, applied)
        self._pending[entity.id] = patch
        logger.debug(
            "optimistic_patch_applied",
            entity_type=self.entity_type,
            mutation=mutation.value,
            entity_id=entity.id,
            keys=len(applied),
        )
        return patch

    def _apply(self, applied: list[Snapshot], key: QueryKey, compute: Callable[[], Any]) -> None:
        snapshot = Snapshot.capture(self.cache, key)
        new_value = compute()
        applied.append(snapshot)
        self.cache.set(key, new_value)

    def _build(self, mutation: MutationKind, entity: Entity, applied: list[Snapshot]) -> OptimisticPatch:
        return OptimisticPatch(
            mutation=mutation,
            entity_id=entity.id,
            cache=self.cache,
            snapshots=tuple(applied),
            invalidation_keys=tuple(self.invalidation_keys(mutation, entity)),
        )

    def _page_keys(self) -> list[QueryKey]:
        return [
            *self.cache.keys((self.entity_type, WORKSPACE)),
            *self.cache.keys((self.entity_type, SEARCH)),
        ]


def _as_optimistic(entity: Entity) -> Entity:
    return entity if entity.optimistic else entity.merge({"optimistic": True})


def _patched_page(page: ListPage[Any], mutation: MutationKind, entity: Entity) -> ListPage[Any]:
    items = list(page.items)
    total = page.total
    if mutation is MutationKind.CREATE:
        items.insert(0, _as_optimistic(entity))
        total += 1
    elif mutation is MutationKind.UPDATE:
        items = [
            _as_optimistic(entity) if isinstance(item, Entity) and item.id == entity.id else item
            for item in items
        ]
    elif mutation is MutationKind.DELETE:
        kept = [item for item in items if not (isinstance(item, Entity) and item.id == entity.id)]
        total -= len(items) - len(kept)
        items = kept
    return ListPage(
        items=items,
        total=max(0, total),
        page=page.page,
        page_size=page.page_size,
        grouped=page.grouped,
    )
