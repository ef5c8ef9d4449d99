"""Optimistic patch handle.

A patch is a plain value: the cache it was applied to, the pre-patch snapshot
of every key it touched, and the key prefixes to invalidate on commit. It is
resolved exactly once, by ``commit()`` or ``rollback()``.

Usage:
    patch = manager.apply_optimistic_patch(MutationKind.UPDATE, entity)
    try:
        await remote.update(entity.id, payload)
    except Exception:
        patch.rollback()
        raise
    patch.commit()
"""

from __future__ import annotations

import copy as cp
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from entityspace.cache.keys import MutationKind
from entityspace.cache.protocol import QueryCache
from entityspace.core.errors import PatchStateError
from entityspace.core.types import EntityKey, QueryKey

logger = structlog.get_logger(__name__)


class PatchStatus(Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Pre-patch state of one cache key.

    Attributes:
        key: Cache key.
        value: Value held before the patch (None when absent).
        present: Whether the key existed before the patch.
    """

    key: QueryKey
    value: Any = None
    present: bool = False

    @classmethod
    def capture(cls, cache: QueryCache, key: QueryKey) -> Snapshot:
        if key not in cache:
            return cls(key=key)
        return cls(key=key, value=cp.deepcopy(cache.get(key)), present=True)


@dataclass(slots=True)
class OptimisticPatch:
    """Reversible speculative cache mutation.

    Attributes:
        mutation: Mutation the patch speculates on.
        entity_id: Id of the affected entity.
        cache: Cache the patch was applied to.
        snapshots: Pre-patch state of each touched key, in application order.
        invalidation_keys: Prefixes invalidated by commit().
        status: Resolution state.
    """

    mutation: MutationKind
    entity_id: EntityKey
    cache: QueryCache = field(repr=False, compare=False)
    snapshots: tuple[Snapshot, ...] = ()
    invalidation_keys: tuple[QueryKey, ...] = ()
    status: PatchStatus = PatchStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status is PatchStatus.PENDING

    @property
    def touched_keys(self) -> tuple[QueryKey, ...]:
        return tuple(snapshot.key for snapshot in self.snapshots)

    def commit(self) -> int:
        """Accept the patch and invalidate every planned prefix.

        Returns:
            Number of cache entries marked stale.

        Raises:
            PatchStateError: If the patch was already resolved.
        """
        self._ensure_pending("commit")
        count = sum(self.cache.invalidate(key) for key in self.invalidation_keys)
        self.status = PatchStatus.COMMITTED
        logger.debug(
            "patch_committed",
            mutation=self.mutation.value,
            entity_id=self.entity_id,
            invalidated=count,
        )
        return count

    def rollback(self) -> None:
        """Restore every touched key to its snapshot.

        Keys that did not exist before the patch are removed again.

        Raises:
            PatchStateError: If the patch was already resolved.
        """
        self._ensure_pending("rollback")
        for snapshot in reversed(self.snapshots):
            if snapshot.present:
                self.cache.set(snapshot.key, cp.deepcopy(snapshot.value))
            else:
                self.cache.remove(snapshot.key)
        self.status = PatchStatus.ROLLED_BACK
        logger.debug(
            "patch_rolled_back",
            mutation=self.mutation.value,
            entity_id=self.entity_id,
            keys=len(self.snapshots),
        )

    def _ensure_pending(self, operation: str) -> None:
        if self.status is not PatchStatus.PENDING:
            raise PatchStateError(
                f"Cannot {operation} patch for {self.entity_id!r}: already {self.status.value}"
            )
