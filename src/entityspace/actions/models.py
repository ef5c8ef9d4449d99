"""Action result models and conflict policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from entityspace.core.entity import Entity
from entityspace.core.errors import EntitySpaceError
from entityspace.core.types import EntityKey


class ConflictPolicy(Enum):
    """What happens when a mutation targets an entity whose previous mutation is unresolved."""

    SERIALIZE = auto()
    """Queue behind the pending mutation (per-id lock). Default."""

    REJECT = auto()
    """Fail the second mutation fast with MutationConflict."""

    @classmethod
    def parse(cls, value: ConflictPolicy | str) -> ConflictPolicy:
        if isinstance(value, ConflictPolicy):
            return value
        return cls[value.upper()]


@dataclass(slots=True)
class ActionResult:
    """Outcome of one mutation. Remote failures arrive here, never as exceptions.

    Attributes:
        success: Whether the mutation was confirmed by the remote data source.
        operation: "create", "update" or "delete".
        data: Resulting entity (for delete: the entity that was removed).
        error: Human-readable failure message.
        optimistic: Whether an optimistic patch was applied.
        entity_id: Id the mutation targeted.
        exception: The error behind a failure.
    """

    success: bool
    operation: str
    data: Entity | None = None
    error: str | None = None
    optimistic: bool = False
    entity_id: EntityKey | None = None
    exception: EntitySpaceError | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class BulkSummary:
    total: int = 0
    success: int = 0
    errors: int = 0


@dataclass(slots=True)
class BulkResult:
    """Aggregated outcome of a sequential bulk mutation."""

    operation: str
    results: list[ActionResult] = field(default_factory=list)

    @property
    def summary(self) -> BulkSummary:
        succeeded = sum(1 for result in self.results if result.success)
        return BulkSummary(
            total=len(self.results),
            success=succeeded,
            errors=len(self.results) - succeeded,
        )

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def succeeded_ids(self) -> list[EntityKey]:
        return [r.entity_id for r in self.results if r.success and r.entity_id is not None]


@dataclass(frozen=True, slots=True)
class ValidationReport:
    is_valid: bool
    errors: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors)}
