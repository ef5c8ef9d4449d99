"""Filter, stat and bucket models.

Usage:
    filters = WorkspaceFilters(filter_by="mandatory", sort_by="title", sort_order="asc")
    filters = filters.with_additional(status="Done")
    visible = apply_filters(items, filters.as_criteria())
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

COMPLETED_KEYWORDS: frozenset[str] = frozenset({"ferdig", "completed", "done", "avsluttet"})
"""Lower-cased status names that count as completed."""

PENDING_KEYWORDS: frozenset[str] = frozenset({"venter", "pending", "waiting", "på hold"})
"""Lower-cased status names that count as pending."""


class StatusBucket(Enum):
    """Coarse lifecycle bucket derived from a status name."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PENDING = "pending"

    @classmethod
    def of(cls, status_name: str) -> StatusBucket:
        """Classify a status name. Unknown or empty names are active."""
        name = status_name.strip().lower()
        if name in COMPLETED_KEYWORDS:
            return cls.COMPLETED
        if name in PENDING_KEYWORDS:
            return cls.PENDING
        return cls.ACTIVE


class FilterBy(Enum):
    """Categorical filter choices."""

    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
    PENDING = "pending"
    MANDATORY = "mandatory"
    OPTIONAL = "optional"

    @classmethod
    def parse(cls, value: FilterBy | str | None) -> FilterBy | None:
        """Coerce input to a FilterBy; None for unrecognized values."""
        if isinstance(value, FilterBy):
            return value
        if value is None:
            return cls.ALL
        text = str(value).strip().lower()
        if text in ("", "all"):
            return cls.ALL
        if text == "obligatorisk":
            return cls.MANDATORY
        try:
            return cls(text)
        except ValueError:
            return None


EXACT_FILTER_KEYS: tuple[str, ...] = (
    "entity_type",
    "status",
    "assessment",
    "topic",
    "priority",
    "mandatory",
)
"""Additional filter keys matched exactly, in application order."""


@dataclass(frozen=True, slots=True)
class WorkspaceFilters:
    """Search-independent filter and sort selection of a workspace.

    Attributes:
        filter_by: Categorical bucket ("all", "active", ...).
        sort_by: Sort field.
        sort_order: "asc" or "desc".
        additional_filters: Exact-match filters keyed by EXACT_FILTER_KEYS.
    """

    filter_by: str = "all"
    sort_by: str = "updated_at"
    sort_order: str = "desc"
    additional_filters: Mapping[str, Any] = field(default_factory=dict)

    def as_criteria(self) -> dict[str, Any]:
        """Flatten into the mapping accepted by apply_filters."""
        return {"filter_by": self.filter_by, **dict(self.additional_filters)}

    def with_additional(self, **values: Any) -> WorkspaceFilters:
        """Return a copy with additional filters merged in."""
        merged = {**dict(self.additional_filters), **values}
        return WorkspaceFilters(self.filter_by, self.sort_by, self.sort_order, merged)


@dataclass(frozen=True, slots=True)
class AvailableFilters:
    """Distinct filterable values present in a collection."""

    statuses: tuple[str, ...] = ()
    assessments: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    priorities: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class FilterStats:
    """Aggregate counts over a collection.

    Invariant: mandatory + optional == total == active + completed + pending.
    """

    total: int = 0
    mandatory: int = 0
    optional: int = 0
    active: int = 0
    completed: int = 0
    pending: int = 0

    def adjusted(self, delta: int) -> FilterStats:
        """Return a copy with ``total`` shifted by delta (floored at 0)."""
        return FilterStats(
            max(0, self.total + delta),
            self.mandatory,
            self.optional,
            self.active,
            self.completed,
            self.pending,
        )
