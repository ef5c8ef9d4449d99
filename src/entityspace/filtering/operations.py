"""Pure filter, search, sort and aggregation functions over transformed entities.

Stateless: every function takes a collection and returns a new one (or the
input itself when the stage is a no-op).
"""

from __future__ import annotations

import locale
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from entityspace.adapters.models import SortKind, SortOrder
from entityspace.core.entity import Entity
from entityspace.filtering.models import (
    EXACT_FILTER_KEYS,
    AvailableFilters,
    FilterBy,
    FilterStats,
    StatusBucket,
)

logger = structlog.get_logger(__name__)

SORT_FIELD_ALIASES: dict[str, str] = {
    "tittel": "title",
    "navn": "title",
    "name": "title",
    "kravUID": "uid",
    "tiltakUID": "uid",
    "prosjektKravUID": "uid",
    "prosjektTiltakUID": "uid",
    "vurdering": "assessment",
    "emne": "topic",
    "prioritet": "priority",
    "obligatorisk": "mandatory",
    "beskrivelse": "description",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "entityType": "entity_type",
}

SORT_FIELD_KINDS: dict[str, SortKind] = {
    "title": SortKind.TEXT,
    "uid": SortKind.TEXT,
    "description": SortKind.TEXT,
    "status": SortKind.TEXT,
    "assessment": SortKind.TEXT,
    "topic": SortKind.TEXT,
    "priority": SortKind.NUMBER,
    "id": SortKind.NUMBER,
    "created_at": SortKind.DATE,
    "updated_at": SortKind.DATE,
    "mandatory": SortKind.BOOLEAN,
    "entity_type": SortKind.TEXT,
}

_SORT_VALUE: dict[str, Callable[[Entity], Any]] = {
    "title": lambda e: e.title,
    "uid": lambda e: e.uid,
    "description": lambda e: e.description,
    "status": lambda e: e.status_name,
    "assessment": lambda e: e.assessment_name,
    "topic": lambda e: e.topic_title,
    "priority": lambda e: e.priority,
    "id": lambda e: e.id,
    "created_at": lambda e: e.created_at,
    "updated_at": lambda e: e.updated_at,
    "mandatory": lambda e: e.mandatory,
    "entity_type": lambda e: e.entity_type,
}


def collation_key(text: str) -> str:
    """Locale-aware, case-insensitive sort key for text."""
    return locale.strxfrm(text.casefold())


def resolve_sort_field(field: str | None) -> str | None:
    """Map a sort field (or alias) to its canonical name; None if unknown."""
    if not field:
        return None
    canonical = SORT_FIELD_ALIASES.get(field, field)
    return canonical if canonical in SORT_FIELD_KINDS else None


def apply_search(items: Sequence[Entity], query: str | None) -> Sequence[Entity]:
    """Keep entities whose text fields contain the query (case-insensitive).

    Searches title, uid, description, status, assessment and topic.

    Args:
        items: Entities to search.
        query: Search text; empty or whitespace means no search.

    Returns:
        Matching entities in input order, or items itself for an empty query.
    """
    if not query or not query.strip():
        return items
    needle = query.strip().casefold()
    return [item for item in items if _matches(item, needle)]


def _matches(item: Entity, needle: str) -> bool:
    haystacks = (
        item.title,
        item.uid,
        item.description,
        item.status_name,
        item.assessment_name,
        item.topic_title,
    )
    return any(needle in (text or "").casefold() for text in haystacks)


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, str) and value.lower() == "all")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def apply_filters(items: Sequence[Entity], filters: Mapping[str, Any] | None) -> list[Entity]:
    """Narrow entities by categorical bucket, then by exact-match filters.

    Stages run in order: ``filter_by`` bucket, then entity type, status,
    assessment, topic, priority and mandatory. A stage is skipped when its value is absent, empty
    or "all". Re-applying the same filters is a no-op.

    Args:
        items: Entities to filter.
        filters: Criteria mapping (see WorkspaceFilters.as_criteria()).

    Returns:
        New list of matching entities in input order.
    """
    result = list(items)
    if not filters:
        return result

    bucket_value = filters.get("filter_by", filters.get("filterBy"))
    bucket = FilterBy.parse(bucket_value)
    if bucket is None:
        logger.warning("unknown_filter_bucket", filter_by=bucket_value)
    elif bucket is not FilterBy.ALL:
        result = [item for item in result if in_bucket(item, bucket)]

    for key in EXACT_FILTER_KEYS:
        value = filters.get(key)
        if _is_unset(value):
            continue
        if key == "entity_type":
            result = [item for item in result if item.entity_type == value]
        elif key == "status":
            result = [item for item in result if item.status_name == value]
        elif key == "assessment":
            result = [item for item in result if item.assessment_name == value]
        elif key == "topic":
            result = [item for item in result if item.topic_title == value]
        elif key == "priority":
            try:
                wanted = int(value)
            except (TypeError, ValueError):
                logger.warning("invalid_priority_filter", priority=value)
                continue
            result = [item for item in result if item.priority == wanted]
        elif key == "mandatory":
            wanted_flag = _as_bool(value)
            result = [item for item in result if bool(item.mandatory) is wanted_flag]
    return result


def in_bucket(item: Entity, bucket: FilterBy) -> bool:
    """Check whether an entity falls in a categorical bucket."""
    match bucket:
        case FilterBy.ALL:
            return True
        case FilterBy.MANDATORY:
            return bool(item.mandatory)
        case FilterBy.OPTIONAL:
            return not item.mandatory
        case FilterBy.COMPLETED:
            return StatusBucket.of(item.status_name) is StatusBucket.COMPLETED
        case FilterBy.PENDING:
            return StatusBucket.of(item.status_name) is StatusBucket.PENDING
        case FilterBy.ACTIVE:
            return StatusBucket.of(item.status_name) is StatusBucket.ACTIVE


def _sort_key(kind: SortKind, value: Any) -> tuple[Any, ...]:
    """Build a comparable key; missing values sort before present ones."""
    if value is None or (kind is SortKind.TEXT and value == ""):
        return (0,)
    if kind is SortKind.DATE:
        if isinstance(value, datetime):
            moment = value if value.tzinfo else value.replace(tzinfo=UTC)
            return (1, moment.timestamp())
        return (0,)
    if kind is SortKind.BOOLEAN:
        return (1, bool(value))
    if kind is SortKind.NUMBER:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return (1, 0, value)
        return (1, 1, collation_key(str(value)))
    return (1, collation_key(str(value)))


def apply_sorting(
    items: Sequence[Entity],
    field: str | None,
    order: SortOrder | str | None = SortOrder.ASC,
) -> list[Entity]:
    """Stable sort by a canonical field (or alias).

    Numbers compare numerically, dates as instants, booleans false-before-true
    ascending, everything else by locale collation. An unknown field falls back
    to title and logs a warning.

    Args:
        items: Entities to sort.
        field: Sort field name.
        order: "asc" or "desc".

    Returns:
        New sorted list; equal keys keep their input order in both directions.
    """
    canonical = resolve_sort_field(field)
    if canonical is None:
        logger.warning("unknown_sort_field", field=field, fallback="title")
        canonical = "title"
    kind = SORT_FIELD_KINDS[canonical]
    getter = _SORT_VALUE[canonical]
    descending = SortOrder.parse(order) is SortOrder.DESC
    return sorted(items, key=lambda item: _sort_key(kind, getter(item)), reverse=descending)


def extract_available_filters(items: Sequence[Entity]) -> AvailableFilters:
    """Collect the distinct status, assessment, topic and priority values in one pass."""
    statuses: set[str] = set()
    assessments: set[str] = set()
    topics: set[str] = set()
    priorities: set[int] = set()
    for item in items:
        if item.status_name:
            statuses.add(item.status_name)
        if item.assessment_name:
            assessments.add(item.assessment_name)
        if item.topic_title:
            topics.add(item.topic_title)
        if item.priority is not None:
            priorities.add(item.priority)
    return AvailableFilters(
        statuses=tuple(sorted(statuses, key=collation_key)),
        assessments=tuple(sorted(assessments, key=collation_key)),
        topics=tuple(sorted(topics, key=collation_key)),
        priorities=tuple(sorted(priorities)),
    )


def calculate_stats(items: Sequence[Entity]) -> FilterStats:
    """Count total, mandatory/optional and status buckets in one pass.

    Uses the same status buckets as apply_filters, so each bucket count equals
    ``len(apply_filters(items, {"filter_by": <bucket>}))``.
    """
    total = mandatory = active = completed = pending = 0
    for item in items:
        total += 1
        if item.mandatory:
            mandatory += 1
        bucket = StatusBucket.of(item.status_name)
        if bucket is StatusBucket.COMPLETED:
            completed += 1
        elif bucket is StatusBucket.PENDING:
            pending += 1
        else:
            active += 1
    return FilterStats(
        total=total,
        mandatory=mandatory,
        optional=total - mandatory,
        active=active,
        completed=completed,
        pending=pending,
    )
