"""Cache key construction and invalidation planning.

Keys are ordered tuples ``(entity_type, namespace, *segments)``. Query
parameters are normalized before they become part of a key, so requests that
differ only in defaults, empty values or mapping order share one key.

Usage:
    key = cache_key("requirement", "workspace", {"page": 1, "search": " fire "})
    # ("requirement", "workspace", "paginated", (("search", "fire"),))
    prefixes = invalidation_keys(MutationKind.UPDATE, entity, adapter)
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from entityspace.adapters.protocol import EntityAdapter
from entityspace.core.entity import Entity
from entityspace.core.types import EntityTypeTag, QueryKey

WORKSPACE = "workspace"
SEARCH = "search"
DETAIL = "detail"
FILTERS = "filters"
STATS = "stats"

LIST_OPERATIONS: frozenset[str] = frozenset({"list", WORKSPACE})

DEFAULT_QUERY_PARAMS: Mapping[str, Any] = {
    "page": 1,
    "page_size": 50,
    "sort_order": "asc",
    "filter_by": "all",
}
"""Parameter values that are equivalent to leaving the parameter out."""

PARAM_ALIASES: Mapping[str, str] = {
    "pageSize": "page_size",
    "sortBy": "sort_by",
    "sortOrder": "sort_order",
    "filterBy": "filter_by",
    "additionalFilters": "additional_filters",
    "searchQuery": "search",
    "search_query": "search",
}


class MutationKind(Enum):
    """Kind of mutation a patch or invalidation belongs to."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_UPDATE = "bulk_update"
    BULK_DELETE = "bulk_delete"

    @property
    def is_bulk(self) -> bool:
        return self in (MutationKind.BULK_UPDATE, MutationKind.BULK_DELETE)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return len(value) == 0
    return False


def _normalize_filters(filters: Mapping[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key, value in filters.items():
        if _is_empty(value) or (isinstance(value, str) and value.strip().lower() == "all"):
            continue
        cleaned[key] = value.strip() if isinstance(value, str) else value
    return cleaned


def normalize_params(
    params: Mapping[str, Any] | None, defaults: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Reduce query parameters to their canonical form.

    camelCase names become snake_case, the search text is trimmed, and empty
    values, empty nested filters and values equal to their default are dropped.

    Args:
        params: Query parameters.
        defaults: Default values to strip; DEFAULT_QUERY_PARAMS when None.

    Returns:
        New dict; equal for semantically identical requests.
    """
    if not params:
        return {}
    defaults = DEFAULT_QUERY_PARAMS if defaults is None else defaults
    normalized: dict[str, Any] = {}
    for raw_name, value in params.items():
        name = PARAM_ALIASES.get(raw_name, raw_name)
        if isinstance(value, str):
            value = value.strip()
        if isinstance(value, Mapping):
            value = _normalize_filters(value)
        if _is_empty(value):
            continue
        if name in defaults and value == defaults[name]:
            continue
        normalized[name] = value
    return normalized


def freeze(value: Any) -> Hashable:
    """Turn nested mappings and sequences into hashable, order-independent tuples."""
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), freeze(v)) for k, v in value.items()))
    if isinstance(value, set | frozenset):
        return tuple(sorted((freeze(v) for v in value), key=repr))
    if isinstance(value, list | tuple):
        return tuple(freeze(v) for v in value)
    return value


def cache_key(
    entity_type: EntityTypeTag,
    operation: str,
    params: Any = None,
    grouped: bool = False,
) -> QueryKey:
    """Build the cache key for a query.

    Args:
        entity_type: Entity type tag.
        operation: "list"/"workspace", "search", "detail", "filters", "stats"
            or any other operation name.
        params: Query parameters; the entity id for "detail".
        grouped: Whether a list query returns topic groups.

    Returns:
        Key tuple starting with ``(entity_type, namespace)``.
    """
    if operation in LIST_OPERATIONS:
        key: tuple[Hashable, ...] = (entity_type, WORKSPACE, "grouped" if grouped else "paginated")
        frozen = freeze(normalize_params(params))
        return key + (frozen,) if frozen else key
    if operation == SEARCH:
        frozen = freeze(normalize_params(params))
        return (entity_type, SEARCH, frozen) if frozen else (entity_type, SEARCH)
    if operation == DETAIL:
        entity_id = params.get("id") if isinstance(params, Mapping) else params
        return (entity_type, DETAIL, entity_id)
    if operation == FILTERS:
        return (entity_type, FILTERS, "available")
    if operation == STATS:
        return (entity_type, STATS)
    if params is None:
        return (entity_type, operation)
    return (entity_type, operation, freeze(params))


def matches_prefix(key: QueryKey, prefix: QueryKey) -> bool:
    """Check if a key starts with a prefix (``()`` matches everything)."""
    return len(key) >= len(prefix) and tuple(key[: len(prefix)]) == tuple(prefix)


@dataclass(frozen=True, slots=True)
class QueryDescriptor:
    """Identity of a list fetch.

    Two descriptors are equal exactly when their cache keys are equal; a
    fetch's result is only applied while its descriptor is still current.
    """

    entity_type: EntityTypeTag
    operation: str
    params: Hashable = ()
    grouped: bool = False

    @classmethod
    def build(
        cls,
        entity_type: EntityTypeTag,
        operation: str,
        params: Mapping[str, Any] | None = None,
        grouped: bool = False,
    ) -> QueryDescriptor:
        return cls(entity_type, operation, freeze(normalize_params(params)), grouped)

    @property
    def key(self) -> QueryKey:
        return cache_key(self.entity_type, self.operation, dict(self.params or ()), self.grouped)


def invalidation_keys(
    mutation: MutationKind,
    entity: Entity | None,
    adapter: EntityAdapter,
) -> list[QueryKey]:
    """List the key prefixes a mutation makes stale.

    Always covers the type's workspace, search, stats and filter namespaces.
    Update and delete add the entity's detail key. The parent detail, related
    types (detail keys of linked records plus their list namespaces) and the
    project variant's workspace follow. Bulk mutations cover the whole type.

    Args:
        mutation: Kind of mutation.
        entity: Affected entity; may be None for bulk mutations.
        adapter: Adapter of the entity type.

    Returns:
        Prefixes in a stable order, without duplicates.
    """
    entity_type = entity.entity_type if entity is not None else adapter.entity_type
    keys: list[QueryKey] = []
    if mutation.is_bulk:
        keys.append((entity_type,))
    keys.extend(
        [
            (entity_type, WORKSPACE),
            (entity_type, SEARCH),
            (entity_type, STATS),
            (entity_type, FILTERS),
        ]
    )
    if entity_type != adapter.entity_type:
        # Rows of a combined listing are also cached under the listing's tag
        keys.extend(
            (adapter.entity_type, namespace) for namespace in (WORKSPACE, SEARCH, STATS, FILTERS)
        )
        if entity is not None and mutation in (MutationKind.UPDATE, MutationKind.DELETE):
            keys.append((adapter.entity_type, DETAIL, entity.id))
    if entity is not None:
        if mutation in (MutationKind.UPDATE, MutationKind.DELETE):
            keys.append((entity_type, DETAIL, entity.id))
        if entity.parent_id is not None:
            keys.append((entity_type, DETAIL, entity.parent_id))

    for relation, related_type in adapter.declared_relationships().items():
        if entity is not None and entity.raw:
            for ref in adapter.normalize_relationships(entity.raw, relation):
                keys.append((related_type, DETAIL, ref.id))
        keys.append((related_type, WORKSPACE))
        keys.append((related_type, SEARCH))

    variant = adapter.project_variant()
    if variant is not None and (mutation.is_bulk or (entity is not None and entity.project_id is not None)):
        keys.append((variant, WORKSPACE))

    return list(dict.fromkeys(keys))
