"""Adapter-bound filter service.

Wraps the pure operations with an adapter so callers can pass raw records and
query the adapter's sort/filter catalogs.

Usage:
    service = FilterService(registry.get("requirement"))
    page = service.process(raw_items, search="fire", filters=WorkspaceFilters(filter_by="active"))
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from entityspace.adapters.models import FilterOption, SortOption
from entityspace.adapters.protocol import EntityAdapter
from entityspace.core.entity import Entity
from entityspace.filtering.models import AvailableFilters, FilterStats, WorkspaceFilters
from entityspace.filtering.operations import (
    apply_filters,
    apply_search,
    apply_sorting,
    calculate_stats,
    extract_available_filters,
    resolve_sort_field,
)

PREFERRED_DEFAULT_SORTS: tuple[str, ...] = ("updated_at", "created_at", "title", "id")


class FilterService:
    """Filter/sort/stat pipeline for one entity type.

    Args:
        adapter: Adapter of the entity type being filtered.
    """

    def __init__(self, adapter: EntityAdapter):
        self.adapter = adapter

    def entities(self, items: Iterable[Any]) -> list[Entity]:
        """Transform raw records; already-transformed entities pass through."""
        return [item if isinstance(item, Entity) else self.adapter.transform(item) for item in items]

    def process(
        self,
        items: Iterable[Any],
        search: str | None = None,
        filters: WorkspaceFilters | None = None,
    ) -> list[Entity]:
        """Run filter, search and sort in sequence.

        Args:
            items: Raw records or entities.
            search: Search text.
            filters: Filter and sort selection; no filtering or sorting when None.

        Returns:
            Processed entities.
        """
        result: list[Entity] = self.entities(items)
        if filters is not None:
            result = apply_filters(result, filters.as_criteria())
        result = list(apply_search(result, search))
        if filters is not None:
            result = apply_sorting(result, filters.sort_by, filters.sort_order)
        return result

    def available_filters(self, items: Iterable[Any]) -> AvailableFilters:
        return extract_available_filters(self.entities(items))

    def stats(self, items: Iterable[Any]) -> FilterStats:
        return calculate_stats(self.entities(items))

    def get_sort_options(self) -> list[SortOption]:
        return self.adapter.get_sort_options()

    def get_filter_options(self) -> list[FilterOption]:
        return [option for option in self.adapter.get_filter_options() if option.enabled]

    def is_valid_sort_field(self, field: str) -> bool:
        """Check a field against the adapter's sort catalog (aliases allowed)."""
        canonical = resolve_sort_field(field)
        return any(option.key == canonical for option in self.get_sort_options())

    def sort_field_label(self, field: str) -> str:
        canonical = resolve_sort_field(field)
        for option in self.get_sort_options():
            if option.key == canonical:
                return option.label
        return field

    def default_sort(self) -> tuple[str, str]:
        """Pick the default (sort_by, sort_order) from the adapter's catalog.

        Dates and ids sort newest first, titles alphabetically.
        """
        keys = [option.key for option in self.get_sort_options()]
        for preferred in PREFERRED_DEFAULT_SORTS:
            if preferred in keys:
                return preferred, "asc" if preferred == "title" else "desc"
        if keys:
            return keys[0], "asc"
        return "id", "desc"
