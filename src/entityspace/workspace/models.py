"""Workspace state models.

WorkspaceState is immutable; the store replaces it wholesale on every
transition, so a consumer holding a reference never sees it change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from entityspace.adapters.models import ListPage
from entityspace.core.entity import Entity
from entityspace.core.types import EntityKey, EntityTypeTag
from entityspace.filtering.models import AvailableFilters, FilterStats, WorkspaceFilters


class ViewMode(Enum):
    LIST = "list"
    CARDS = "cards"
    UNIFIED = "unified"


@dataclass(frozen=True, slots=True)
class Pagination:
    """Current page window of a workspace."""

    page: int = 1
    page_size: int = 50
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 1
        return max(1, -(-self.total // self.page_size))

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1

    @classmethod
    def from_page(cls, page: ListPage[Entity]) -> Pagination:
        return cls(page=page.page, page_size=page.page_size, total=page.total)


@dataclass(frozen=True, slots=True)
class WorkspaceState:
    """Everything a consumer renders for one entity type's collection.

    Attributes:
        entity_type: Entity type being browsed.
        entities: Visible entities, in display order.
        pagination: Page window.
        filters: Filter and sort selection.
        search_query: Current search text.
        selection: Selected entity ids.
        focused: Focused entity id.
        expanded: Expanded entity ids.
        view_mode: Presentation mode.
        show_filters: Whether the filter panel is open.
        show_bulk_actions: Whether bulk actions are shown.
        grouped: Whether the last page came grouped by topic.
        loading: A fetch is in flight.
        error: Last error message, cleared by the next successful load.
        available_filters: Distinct filter values in the last fetched page.
        stats: Aggregate counts over the visible entities.
        consecutive_failures: Failed loads since the last success.
        disabled_until: Clock time before which loads are skipped.
    """

    entity_type: EntityTypeTag
    entities: tuple[Entity, ...] = ()
    pagination: Pagination = field(default_factory=Pagination)
    filters: WorkspaceFilters = field(default_factory=WorkspaceFilters)
    search_query: str = ""
    selection: frozenset[EntityKey] = frozenset()
    focused: EntityKey | None = None
    expanded: frozenset[EntityKey] = frozenset()
    view_mode: ViewMode = ViewMode.LIST
    show_filters: bool = False
    show_bulk_actions: bool = False
    grouped: bool = False
    loading: bool = False
    error: str | None = None
    available_filters: AvailableFilters = field(default_factory=AvailableFilters)
    stats: FilterStats = field(default_factory=FilterStats)
    consecutive_failures: int = 0
    disabled_until: float | None = None

    def entity_ids(self) -> list[EntityKey]:
        return [entity.id for entity in self.entities]
