"""Data models for entity adapters.

Defines the option catalogs and page shape exchanged through the EntityAdapter
protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class SortOrder(Enum):
    """Direction of a sort."""

    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: SortOrder | str | None) -> SortOrder:
        """Coerce user input to a SortOrder, defaulting to ascending."""
        if isinstance(value, SortOrder):
            return value
        if value is not None and str(value).lower() == "desc":
            return cls.DESC
        return cls.ASC


class SortKind(Enum):
    """How values of a sort field compare."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True, slots=True)
class SortOption:
    """Sortable field offered by an adapter.

    Attributes:
        key: Canonical Entity attribute to sort on.
        label: Display label.
        kind: Comparison semantics for the field.
    """

    key: str
    label: str
    kind: SortKind = SortKind.TEXT


@dataclass(frozen=True, slots=True)
class FilterOption:
    """Filter field offered by an adapter.

    Attributes:
        key: Filter key as used in additional filters ("status", "topic", ...).
        label: Display label.
        enabled: Whether the filter is available for this entity type.
        placeholder: Label of the "all" choice.
    """

    key: str
    label: str
    enabled: bool = True
    placeholder: str = "All"


@dataclass(slots=True)
class ListPage(Generic[T]):
    """One page of a list query.

    Attributes:
        items: Entities on this page (raw or transformed depending on stage).
        total: Total number of matching records on the server.
        page: 1-based page number.
        page_size: Page size used for the query.
        grouped: Whether the server returned items grouped by topic.
    """

    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50
    grouped: bool = False

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
    def from_mapping(cls, data: Mapping[str, Any]) -> ListPage[Any]:
        """Build a page from a remote response mapping.

        Accepts both ``pageSize``/``totalCount`` and ``page_size``/``total`` spellings.
        """
        items = list(data.get("items") or [])
        total = data.get("total", data.get("totalCount"))
        page_size = data.get("page_size", data.get("pageSize"))
        return cls(
            items=items,
            total=int(total) if total is not None else len(items),
            page=int(data.get("page") or 1),
            page_size=int(page_size) if page_size else max(len(items), 1),
        )
