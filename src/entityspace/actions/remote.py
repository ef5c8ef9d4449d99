"""Remote data source protocol.

The core never knows transport details; the hosting application supplies one
data source per entity type.

Usage:
    class TicketApi:
        async def list(self, page, page_size, search, sort_by, sort_order,
                       filter_by, additional_filters):
            return await http.get("/tickets", params=...)
        ...

    orchestrator = ActionOrchestrator(adapter, manager, permissions, TicketApi())
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from entityspace.adapters.models import ListPage
from entityspace.core.types import EntityKey, RawEntity


@runtime_checkable
class RemoteDataSource(Protocol):
    """Async list and mutation endpoints for one entity type."""

    async def list(
        self,
        page: int,
        page_size: int,
        search: str,
        sort_by: str,
        sort_order: str,
        filter_by: str,
        additional_filters: Mapping[str, Any],
    ) -> ListPage[Any] | Mapping[str, Any] | list[Any]:
        """Fetch one page of raw records ({items, total, page, pageSize})."""
        ...

    async def create(self, payload: Mapping[str, Any]) -> RawEntity | None:
        """Create a record; returns the stored raw record."""
        ...

    async def update(self, entity_id: EntityKey, payload: Mapping[str, Any]) -> RawEntity | None:
        """Update a record; returns the stored raw record."""
        ...

    async def delete(self, entity_id: EntityKey) -> Any:
        """Delete a record."""
        ...
