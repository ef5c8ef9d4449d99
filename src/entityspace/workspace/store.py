"""Workspace store: the single owner of a workspace's state.

The store composes the adapter, filter, permission, cache and action services
for one entity type. Consumers read ``store.state`` and call the action
methods; nothing else mutates the state.

Loads are tagged with a query descriptor and a generation number; a response
is applied only if no later load (or reset) started while it was in flight.

Usage:
    store = WorkspaceStore("requirement", registry, cache, remote, user=user)
    await store.load_entities()
    await store.set_search_query("fire")
    result = await store.optimistic_create({"title": "New requirement"})
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from entityspace.actions.models import ActionResult, BulkResult
from entityspace.actions.orchestrator import ActionOrchestrator
from entityspace.actions.remote import RemoteDataSource
from entityspace.adapters.models import ListPage
from entityspace.adapters.registry import AdapterRegistry
from entityspace.cache.keys import WORKSPACE, MutationKind, QueryDescriptor
from entityspace.cache.manager import CacheManager
from entityspace.cache.protocol import QueryCache
from entityspace.config.settings import WorkspaceSettings
from entityspace.core.entity import Entity
from entityspace.core.errors import ConfigurationError, PermissionDenied, ValidationError
from entityspace.core.types import EntityKey, EntityTypeTag
from entityspace.filtering.models import WorkspaceFilters
from entityspace.filtering.service import FilterService
from entityspace.permissions.models import (
    Capabilities,
    PermissionConfig,
    PermissionContext,
    UserContext,
)
from entityspace.permissions.service import PermissionService
from entityspace.workspace.models import Pagination, ViewMode, WorkspaceState

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _PendingEdits:
    """Confirmed entity plus the changes still in flight for it.

    A change of None is a delete. ``confirmed`` is None once a delete succeeded.
    """

    confirmed: Entity | None
    index: int
    selected: bool
    changes: list[tuple[object, Mapping[str, Any] | None]] = field(default_factory=list)


class WorkspaceStore:
    """State and actions for browsing one entity type.

    Args:
        entity_type: Entity type to browse.
        registry: Adapter registry.
        cache: Shared query cache.
        remote: Remote data source for the entity type.
        user: Session user for permission checks.
        settings: Workspace settings.
        adapter_config: Adapter configuration passed to the registry.
        permission_config: Permission rule tables.
        clock: Time source in seconds, used by the circuit breaker.
    """

    def __init__(
        self,
        entity_type: EntityTypeTag,
        registry: AdapterRegistry,
        cache: QueryCache,
        remote: RemoteDataSource,
        user: UserContext | None = None,
        settings: WorkspaceSettings | None = None,
        *,
        adapter_config: Mapping[str, Any] | None = None,
        permission_config: PermissionConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.registry = registry
        self.cache = cache
        self.remote = remote
        self.user = user
        self.settings = settings or WorkspaceSettings()
        self.adapter_config = adapter_config
        self.permission_config = permission_config
        self._clock = clock or time.monotonic
        self._generation = 0
        self._current: QueryDescriptor | None = None
        self._edits: dict[EntityKey, _PendingEdits] = {}
        self._bind(entity_type)
        self._state = self._initial_state()

    def _bind(self, entity_type: EntityTypeTag) -> None:
        self.adapter = self.registry.get(entity_type, self.adapter_config)
        self.filter_service = FilterService(self.adapter)
        self.cache_manager = CacheManager(self.adapter, self.cache)
        self.permissions = PermissionService(self.adapter, self.user, self.permission_config)
        self.orchestrator = ActionOrchestrator(
            self.adapter,
            self.cache_manager,
            self.permissions,
            self.remote,
            self.settings,
            lookup=self._baseline,
        )

    def _initial_state(self) -> WorkspaceState:
        return WorkspaceState(
            entity_type=self.adapter.entity_type,
            pagination=Pagination(page_size=self.settings.default_page_size),
            filters=WorkspaceFilters(
                sort_by=self.settings.default_sort_by,
                sort_order=self.settings.default_sort_order,
            ),
        )

    @property
    def state(self) -> WorkspaceState:
        return self._state

    @property
    def entity_type(self) -> EntityTypeTag:
        return self._state.entity_type

    def _set(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)

    # Loading

    def query_params(self, **overrides: Any) -> dict[str, Any]:
        """Parameters of the list query the current state describes."""
        state = self._state
        params: dict[str, Any] = {
            "page": state.pagination.page,
            "page_size": state.pagination.page_size,
            "search": state.search_query,
            "sort_by": state.filters.sort_by,
            "sort_order": state.filters.sort_order,
            "filter_by": state.filters.filter_by,
            "additional_filters": dict(state.filters.additional_filters),
        }
        params.update(overrides)
        return params

    def is_disabled(self) -> bool:
        """True while the circuit breaker pauses loading."""
        until = self._state.disabled_until
        return until is not None and self._clock() < until

    async def load_entities(self, **overrides: Any) -> bool:
        """Fetch the current page (through the cache) and apply it.

        Args:
            **overrides: Query parameters overriding the current state.

        Returns:
            True if the result was applied; False when loading is paused, the
            load failed, or a later load superseded this one.

        Raises:
            ConfigurationError: Propagated untouched.
        """
        if self.is_disabled():
            logger.warning(
                "load_skipped",
                entity_type=self.entity_type,
                disabled_until=self._state.disabled_until,
            )
            return False

        params = self.query_params(**overrides)
        # A type switch may rebind these while the request is in flight
        adapter, cache_manager, remote = self.adapter, self.cache_manager, self.remote
        grouped = adapter.supports_group_by_topic()
        descriptor = QueryDescriptor.build(adapter.entity_type, WORKSPACE, params, grouped)
        self._generation += 1
        generation = self._generation
        self._current = descriptor
        self._set(loading=True, error=None)

        try:
            page = cache_manager.read_fresh(descriptor.key)
            if page is None:
                raw = await remote.list(**params)
                page = adapter.transform_response(raw)
                cache_manager.set_cached(WORKSPACE, page, params, grouped)
        except ConfigurationError:
            raise
        except Exception as exc:
            if not self._is_current(descriptor, generation):
                logger.debug(
                    "stale_load_discarded", entity_type=descriptor.entity_type, failed=True
                )
                return False
            self._record_failure(exc)
            return False

        if not self._is_current(descriptor, generation):
            logger.debug("stale_load_discarded", entity_type=descriptor.entity_type, failed=False)
            return False
        self._apply_page(page, params)
        return True

    def _is_current(self, descriptor: QueryDescriptor, generation: int) -> bool:
        return generation == self._generation and descriptor == self._current

    def _apply_page(self, page: ListPage[Entity], params: Mapping[str, Any]) -> None:
        entities: list[Entity] = list(page.items)
        if self.settings.client_side_filtering:
            entities = self.filter_service.process(
                entities, params.get("search"), self._state.filters
            )
        self._set(
            entities=tuple(entities),
            pagination=Pagination.from_page(page),
            grouped=page.grouped,
            loading=False,
            error=None,
            available_filters=self.filter_service.available_filters(page.items),
            stats=self.filter_service.stats(entities),
            consecutive_failures=0,
            disabled_until=None,
        )
        logger.debug("entities_loaded", entity_type=self.entity_type, count=len(entities))

    def _record_failure(self, exc: Exception) -> None:
        failures = self._state.consecutive_failures + 1
        disabled_until = None
        if failures >= self.settings.max_consecutive_failures:
            disabled_until = self._clock() + self.settings.failure_cooldown
        self._set(
            loading=False,
            error=str(exc) or "Failed to load entities",
            entities=(),
            consecutive_failures=failures,
            disabled_until=disabled_until,
        )
        logger.warning(
            "load_failed",
            entity_type=self.entity_type,
            error=str(exc),
            consecutive_failures=failures,
            paused=disabled_until is not None,
        )

    # Query changes

    async def set_search_query(self, query: str) -> bool:
        self._set(search_query=query, pagination=replace(self._state.pagination, page=1))
        return await self.load_entities()

    async def set_filters(self, **changes: Any) -> bool:
        """Merge filter fields (filter_by, sort_by, sort_order, additional_filters) and reload."""
        self._set(
            filters=replace(self._state.filters, **changes),
            pagination=replace(self._state.pagination, page=1),
        )
        return await self.load_entities()

    async def set_additional_filters(self, **values: Any) -> bool:
        self._set(
            filters=self._state.filters.with_additional(**values),
            pagination=replace(self._state.pagination, page=1),
        )
        return await self.load_entities()

    async def set_page(self, page: int) -> bool:
        self._set(pagination=replace(self._state.pagination, page=max(1, page)))
        return await self.load_entities()

    async def set_page_size(self, page_size: int) -> bool:
        self._set(pagination=replace(self._state.pagination, page_size=page_size, page=1))
        return await self.load_entities()

    # Selection, focus, expansion, view

    def select_entity(self, entity_id: EntityKey) -> None:
        self._set(selection=self._state.selection | {entity_id})

    def deselect_entity(self, entity_id: EntityKey) -> None:
        self._set(selection=self._state.selection - {entity_id})

    def toggle_selection(self, entity_id: EntityKey) -> None:
        if entity_id in self._state.selection:
            self.deselect_entity(entity_id)
        else:
            self.select_entity(entity_id)

    def select_all(self) -> None:
        self._set(selection=frozenset(self._state.entity_ids()))

    def clear_selection(self) -> None:
        self._set(selection=frozenset())

    def selected_entities(self) -> list[Entity]:
        return [e for e in self._state.entities if e.id in self._state.selection]

    def set_focused(self, entity_id: EntityKey | None) -> None:
        self._set(focused=entity_id)

    def clear_focus(self) -> None:
        self._set(focused=None)

    def toggle_expansion(self, entity_id: EntityKey) -> None:
        expanded = self._state.expanded
        self._set(expanded=expanded - {entity_id} if entity_id in expanded else expanded | {entity_id})

    def expand_all(self) -> None:
        self._set(expanded=frozenset(self._state.entity_ids()))

    def collapse_all(self) -> None:
        self._set(expanded=frozenset())

    def set_view_mode(self, view_mode: ViewMode | str) -> None:
        self._set(view_mode=ViewMode(view_mode))

    def toggle_filters(self) -> None:
        self._set(show_filters=not self._state.show_filters)

    def toggle_bulk_actions(self) -> None:
        self._set(show_bulk_actions=not self._state.show_bulk_actions)

    # Lookups

    def get_entity(self, entity_id: EntityKey) -> Entity | None:
        for entity in self._state.entities:
            if entity.id == entity_id:
                return entity
        return None

    def capabilities(self, entity: Entity | None = None) -> Capabilities:
        return self.permissions.capabilities(PermissionContext(entity=entity))

    # Mutations

    async def optimistic_create(self, data: Mapping[str, Any], **options: Any) -> ActionResult:
        """Show a provisional entity at once, then create it remotely.

        On failure the provisional entity is removed again and ``error`` is set.

        Raises:
            PermissionDenied: State is restored before raising.
            ValidationError: State is restored before raising.
        """
        draft = Entity.provisional(self.entity_type, data)
        self._set(
            entities=(draft, *self._state.entities),
            stats=self._state.stats.adjusted(1),
        )

        def undo() -> None:
            self._set(
                entities=tuple(e for e in self._state.entities if e.id != draft.id),
                stats=self._state.stats.adjusted(-1),
            )

        try:
            result = await self.orchestrator.create(data, draft=draft, **options)
        except (PermissionDenied, ValidationError):
            undo()
            raise
        if not result.success:
            undo()
            self._set(error=result.error)
        elif result.data is not None:
            self._replace_entity(draft.id, result.data)
            self._set(error=None)
        return result

    async def optimistic_update(
        self, entity_id: EntityKey, updates: Mapping[str, Any], **options: Any
    ) -> ActionResult:
        """Apply updates to the visible entity at once, then update remotely.

        Updates queued on the same id are shown on top of each other but sent
        one at a time, each built on the last confirmed entity. A failed update
        drops only its own changes.

        Raises:
            PermissionDenied: State is restored before raising.
            ValidationError: State is restored before raising.
        """
        token = self._queue_edit(entity_id, updates)
        try:
            result = await self.orchestrator.update(entity_id, updates, **options)
        except BaseException:
            self._settle(entity_id, token)
            raise
        if not result.success:
            self._settle(entity_id, token)
            self._set(error=result.error)
        else:
            self._settle(entity_id, token, confirmed=result.data)
            self._set(error=None)
        return result

    async def optimistic_delete(self, entity_id: EntityKey, **options: Any) -> ActionResult:
        """Hide the entity at once, then delete it remotely.

        A failed delete puts the entity back at its position and selection.

        Raises:
            PermissionDenied: State is restored before raising.
        """
        token = self._queue_edit(entity_id, None)
        try:
            result = await self.orchestrator.delete(entity_id, **options)
        except BaseException:
            self._settle(entity_id, token)
            raise
        if not result.success:
            self._settle(entity_id, token)
            self._set(error=result.error)
        else:
            self._settle(entity_id, token, deleted=True)
            self._set(error=None)
        return result

    def _baseline(self, entity_id: EntityKey) -> Entity | None:
        """Last confirmed version of an entity; never a speculative one."""
        edits = self._edits.get(entity_id)
        if edits is not None:
            return edits.confirmed
        return self.get_entity(entity_id) or self.cache_manager.find_entity(entity_id)

    def _queue_edit(self, entity_id: EntityKey, change: Mapping[str, Any] | None) -> object | None:
        """Show a pending change (None means delete) and return its token."""
        edits = self._edits.get(entity_id)
        if edits is None:
            current = self.get_entity(entity_id)
            if current is None:
                return None
            edits = _PendingEdits(
                confirmed=current,
                index=self._state.entity_ids().index(entity_id),
                selected=entity_id in self._state.selection,
            )
            self._edits[entity_id] = edits
        if change is not None and edits.confirmed is not None:
            # Unknown attributes raise here, before anything is shown
            edits.confirmed.merge(change)
        token = object()
        edits.changes.append((token, change))
        self._render(entity_id, edits)
        return token

    def _settle(
        self,
        entity_id: EntityKey,
        token: object | None,
        *,
        confirmed: Entity | None = None,
        deleted: bool = False,
    ) -> None:
        """Drop a finished change and show what remains on the confirmed entity."""
        edits = self._edits.get(entity_id)
        if edits is None or token is None:
            return
        remaining = [(t, c) for t, c in edits.changes if t is not token]
        if len(remaining) == len(edits.changes):
            return
        edits.changes = remaining
        if deleted:
            edits.confirmed = None
        elif confirmed is not None:
            edits.confirmed = confirmed
        self._render(entity_id, edits)

    def _render(self, entity_id: EntityKey, edits: _PendingEdits) -> None:
        entity = edits.confirmed
        hidden = entity is None
        for _, change in edits.changes:
            if change is None:
                hidden = True
            elif entity is not None:
                entity = entity.merge(change)
        if entity is not None and edits.changes:
            entity = entity.merge({"optimistic": True})
        if not edits.changes:
            del self._edits[entity_id]

        ids = self._state.entity_ids()
        shown = entity_id in ids
        if hidden or entity is None:
            if shown:
                edits.index = ids.index(entity_id)
                self._set(
                    entities=tuple(e for e in self._state.entities if e.id != entity_id),
                    selection=self._state.selection - {entity_id},
                    stats=self._state.stats.adjusted(-1),
                )
        elif shown:
            self._replace_entity(entity_id, entity)
        else:
            restored = list(self._state.entities)
            restored.insert(min(edits.index, len(restored)), entity)
            selection = self._state.selection
            self._set(
                entities=tuple(restored),
                selection=selection | {entity_id} if edits.selected else selection,
                stats=self._state.stats.adjusted(1),
            )

    async def bulk_update(
        self, entity_ids: Iterable[EntityKey] | None = None, updates: Mapping[str, Any] | None = None
    ) -> BulkResult:
        """Update many entities (the selection by default), one after another."""
        ids = list(self._state.selection if entity_ids is None else entity_ids)
        bulk = await self.orchestrator.bulk_update(ids, updates or {})
        for result in bulk.results:
            if result.success and result.data is not None and result.entity_id is not None:
                self._replace_entity(result.entity_id, result.data)
        self._set_bulk_error(bulk)
        return bulk

    async def bulk_delete(self, entity_ids: Iterable[EntityKey] | None = None) -> BulkResult:
        """Delete many entities (the selection by default), one after another."""
        ids = list(self._state.selection if entity_ids is None else entity_ids)
        bulk = await self.orchestrator.bulk_delete(ids)
        removed = set(bulk.succeeded_ids)
        if removed:
            remaining = tuple(e for e in self._state.entities if e.id not in removed)
            self._set(
                entities=remaining,
                selection=self._state.selection - removed,
                stats=self.filter_service.stats(remaining),
            )
        self._set_bulk_error(bulk)
        return bulk

    def _set_bulk_error(self, bulk: BulkResult) -> None:
        summary = bulk.summary
        if bulk.success:
            self._set(error=None)
        else:
            self._set(error=f"{summary.errors} of {summary.total} operations failed")

    def _replace_entity(self, entity_id: EntityKey, entity: Entity) -> None:
        self._set(
            entities=tuple(entity if e.id == entity_id else e for e in self._state.entities)
        )

    def invalidate_cache(self, mutation: MutationKind = MutationKind.UPDATE, entity: Entity | None = None) -> None:
        self.cache_manager.invalidate(mutation, entity)

    # Lifecycle

    def reset(self) -> None:
        """Return to the initial state; in-flight loads are discarded on arrival."""
        self._generation += 1
        self._current = None
        self._edits.clear()
        self._state = self._initial_state()
        logger.debug("workspace_reset", entity_type=self.entity_type)

    def switch_entity_type(
        self,
        entity_type: EntityTypeTag,
        remote: RemoteDataSource | None = None,
        adapter_config: Mapping[str, Any] | None = None,
    ) -> None:
        """Rebind the store to another entity type and reset its state.

        Raises:
            ConfigurationError: If no adapter is registered for the type.
        """
        previous = self.entity_type
        if remote is not None:
            self.remote = remote
        if adapter_config is not None:
            self.adapter_config = adapter_config
        self._bind(entity_type)
        self.reset()
        logger.info("workspace_switched", previous=previous, entity_type=entity_type)

    def debug_info(self) -> dict[str, Any]:
        state = self._state
        return {
            "entity_type": state.entity_type,
            "entity_count": len(state.entities),
            "selected_count": len(state.selection),
            "expanded_count": len(state.expanded),
            "current_page": state.pagination.page,
            "total_pages": state.pagination.total_pages,
            "filters": state.filters,
            "search_query": state.search_query,
            "view_mode": state.view_mode.value,
            "loading": state.loading,
            "error": state.error,
            "consecutive_failures": state.consecutive_failures,
            "disabled_until": state.disabled_until,
            "generation": self._generation,
            "cache": self.cache_manager.cache_stats(),
        }
