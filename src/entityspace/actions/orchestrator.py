"""Action orchestrator: permission check, payload, optimistic patch, remote call.

Each mutation runs ``pending -> (permission denied | remote error | success)``:

1. Authorize. Denial raises PermissionDenied; nothing is patched or sent.
2. Build the outbound payload. Adapter failures raise ValidationError.
3. Apply an optimistic patch unless disabled.
4. Call the remote data source.
5. Success: commit the patch (or invalidate when no patch was applied),
   transform the response, call ``on_success``. A response that cannot be
   transformed yields a failed result, but the cache is not rolled back.
6. Failure: roll the patch back, call ``on_error``, return a failed
   ActionResult. Remote errors and callback errors never propagate past the
   orchestrator.

Usage:
    orchestrator = ActionOrchestrator(adapter, manager, permissions, remote)
    result = await orchestrator.update(42, {"title": "Renamed"})
    if not result.success:
        print(result.error)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any

import structlog

from entityspace.actions.models import (
    ActionResult,
    BulkResult,
    ConflictPolicy,
    ValidationReport,
)
from entityspace.actions.remote import RemoteDataSource
from entityspace.adapters.protocol import EntityAdapter
from entityspace.cache.keys import MutationKind
from entityspace.cache.manager import CacheManager
from entityspace.cache.patch import OptimisticPatch
from entityspace.config.settings import WorkspaceSettings
from entityspace.core.entity import Entity
from entityspace.core.errors import (
    EntitySpaceError,
    MutationConflict,
    PermissionDenied,
    RemoteError,
    ValidationError,
)
from entityspace.core.types import EntityKey, RawEntity
from entityspace.permissions.models import Action, PermissionContext
from entityspace.permissions.service import PermissionService

logger = structlog.get_logger(__name__)

SuccessCallback = Callable[[Entity], Any]
ErrorCallback = Callable[[EntitySpaceError, Entity | None], Any]


class ActionOrchestrator:
    """Runs create/update/delete for one entity type.

    Args:
        adapter: Adapter of the entity type.
        cache_manager: Cache manager for the same type.
        permissions: Permission service for the same type.
        remote: Remote data source.
        settings: Optimistic, permission and conflict-policy defaults.
        lookup: Resolves the confirmed entity for an id once the per-id guard
            is held; the cache is searched when it is not given.
    """

    def __init__(
        self,
        adapter: EntityAdapter,
        cache_manager: CacheManager,
        permissions: PermissionService,
        remote: RemoteDataSource,
        settings: WorkspaceSettings | None = None,
        lookup: Callable[[EntityKey], Entity | None] | None = None,
    ):
        self.adapter = adapter
        self.cache_manager = cache_manager
        self.permissions = permissions
        self.remote = remote
        self.settings = settings or WorkspaceSettings()
        self.lookup = lookup
        self.conflict_policy = ConflictPolicy.parse(self.settings.conflict_policy)
        self._locks: dict[EntityKey, asyncio.Lock] = {}
        self._lock_users: dict[EntityKey, int] = {}
        self._in_flight: set[EntityKey] = set()

    @property
    def entity_type(self) -> str:
        return self.adapter.entity_type

    # Single mutations

    async def create(
        self,
        data: Mapping[str, Any],
        *,
        optimistic: bool | None = None,
        context: PermissionContext | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        draft: Entity | None = None,
    ) -> ActionResult:
        """Create an entity.

        Args:
            data: Entity attribute values.
            optimistic: Apply an optimistic patch; settings default when None.
            context: Scope of the permission check.
            on_success: Called with the created entity.
            on_error: Called with the error and the draft entity.
            draft: Pre-built provisional entity (the workspace store passes the
                one it already shows).

        Returns:
            ActionResult with the server entity on success.

        Raises:
            PermissionDenied: If the user may not create this type.
            ValidationError: If the data cannot be turned into a payload.
        """
        draft = draft or Entity.provisional(self.entity_type, data)
        self._authorize(Action.CREATE, draft, context)
        payload = self._payload(draft)

        async with self._guard(draft.id) as conflict:
            if conflict is not None:
                return self._conflict_result("create", draft, conflict, on_error)
            return await self._execute(
                MutationKind.CREATE,
                draft,
                lambda: self.remote.create(payload),
                optimistic=optimistic,
                on_success=on_success,
                on_error=on_error,
            )

    async def update(
        self,
        entity_id: EntityKey,
        updates: Mapping[str, Any],
        *,
        existing: Entity | None = None,
        optimistic: bool | None = None,
        context: PermissionContext | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> ActionResult:
        """Update an entity.

        The current entity comes from ``existing`` or, failing that, from the
        lookup (or the cache), resolved after any pending mutation on the id
        has finished.

        Raises:
            PermissionDenied: If the user may not edit the entity.
            ValidationError: If the updates cannot be turned into a payload.
        """
        async with self._guard(entity_id) as conflict:
            current = existing or self._resolve(entity_id)
            if current is None:
                return _not_found("update", entity_id)
            if conflict is not None:
                return self._conflict_result("update", current, conflict, on_error)

            self._authorize(Action.EDIT, current, context)
            updated = current.merge(updates)
            payload = self._payload(updated)
            return await self._execute(
                MutationKind.UPDATE,
                updated,
                lambda: self.remote.update(entity_id, payload),
                optimistic=optimistic,
                on_success=on_success,
                on_error=on_error,
            )

    async def delete(
        self,
        entity_id: EntityKey,
        *,
        existing: Entity | None = None,
        optimistic: bool | None = None,
        context: PermissionContext | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> ActionResult:
        """Delete an entity.

        Raises:
            PermissionDenied: If the user may not delete the entity.
        """
        async with self._guard(entity_id) as conflict:
            current = existing or self._resolve(entity_id)
            if current is None:
                return _not_found("delete", entity_id)
            if conflict is not None:
                return self._conflict_result("delete", current, conflict, on_error)

            self._authorize(Action.DELETE, current, context)
            return await self._execute(
                MutationKind.DELETE,
                current,
                lambda: self.remote.delete(entity_id),
                optimistic=optimistic,
                on_success=on_success,
                on_error=on_error,
            )

    # Bulk mutations

    async def bulk_update(
        self,
        entity_ids: Iterable[EntityKey],
        updates: Mapping[str, Any],
        *,
        optimistic: bool | None = None,
        context: PermissionContext | None = None,
    ) -> BulkResult:
        """Update many entities one after another.

        Per-item permission and validation errors are recorded as failed
        results. The type's cache namespace is invalidated once at the end.
        """
        optimistic = self.settings.bulk_optimistic if optimistic is None else optimistic
        bulk = BulkResult(operation="bulk_update")
        try:
            for entity_id in entity_ids:
                try:
                    result = await self.update(
                        entity_id, updates, optimistic=optimistic, context=context
                    )
                except EntitySpaceError as exc:
                    result = _error_result("update", entity_id, exc)
                bulk.results.append(result)
        finally:
            self.cache_manager.invalidate(MutationKind.BULK_UPDATE)
        self._log_bulk(bulk)
        return bulk

    async def bulk_delete(
        self,
        entity_ids: Iterable[EntityKey],
        *,
        optimistic: bool | None = None,
        context: PermissionContext | None = None,
    ) -> BulkResult:
        """Delete many entities one after another; see bulk_update."""
        optimistic = self.settings.bulk_optimistic if optimistic is None else optimistic
        bulk = BulkResult(operation="bulk_delete")
        try:
            for entity_id in entity_ids:
                try:
                    result = await self.delete(entity_id, optimistic=optimistic, context=context)
                except EntitySpaceError as exc:
                    result = _error_result("delete", entity_id, exc)
                bulk.results.append(result)
        finally:
            self.cache_manager.invalidate(MutationKind.BULK_DELETE)
        self._log_bulk(bulk)
        return bulk

    # Validation

    def validate(self, data: Mapping[str, Any] | Entity, operation: str = "create") -> ValidationReport:
        """Check entity data without sending anything.

        Args:
            data: Entity attributes or an entity.
            operation: "create" or "update"; updates require an id.

        Returns:
            Report listing every problem found.
        """
        errors: list[str] = []
        values: Mapping[str, Any] = (
            {"id": data.id, "title": data.title} if isinstance(data, Entity) else data
        )
        if not str(values.get("title") or "").strip():
            errors.append("Title is required")
        if operation == "update" and values.get("id") is None:
            errors.append("Entity ID is required for updates")
        try:
            entity = data if isinstance(data, Entity) else Entity.provisional(self.entity_type, data)
            self._payload(entity)
        except ValidationError as exc:
            message = f"Validation error: {exc}"
            if str(exc) not in errors:
                errors.append(message)
        return ValidationReport(is_valid=not errors, errors=tuple(errors))

    # Internals

    def _resolve(self, entity_id: EntityKey) -> Entity | None:
        if self.lookup is not None:
            return self.lookup(entity_id)
        return self.cache_manager.find_entity(entity_id)

    def _authorize(self, action: Action, entity: Entity, context: PermissionContext | None) -> None:
        if not self.settings.validate_permissions:
            return
        base = context or PermissionContext()
        check = PermissionContext(
            user=base.user,
            entity=entity,
            project_id=base.project_id if base.project_id is not None else entity.project_id,
            scope=base.scope,
            topic_id=base.topic_id,
            parent=base.parent,
            check_parent=base.check_parent,
            check_related=base.check_related,
        )
        if not self.permissions.capabilities(check).allows(action):
            logger.info(
                "permission_denied",
                entity_type=self.entity_type,
                action=action.value,
                entity_id=entity.id,
            )
            raise PermissionDenied(
                action.value,
                self.entity_type,
                f"Permission denied: cannot {action.name.lower()} {self.adapter.display_name}",
            )

    def _payload(self, entity: Entity) -> dict[str, Any]:
        try:
            return self.adapter.transform_request(entity)
        except ValidationError:
            raise
        except (TypeError, ValueError, KeyError, AttributeError) as exc:
            raise ValidationError(f"Cannot build {self.entity_type} payload: {exc}") from exc

    async def _execute(
        self,
        mutation: MutationKind,
        entity: Entity,
        call: Callable[[], Awaitable[RawEntity | None]],
        *,
        optimistic: bool | None,
        on_success: SuccessCallback | None,
        on_error: ErrorCallback | None,
    ) -> ActionResult:
        operation = mutation.value
        use_patch = self.settings.enable_optimistic if optimistic is None else optimistic
        patch: OptimisticPatch | None = None
        if use_patch:
            patch = self.cache_manager.apply_optimistic_patch(mutation, entity)

        try:
            response = await call()
        except asyncio.CancelledError:
            if patch is not None:
                patch.rollback()
            raise
        except Exception as exc:
            if patch is not None:
                patch.rollback()
            error = RemoteError(str(exc) or f"{operation.capitalize()} operation failed")
            error.__cause__ = exc
            logger.warning(
                "remote_call_failed",
                entity_type=self.entity_type,
                operation=operation,
                entity_id=entity.id,
                error=str(error),
                rolled_back=patch is not None,
            )
            return self._failed(operation, entity, error, patch is not None, on_error)

        # The server has applied the change from here on
        if patch is not None:
            patch.commit()
        else:
            self.cache_manager.invalidate(mutation, entity)

        if mutation is MutationKind.DELETE or not response:
            result_entity = entity
        else:
            try:
                result_entity = self.adapter.transform(response)
            except Exception as exc:
                error = ValidationError(f"Cannot read {self.entity_type} response: {exc}")
                error.__cause__ = exc
                logger.warning(
                    "response_transform_failed",
                    entity_type=self.entity_type,
                    operation=operation,
                    entity_id=entity.id,
                    error=str(exc),
                )
                return self._failed(operation, entity, error, patch is not None, on_error)

        logger.info(
            "action_succeeded",
            entity_type=self.entity_type,
            operation=operation,
            entity_id=result_entity.id,
        )
        self._notify("on_success", on_success, result_entity)
        return ActionResult(
            success=True,
            operation=operation,
            data=result_entity,
            optimistic=patch is not None,
            entity_id=entity.id,
        )

    def _failed(
        self,
        operation: str,
        entity: Entity,
        error: EntitySpaceError,
        optimistic: bool,
        on_error: ErrorCallback | None,
    ) -> ActionResult:
        self._notify("on_error", on_error, error, entity)
        return ActionResult(
            success=False,
            operation=operation,
            error=str(error),
            optimistic=optimistic,
            entity_id=entity.id,
            exception=error,
        )

    def _notify(self, name: str, callback: Callable[..., Any] | None, *args: Any) -> None:
        """Run a caller callback; its errors are logged, never raised."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("action_callback_failed", entity_type=self.entity_type, callback=name)

    @asynccontextmanager
    async def _guard(self, entity_id: EntityKey) -> AsyncIterator[MutationConflict | None]:
        """Apply the conflict policy for one entity id.

        Yields None when the mutation may proceed, or the conflict when the
        REJECT policy refuses it.
        """
        if self.conflict_policy is ConflictPolicy.REJECT:
            if entity_id in self._in_flight:
                yield MutationConflict(f"Entity {entity_id!r} has a pending mutation")
                return
            self._in_flight.add(entity_id)
            try:
                yield None
            finally:
                self._in_flight.discard(entity_id)
            return

        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._lock_users[entity_id] = self._lock_users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield None
        finally:
            self._lock_users[entity_id] -= 1
            if self._lock_users[entity_id] == 0:
                del self._lock_users[entity_id]
                del self._locks[entity_id]

    def _conflict_result(
        self,
        operation: str,
        entity: Entity,
        conflict: MutationConflict,
        on_error: ErrorCallback | None,
    ) -> ActionResult:
        logger.warning(
            "mutation_conflict",
            entity_type=self.entity_type,
            operation=operation,
            entity_id=entity.id,
        )
        self._notify("on_error", on_error, conflict, entity)
        return _error_result(operation, entity.id, conflict)

    def _log_bulk(self, bulk: BulkResult) -> None:
        summary = bulk.summary
        logger.info(
            "bulk_action_completed",
            entity_type=self.entity_type,
            operation=bulk.operation,
            total=summary.total,
            success=summary.success,
            errors=summary.errors,
        )


def _not_found(operation: str, entity_id: EntityKey) -> ActionResult:
    return ActionResult(success=False, operation=operation, error="Entity not found", entity_id=entity_id)


def _error_result(operation: str, entity_id: EntityKey, exc: EntitySpaceError) -> ActionResult:
    return ActionResult(
        success=False,
        operation=operation,
        error=str(exc),
        entity_id=entity_id,
        exception=exc,
    )
