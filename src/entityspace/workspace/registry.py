"""Workspace registry with explicit lifecycle.

Usage:
    workspaces = WorkspaceRegistry(adapters, cache, remote_for, user=user)
    store = workspaces.get("requirement")          # created on first use
    same = workspaces.get("requirement")           # same instance
    workspaces.dispose("requirement")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from entityspace.actions.remote import RemoteDataSource
from entityspace.adapters.registry import AdapterRegistry
from entityspace.cache.protocol import QueryCache
from entityspace.config.settings import WorkspaceSettings, config_hash
from entityspace.core.types import EntityTypeTag
from entityspace.permissions.models import PermissionConfig, UserContext
from entityspace.workspace.store import WorkspaceStore

logger = structlog.get_logger(__name__)

RemoteFactory = Callable[[EntityTypeTag], RemoteDataSource]
"""Signature: (entity_type) -> remote data source for that type."""


class WorkspaceRegistry:
    """Creates and caches workspace stores per ``(entity_type, config_hash)``.

    All stores share the registry's adapter registry, query cache, user and
    settings.

    Args:
        adapters: Adapter registry.
        cache: Shared query cache.
        remote_factory: Builds the remote data source of an entity type.
        user: Session user.
        settings: Workspace settings.
        permission_config: Permission rule tables.
    """

    def __init__(
        self,
        adapters: AdapterRegistry,
        cache: QueryCache,
        remote_factory: RemoteFactory,
        user: UserContext | None = None,
        settings: WorkspaceSettings | None = None,
        permission_config: PermissionConfig | None = None,
    ):
        self.adapters = adapters
        self.cache = cache
        self.remote_factory = remote_factory
        self.user = user
        self.settings = settings or WorkspaceSettings()
        self.permission_config = permission_config
        self._stores: dict[tuple[EntityTypeTag, str], WorkspaceStore] = {}

    def get(self, entity_type: EntityTypeTag, config: Mapping[str, Any] | None = None) -> WorkspaceStore:
        """Get the store for an entity type and adapter config, creating it on first use.

        Raises:
            ConfigurationError: If no adapter is registered for the type.
        """
        key = (entity_type, config_hash(config))
        store = self._stores.get(key)
        if store is None:
            store = WorkspaceStore(
                entity_type,
                self.adapters,
                self.cache,
                self.remote_factory(entity_type),
                self.user,
                self.settings,
                adapter_config=config,
                permission_config=self.permission_config,
            )
            self._stores[key] = store
            logger.debug("workspace_created", entity_type=entity_type, config_hash=key[1])
        return store

    def dispose(self, entity_type: EntityTypeTag | None = None) -> int:
        """Reset and drop stores.

        Args:
            entity_type: Only dispose stores of this type; all when None.

        Returns:
            Number of stores dropped.
        """
        keys = [k for k in self._stores if entity_type is None or k[0] == entity_type]
        for key in keys:
            self._stores.pop(key).reset()
        if keys:
            logger.debug("workspaces_disposed", entity_type=entity_type, count=len(keys))
        return len(keys)

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, entity_type: object) -> bool:
        return any(key[0] == entity_type for key in self._stores)
