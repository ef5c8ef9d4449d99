"""Adapter registry with explicit lifecycle.

The registry is an ordinary object handed to the services that need it; there
is no process-wide adapter cache.

Usage:
    registry = AdapterRegistry()
    registry.register("ticket", TicketAdapter)
    adapter = registry.get("ticket")              # created on first use
    adapter = registry.get("ticket", {"display_name": "Tickets"})  # separate instance
    registry.dispose("ticket")                    # drop cached instances
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from entityspace.adapters.combined import combined_factory
from entityspace.adapters.protocol import EntityAdapter
from entityspace.adapters.records import (
    MeasureAdapter,
    ProjectMeasureAdapter,
    ProjectRequirementAdapter,
    RequirementAdapter,
)
from entityspace.config.settings import config_hash
from entityspace.core.errors import ConfigurationError
from entityspace.core.types import EntityTypeTag

logger = structlog.get_logger(__name__)

AdapterFactory = Callable[[EntityTypeTag, Mapping[str, Any] | None], EntityAdapter]
"""Signature: (entity_type, config) -> adapter instance."""


class AdapterRegistry:
    """Maps entity types to adapter factories and caches built adapters.

    Instances are cached per ``(entity_type, config_hash)`` so two workspaces
    with the same configuration share one adapter.
    """

    def __init__(self) -> None:
        self._factories: dict[EntityTypeTag, AdapterFactory] = {}
        self._instances: dict[tuple[EntityTypeTag, str], EntityAdapter] = {}

    def register(self, entity_type: EntityTypeTag, factory: AdapterFactory) -> None:
        """Register (or replace) the adapter factory for an entity type.

        Replacing a factory disposes adapters built by the old one.

        Args:
            entity_type: Entity type tag.
            factory: Callable building an adapter; adapter classes qualify.
        """
        if entity_type in self._factories:
            logger.warning("adapter_factory_replaced", entity_type=entity_type)
            self.dispose(entity_type)
        self._factories[entity_type] = factory
        logger.debug("adapter_factory_registered", entity_type=entity_type)

    def get(
        self, entity_type: EntityTypeTag, config: Mapping[str, Any] | None = None
    ) -> EntityAdapter:
        """Get the adapter for an entity type, building it on first use.

        Args:
            entity_type: Entity type tag.
            config: Adapter configuration; part of the cache key.

        Returns:
            Adapter instance.

        Raises:
            ConfigurationError: If no factory is registered for the type, or
                the factory built something that is not an EntityAdapter.
        """
        factory = self._factories.get(entity_type)
        if factory is None:
            raise ConfigurationError(
                f"No adapter registered for entity type {entity_type!r}. "
                f"Registered: {sorted(self._factories)}"
            )
        key = (entity_type, config_hash(config))
        adapter = self._instances.get(key)
        if adapter is None:
            adapter = factory(entity_type, config)
            if not isinstance(adapter, EntityAdapter):
                raise ConfigurationError(
                    f"Factory for {entity_type!r} returned {type(adapter).__name__}, "
                    "which does not implement EntityAdapter"
                )
            self._instances[key] = adapter
            logger.debug("adapter_created", entity_type=entity_type, config_hash=key[1])
        return adapter

    def has(self, entity_type: EntityTypeTag) -> bool:
        return entity_type in self._factories

    def registered_types(self) -> list[EntityTypeTag]:
        return sorted(self._factories)

    def dispose(self, entity_type: EntityTypeTag | None = None) -> int:
        """Drop cached adapter instances.

        Args:
            entity_type: Only dispose adapters of this type; all when None.

        Returns:
            Number of instances dropped.
        """
        keys = [k for k in self._instances if entity_type is None or k[0] == entity_type]
        for key in keys:
            del self._instances[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._instances)


def default_registry() -> AdapterRegistry:
    """Registry with the requirement and measure record families registered.

    "combined" lists requirements with measures; "project-combined" does the
    same for project-scoped copies.
    """
    registry = AdapterRegistry()
    registry.register("requirement", RequirementAdapter)
    registry.register("measure", MeasureAdapter)
    registry.register("project-requirement", ProjectRequirementAdapter)
    registry.register("project-measure", ProjectMeasureAdapter)
    registry.register("combined", combined_factory(registry, "requirement", "measure"))
    registry.register(
        "project-combined",
        combined_factory(registry, "project-requirement", "project-measure"),
    )
    return registry
