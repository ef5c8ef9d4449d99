"""Combined adapter: one workspace listing two entity types side by side.

A combined listing (requirements with their measures, say) holds rows of both
member types. Each row is resolved to its own type and transformed by that
type's adapter, so downstream code sees ordinary entities whose
``entity_type`` names the member type, while cache keys use the combined tag.

Usage:
    registry.register("combined", combined_factory(registry, "requirement", "measure"))
    adapter = registry.get("combined")
    entity = adapter.transform(raw)              # entity.entity_type == "measure"
    draft = adapter.create_new_entity("measure", {"title": "New measure"})
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from entityspace.adapters.base import BaseAdapter
from entityspace.adapters.models import FilterOption, SortOption
from entityspace.adapters.protocol import EntityAdapter
from entityspace.core.entity import Entity, RelatedEntity
from entityspace.core.errors import ConfigurationError
from entityspace.core.types import EntityTypeTag, RawEntity

if TYPE_CHECKING:
    from entityspace.adapters.registry import AdapterFactory, AdapterRegistry

logger = structlog.get_logger(__name__)

ENTITY_TYPE_ALIASES: dict[str, EntityTypeTag] = {
    "krav": "requirement",
    "tiltak": "measure",
    "prosjektkrav": "project-requirement",
    "prosjekttiltak": "project-measure",
    "prosjekt-krav": "project-requirement",
    "prosjekt-tiltak": "project-measure",
}
"""Backend spellings of entity type markers."""

ENTITY_TYPE_SORT = SortOption("entity_type", "Type")


class CombinedAdapter(BaseAdapter):
    """Adapter over a primary and a secondary member adapter.

    Args:
        entity_type: Tag of the combined listing.
        primary: Adapter of the leading member type.
        secondary: Adapter of the other member type.
        config: Optional adapter configuration.
    """

    def __init__(
        self,
        entity_type: EntityTypeTag,
        primary: EntityAdapter,
        secondary: EntityAdapter,
        config: Mapping[str, Any] | None = None,
    ):
        super().__init__(entity_type, config)
        self.primary = primary
        self.secondary = secondary
        self._members: dict[EntityTypeTag, EntityAdapter] = {
            primary.entity_type: primary,
            secondary.entity_type: secondary,
        }
        self._group_by_topic = bool(
            self.config.get(
                "group_by_topic",
                primary.supports_group_by_topic() or secondary.supports_group_by_topic(),
            )
        )
        keys: list[str] = []
        for member in (primary, secondary):
            keys.extend(getattr(member, "group_item_keys", ()))
        self.group_item_keys = tuple(dict.fromkeys([*keys, *BaseAdapter.group_item_keys]))

    @property
    def member_types(self) -> tuple[EntityTypeTag, ...]:
        return tuple(self._members)

    def adapter_for(self, entity_type: EntityTypeTag) -> EntityAdapter:
        """Get the member adapter of an entity type.

        Raises:
            ConfigurationError: If the type is not a member of this listing.
        """
        resolved = ENTITY_TYPE_ALIASES.get(entity_type.lower(), entity_type)
        adapter = self._members.get(resolved)
        if adapter is None:
            raise ConfigurationError(
                f"{entity_type!r} is not part of {self.entity_type!r}. "
                f"Members: {list(self._members)}"
            )
        return adapter

    def resolve_entity_type(self, raw: RawEntity) -> EntityTypeTag:
        """Work out which member type a raw row belongs to.

        An explicit marker wins; otherwise the row's shape decides. Rows that
        match neither member are treated as the primary type.
        """
        marker = (raw.get("__entityType") or raw.get("entityType")) if raw else None
        candidate = str(marker) if marker else self.detect_entity_type(raw)
        candidate = ENTITY_TYPE_ALIASES.get(candidate.lower(), candidate)
        if candidate in self._members:
            return candidate
        logger.warning(
            "entity_type_unresolved",
            entity_type=self.entity_type,
            detected=candidate,
            row_id=raw.get("id") if raw else None,
        )
        return self.primary.entity_type

    def create_new_entity(self, entity_type: EntityTypeTag, data: Mapping[str, Any]) -> Entity:
        """Build a provisional entity of one member type.

        Raises:
            ConfigurationError: If the type is not a member of this listing.
            ValidationError: If data names an unknown attribute.
        """
        member = self.adapter_for(entity_type)
        return Entity.provisional(member.entity_type, data)

    # Delegated per row

    def extract_uid(self, raw: RawEntity) -> str:
        return self.adapter_for(self.resolve_entity_type(raw)).extract_uid(raw)

    def extract_title(self, raw: RawEntity) -> str:
        return self.adapter_for(self.resolve_entity_type(raw)).extract_title(raw)

    def transform(self, raw: RawEntity) -> Entity:
        return self.adapter_for(self.resolve_entity_type(raw)).transform(raw)

    def transform_request(self, entity: Entity) -> dict[str, Any]:
        """Build the member payload, marked with its type so the remote can route it."""
        member = self.adapter_for(entity.entity_type)
        payload = member.transform_request(entity)
        payload.setdefault("entityType", member.entity_type)
        return payload

    def normalize_relationships(self, raw: RawEntity, relation_name: str) -> list[RelatedEntity]:
        member = self.adapter_for(self.resolve_entity_type(raw))
        if relation_name not in member.declared_relationships():
            return []
        return member.normalize_relationships(raw, relation_name)

    # Catalogs span both members

    def get_sort_options(self) -> list[SortOption]:
        options = [*self.primary.get_sort_options(), ENTITY_TYPE_SORT]
        for option in self.secondary.get_sort_options():
            if all(option.key != existing.key for existing in options):
                options.append(option)
        return options

    def get_filter_options(self) -> list[FilterOption]:
        type_filter = FilterOption("entity_type", "Type", placeholder="All types")
        options = [type_filter, *self.primary.get_filter_options()]
        for option in self.secondary.get_filter_options():
            if all(option.key != existing.key for existing in options):
                options.append(option)
        return options

    def declared_relationships(self) -> Mapping[str, EntityTypeTag]:
        return {
            **self.secondary.declared_relationships(),
            **self.primary.declared_relationships(),
        }

    def project_variant(self) -> EntityTypeTag | None:
        return self.config.get("project_type")


def combined_factory(
    registry: AdapterRegistry, primary: EntityTypeTag, secondary: EntityTypeTag
) -> AdapterFactory:
    """Factory building a CombinedAdapter from two types registered in a registry.

    Member adapters are looked up when the combined adapter is built, so they
    share instances with the rest of the registry.
    """

    def build(entity_type: EntityTypeTag, config: Mapping[str, Any] | None = None) -> EntityAdapter:
        return CombinedAdapter(entity_type, registry.get(primary), registry.get(secondary), config)

    return build
