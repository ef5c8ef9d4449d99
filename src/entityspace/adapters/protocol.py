"""Adapter protocol for entity-type polymorphism.

Every component of entityspace talks to entity types only through this
contract, never through entity-specific field names.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from entityspace.adapters.models import FilterOption, ListPage, SortOption
from entityspace.core.entity import Entity, RelatedEntity
from entityspace.core.types import EntityTypeTag, RawEntity


@runtime_checkable
class EntityAdapter(Protocol):
    """Protocol for per-entity-type strategy objects.

    Usage:
        class TicketAdapter(BaseAdapter):
            def transform(self, raw): ...
            def transform_request(self, entity): ...

        registry.register("ticket", TicketAdapter)
        adapter: EntityAdapter = registry.get("ticket")
        entity = adapter.transform(raw)
    """

    entity_type: EntityTypeTag
    display_name: str

    def extract_uid(self, raw: RawEntity) -> str:
        """Get the human-readable code of a raw record.

        Args:
            raw: Raw record.

        Returns:
            UID string, generated from the id when the record has none.
        """
        ...

    def extract_title(self, raw: RawEntity) -> str:
        """Get the display title of a raw record.

        Args:
            raw: Raw record.

        Returns:
            Title string ("" if absent).
        """
        ...

    def transform(self, raw: RawEntity) -> Entity:
        """Normalize a raw record into an Entity.

        Args:
            raw: Raw record.

        Returns:
            Transformed entity keeping a back-reference to raw.
        """
        ...

    def transform_response(self, raw: Any) -> ListPage[Entity]:
        """Normalize a raw list response (paginated, grouped or bare list).

        Args:
            raw: Response from the remote list function.

        Returns:
            Page of transformed entities.
        """
        ...

    def get_sort_options(self) -> list[SortOption]:
        """Get sortable fields for this entity type.

        Returns:
            Sort options in display order.
        """
        ...

    def get_filter_options(self) -> list[FilterOption]:
        """Get filter fields for this entity type.

        Returns:
            Filter options in display order.
        """
        ...

    def supports_group_by_topic(self) -> bool:
        """Check if list responses can be grouped by topic.

        Returns:
            True if the remote list returns topic groups.
        """
        ...

    def transform_request(self, entity: Entity) -> dict[str, Any]:
        """Turn an entity into the outbound payload for create/update.

        Args:
            entity: Entity to send.

        Returns:
            Raw payload.

        Raises:
            ValidationError: If the entity cannot be expressed as a payload.
        """
        ...

    def normalize_relationships(self, raw: RawEntity, relation_name: str) -> list[RelatedEntity]:
        """Extract normalized references for one declared relation.

        Args:
            raw: Raw record.
            relation_name: Name of the relation (a key of declared_relationships()).

        Returns:
            Related entity references (empty if the relation is absent).
        """
        ...

    def declared_relationships(self) -> Mapping[str, EntityTypeTag]:
        """Get the relations this entity type declares.

        Returns:
            Relation name to related entity type.
        """
        ...

    def project_variant(self) -> EntityTypeTag | None:
        """Get the project-scoped counterpart of this entity type.

        Returns:
            Entity type of project-scoped copies, or None.
        """
        ...
