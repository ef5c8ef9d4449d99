"""Transformed entity models.

Every algorithm in entityspace works on these normalized projections, never on
entity-specific raw fields. Adapters produce them from raw records.

Usage:
    entity = adapter.transform(raw)
    renamed = entity.merge({"title": "New title"})
    draft = Entity.provisional("requirement", {"title": "X"})
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from entityspace.core.errors import ValidationError
from entityspace.core.types import EntityKey, EntityTypeTag

PROVISIONAL_PREFIX = "temp_"


@dataclass(frozen=True, slots=True)
class Label:
    """Named status-like value (status, assessment)."""

    id: EntityKey | None
    name: str
    color: str = "#6B7280"


@dataclass(frozen=True, slots=True)
class Topic:
    """Grouping category an entity belongs to."""

    id: EntityKey | None
    title: str


@dataclass(frozen=True, slots=True)
class RelatedEntity:
    """Normalized reference to a related record (e.g. a measure linked to a requirement)."""

    id: EntityKey
    entity_type: EntityTypeTag
    uid: str = ""
    title: str = ""
    status: Label | None = None
    mandatory: bool = False
    priority: int | None = None
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class Entity:
    """Adapter-normalized projection of a raw record.

    Attributes:
        id: Internal identifier.
        entity_type: Entity type tag the record belongs to.
        uid: Human-readable code shown to end users.
        title: Display title.
        description: Plain-text description.
        status: Status label, if any.
        assessment: Assessment label, if any.
        topic: Topic the record is grouped under, if any.
        priority: Numeric priority, if any.
        mandatory: Whether the record is mandatory.
        created_at: Creation instant.
        updated_at: Last modification instant.
        created_by: Id of the creating user.
        assigned_to: Id of the assigned user.
        unit_id: Organizational unit owning the record.
        project_id: Project the record is scoped to.
        parent_id: Parent record id for hierarchies.
        locked: Explicit lock flag.
        optimistic: True while the record only exists as an optimistic patch.
        raw: The raw record this projection was built from.
    """

    id: EntityKey
    entity_type: EntityTypeTag
    uid: str = ""
    title: str = ""
    description: str = ""
    status: Label | None = None
    assessment: Label | None = None
    topic: Topic | None = None
    priority: int | None = None
    mandatory: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: EntityKey | None = None
    assigned_to: EntityKey | None = None
    unit_id: EntityKey | None = None
    project_id: EntityKey | None = None
    parent_id: EntityKey | None = None
    locked: bool = False
    optimistic: bool = False
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def status_name(self) -> str:
        return self.status.name if self.status else ""

    @property
    def assessment_name(self) -> str:
        return self.assessment.name if self.assessment else ""

    @property
    def topic_title(self) -> str:
        return self.topic.title if self.topic else ""

    @property
    def is_provisional(self) -> bool:
        """True for entities created client-side that have no server id yet."""
        return isinstance(self.id, str) and self.id.startswith(PROVISIONAL_PREFIX)

    def merge(self, updates: Mapping[str, Any]) -> Entity:
        """Return a copy with the given attributes replaced.

        Args:
            updates: Attribute name to new value.

        Returns:
            New Entity; self is left untouched.

        Raises:
            ValidationError: If an update names an unknown attribute.
        """
        unknown = set(updates) - _FIELD_NAMES
        if unknown:
            raise ValidationError(f"Unknown entity attributes: {sorted(unknown)}")
        return dataclasses.replace(self, **dict(updates))

    @classmethod
    def provisional(cls, entity_type: EntityTypeTag, data: Mapping[str, Any]) -> Entity:
        """Build a client-side entity for an optimistic create.

        Args:
            entity_type: Type of the entity being created.
            data: Attribute values supplied by the caller.

        Returns:
            Entity flagged optimistic, with a temporary id.

        Raises:
            ValidationError: If data names an unknown attribute.
        """
        unknown = set(data) - _FIELD_NAMES
        if unknown:
            raise ValidationError(f"Unknown entity attributes: {sorted(unknown)}")
        values = {k: v for k, v in data.items() if k not in ("id", "entity_type", "optimistic")}
        return cls(
            id=f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex[:12]}",
            entity_type=entity_type,
            optimistic=True,
            **values,
        )


_FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(Entity))
