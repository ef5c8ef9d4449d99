"""Adapters for the requirement and measure record families.

The backend serves requirements (krav) and measures (tiltak) in a global
catalog and as project-scoped copies. Records cross-link: requirements list
their measures and measures list their requirements.
"""

from __future__ import annotations

from typing import Any, ClassVar

from entityspace.adapters.base import BaseAdapter
from entityspace.adapters.models import FilterOption, SortKind, SortOption
from entityspace.core.entity import Entity
from entityspace.core.errors import ValidationError
from entityspace.core.types import EntityTypeTag, RawEntity

RECORD_SORT_OPTIONS: tuple[SortOption, ...] = (
    SortOption("updated_at", "Last updated", SortKind.DATE),
    SortOption("created_at", "Created", SortKind.DATE),
    SortOption("title", "Title"),
    SortOption("uid", "UID"),
    SortOption("status", "Status"),
    SortOption("assessment", "Assessment"),
    SortOption("topic", "Topic"),
    SortOption("priority", "Priority", SortKind.NUMBER),
    SortOption("mandatory", "Mandatory", SortKind.BOOLEAN),
)

RECORD_FILTER_OPTIONS: tuple[FilterOption, ...] = (
    FilterOption("status", "Status", placeholder="All statuses"),
    FilterOption("assessment", "Assessment", placeholder="All assessments"),
    FilterOption("topic", "Topic", placeholder="All topics"),
    FilterOption("priority", "Priority", placeholder="All priorities"),
    FilterOption("mandatory", "Mandatory", placeholder="Mandatory and optional"),
)


class RecordAdapter(BaseAdapter):
    """Shared behavior of requirement and measure adapters."""

    group_by_topic = True
    sort_options = RECORD_SORT_OPTIONS
    filter_options = RECORD_FILTER_OPTIONS
    group_item_keys: ClassVar[tuple[str, ...]] = (
        "krav",
        "tiltak",
        "prosjektkrav",
        "prosjekttiltak",
        "entities",
    )

    def transform(self, raw: RawEntity) -> Entity:
        if raw is None:
            raise ValidationError(f"Cannot transform empty {self.entity_type} record")
        return self.build_entity(raw)

    def transform_request(self, entity: Entity) -> dict[str, Any]:
        if not entity.title or not entity.title.strip():
            raise ValidationError("Title is required")
        payload: dict[str, Any] = {
            "tittel": entity.title.strip(),
            "beskrivelse": entity.description,
            "statusId": entity.status.id if entity.status else None,
            "vurderingId": entity.assessment.id if entity.assessment else None,
            "emneId": entity.topic.id if entity.topic else None,
            "prioritet": entity.priority,
            "obligatorisk": entity.mandatory,
            "parentId": entity.parent_id,
        }
        if entity.project_id is not None:
            payload["projectId"] = entity.project_id
        if not entity.is_provisional:
            payload["id"] = entity.id
        return payload


class RequirementAdapter(RecordAdapter):
    """Requirements (krav) in the global catalog."""

    uid_prefix = "GK"
    uid_fields = ("kravUID", "uid")
    relationships: ClassVar[dict[str, EntityTypeTag]] = {"tiltak": "measure"}
    project_type = "project-requirement"


class MeasureAdapter(RecordAdapter):
    """Measures (tiltak) in the global catalog."""

    uid_prefix = "GT"
    uid_fields = ("tiltakUID", "uid")
    relationships: ClassVar[dict[str, EntityTypeTag]] = {"krav": "requirement"}
    project_type = "project-measure"


class ProjectRequirementAdapter(RecordAdapter):
    """Requirements copied into a project."""

    uid_prefix = "PK"
    uid_fields = ("prosjektKravUID", "kravUID", "uid")
    relationships: ClassVar[dict[str, EntityTypeTag]] = {"prosjektTiltak": "project-measure"}


class ProjectMeasureAdapter(RecordAdapter):
    """Measures copied into a project."""

    uid_prefix = "PT"
    uid_fields = ("prosjektTiltakUID", "tiltakUID", "uid")
    relationships: ClassVar[dict[str, EntityTypeTag]] = {"prosjektKrav": "project-requirement"}
