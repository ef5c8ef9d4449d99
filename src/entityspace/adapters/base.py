"""Base adapter with shared normalization helpers.

Concrete adapters subclass BaseAdapter and implement ``transform`` and
``transform_request``; everything else has a working default.

Usage:
    class TicketAdapter(BaseAdapter):
        uid_prefix = "TCK"

        def transform(self, raw):
            return self.build_entity(raw)

        def transform_request(self, entity):
            return {"title": entity.title}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

from entityspace.adapters.models import (
    FilterOption,
    ListPage,
    SortKind,
    SortOption,
)
from entityspace.core.entity import Entity, Label, RelatedEntity, Topic
from entityspace.core.types import EntityTypeTag, RawEntity

DEFAULT_SORT_OPTIONS: tuple[SortOption, ...] = (
    SortOption("updated_at", "Last updated", SortKind.DATE),
    SortOption("created_at", "Created", SortKind.DATE),
    SortOption("title", "Title"),
    SortOption("uid", "UID"),
    SortOption("status", "Status"),
    SortOption("priority", "Priority", SortKind.NUMBER),
)

DEFAULT_FILTER_OPTIONS: tuple[FilterOption, ...] = (
    FilterOption("status", "Status", placeholder="All statuses"),
    FilterOption("priority", "Priority", placeholder="All priorities"),
)


RELATED_UID_FIELDS = ("uid", "kravUID", "tiltakUID", "prosjektKravUID", "prosjektTiltakUID")


class BaseAdapter(ABC):
    """Abstract base for entity adapters.

    Class attributes configure the defaults; per-instance ``config`` can
    override ``display_name`` and ``group_by_topic``.

    Args:
        entity_type: Entity type tag this instance serves.
        config: Optional adapter configuration.
    """

    uid_prefix: ClassVar[str] = "ENT"
    uid_fields: ClassVar[tuple[str, ...]] = ("uid",)
    title_fields: ClassVar[tuple[str, ...]] = ("tittel", "navn", "title", "name")
    group_item_keys: ClassVar[tuple[str, ...]] = ("entities", "items")
    relationships: ClassVar[Mapping[str, EntityTypeTag]] = {}
    project_type: ClassVar[EntityTypeTag | None] = None
    group_by_topic: ClassVar[bool] = False
    sort_options: ClassVar[tuple[SortOption, ...]] = DEFAULT_SORT_OPTIONS
    filter_options: ClassVar[tuple[FilterOption, ...]] = DEFAULT_FILTER_OPTIONS

    def __init__(self, entity_type: EntityTypeTag, config: Mapping[str, Any] | None = None):
        self.entity_type = entity_type
        self.config: Mapping[str, Any] = dict(config or {})
        self.display_name: str = self.config.get(
            "display_name", entity_type.replace("-", " ").title()
        )
        self._group_by_topic = bool(self.config.get("group_by_topic", self.group_by_topic))

    # Contract methods subclasses must provide

    @abstractmethod
    def transform(self, raw: RawEntity) -> Entity:
        """Normalize a raw record into an Entity."""
        ...

    @abstractmethod
    def transform_request(self, entity: Entity) -> dict[str, Any]:
        """Turn an entity into an outbound payload."""
        ...

    # Contract methods with defaults

    def extract_title(self, raw: RawEntity) -> str:
        for name in self.title_fields:
            value = raw.get(name)
            if value:
                return str(value)
        return ""

    def extract_uid(self, raw: RawEntity) -> str:
        for name in self.uid_fields:
            value = raw.get(name)
            if value:
                return str(value)
        return f"{self.uid_prefix}{raw.get('id', '')}"

    def transform_response(self, raw: Any) -> ListPage[Entity]:
        """Normalize paginated, grouped, bare-list or single-record responses."""
        if raw is None:
            return ListPage()
        if isinstance(raw, ListPage):
            page: ListPage[Any] = raw
        elif isinstance(raw, list):
            page = ListPage(items=list(raw), total=len(raw), page_size=max(len(raw), 1))
        elif isinstance(raw, Mapping) and "items" in raw:
            page = ListPage.from_mapping(raw)
        elif isinstance(raw, Mapping):
            page = ListPage(items=[raw], total=1, page_size=1)
        else:
            raise TypeError(f"Unsupported list response type: {type(raw).__name__}")

        grouped = self.is_grouped(page.items)
        records = self.flatten_groups(page.items) if grouped else page.items
        items = [item if isinstance(item, Entity) else self.transform(item) for item in records]
        return ListPage(
            items=items,
            total=page.total,
            page=page.page,
            page_size=page.page_size,
            grouped=grouped,
        )

    def get_sort_options(self) -> list[SortOption]:
        return list(self.sort_options)

    def get_filter_options(self) -> list[FilterOption]:
        return list(self.filter_options)

    def supports_group_by_topic(self) -> bool:
        return self._group_by_topic

    def declared_relationships(self) -> Mapping[str, EntityTypeTag]:
        return dict(self.relationships)

    def project_variant(self) -> EntityTypeTag | None:
        return self.project_type

    def normalize_relationships(self, raw: RawEntity, relation_name: str) -> list[RelatedEntity]:
        related_type = self.declared_relationships().get(relation_name)
        items = raw.get(relation_name) if raw else None
        if not isinstance(items, list):
            return []
        refs = []
        for item in items:
            if not isinstance(item, Mapping) or item.get("id") is None:
                continue
            refs.append(
                RelatedEntity(
                    id=item["id"],
                    entity_type=related_type or self.detect_entity_type(item),
                    uid=_first(item, *RELATED_UID_FIELDS) or str(item["id"]),
                    title=self.extract_title(item),
                    status=self.normalize_label(item.get("status")),
                    mandatory=bool(item.get("obligatorisk", item.get("mandatory", False))),
                    priority=self.normalize_priority(item.get("prioritet", item.get("priority"))),
                    raw=item,
                )
            )
        return refs

    # Shared helpers

    def build_entity(self, raw: RawEntity, **overrides: Any) -> Entity:
        """Build an Entity from the common raw field spellings.

        Args:
            raw: Raw record.
            **overrides: Attribute values taking precedence over extraction.

        Returns:
            Transformed entity.
        """
        values: dict[str, Any] = {
            "id": raw.get("id"),
            "entity_type": self.entity_type,
            "uid": self.extract_uid(raw),
            "title": self.extract_title(raw),
            "description": self.normalize_description(raw),
            "status": self.normalize_label(raw.get("status")),
            "assessment": self.normalize_label(raw.get("vurdering", raw.get("assessment"))),
            "topic": self.normalize_topic(raw.get("emne", raw.get("topic"))),
            "priority": self.normalize_priority(raw.get("prioritet", raw.get("priority"))),
            "mandatory": bool(
                raw.get("obligatorisk", raw.get("mandatory", raw.get("required", False)))
            ),
            "created_at": self.parse_timestamp(raw.get("createdAt", raw.get("created_at"))),
            "updated_at": self.parse_timestamp(raw.get("updatedAt", raw.get("updated_at"))),
            "created_by": self.normalize_user_id(raw.get("createdBy", raw.get("creator"))),
            "assigned_to": self.normalize_user_id(raw.get("assignedTo", raw.get("assigned_to"))),
            "unit_id": self.normalize_user_id(raw.get("enhet", raw.get("unit"))),
            "project_id": raw.get("projectId", raw.get("project_id")),
            "parent_id": raw.get("parentId", raw.get("parent_id")),
            "locked": bool(raw.get("isLocked") or raw.get("locked")),
            "raw": raw,
        }
        values.update(overrides)
        return Entity(**values)

    @staticmethod
    def extract_text_from_document(document: Any) -> str:
        """Extract plain text from a rich-text JSON document ({"type": "doc", ...})."""
        if not document:
            return ""
        if isinstance(document, str):
            return document
        if not isinstance(document, Mapping):
            return ""
        words: list[str] = []
        for node in document.get("content") or []:
            if node.get("type") == "paragraph":
                for text_node in node.get("content") or []:
                    if text_node.get("type") == "text" and text_node.get("text"):
                        words.append(text_node["text"])
        return " ".join(words).strip()

    def normalize_description(self, raw: RawEntity, field_name: str = "beskrivelse") -> str:
        """Get a plain-text description, preferring snippet and plain variants."""
        value = raw.get(field_name, raw.get("description"))
        if not value:
            return ""
        for variant in (f"{field_name}Snippet", f"{field_name}Plain"):
            if raw.get(variant):
                return str(raw[variant])
        if isinstance(value, Mapping) and value.get("type") == "doc":
            return self.extract_text_from_document(value)
        return str(value)

    @staticmethod
    def normalize_label(value: Any, default_name: str = "Unknown") -> Label | None:
        if not value:
            return None
        if isinstance(value, Label):
            return value
        if isinstance(value, str):
            return Label(id=None, name=value)
        return Label(
            id=value.get("id"),
            name=value.get("navn") or value.get("name") or default_name,
            color=value.get("color") or "#6B7280",
        )

    @staticmethod
    def normalize_topic(value: Any) -> Topic | None:
        if not value:
            return None
        if isinstance(value, Topic):
            return value
        if isinstance(value, str):
            return Topic(id=None, title=value)
        title = value.get("tittel") or value.get("title") or value.get("navn") or value.get("name")
        return Topic(id=value.get("id"), title=title or "")

    @staticmethod
    def normalize_priority(value: Any) -> int | None:
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def normalize_user_id(value: Any) -> Any:
        """Reduce a user/unit reference (object or bare id) to its id."""
        if isinstance(value, Mapping):
            return value.get("id")
        return value

    @staticmethod
    def parse_timestamp(value: Any) -> datetime | None:
        """Parse ISO strings, epoch seconds or datetimes into aware datetimes."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, int | float):
            parsed = datetime.fromtimestamp(value, tz=UTC)
        else:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    def detect_entity_type(self, raw: RawEntity) -> EntityTypeTag:
        """Guess the entity type of a raw record from its shape."""
        if not raw:
            return "unknown"
        if raw.get("entityType"):
            return str(raw["entityType"])
        scoped = raw.get("projectId") is not None
        if "kravUID" in raw or "kravreferanse" in raw or "kravreferanseType" in raw:
            return "project-requirement" if scoped else "requirement"
        if "tiltakUID" in raw or "implementasjon" in raw or "tilbakemelding" in raw:
            return "project-measure" if scoped else "measure"
        return "unknown"

    def is_grouped(self, items: list[Any]) -> bool:
        """Check if list items are topic groups rather than records."""
        if not items:
            return False
        first = items[0]
        return (
            isinstance(first, Mapping)
            and bool(first.get("emne") or first.get("topic"))
            and any(isinstance(first.get(key), list) for key in self.group_item_keys)
        )

    def flatten_groups(self, groups: list[Any]) -> list[Any]:
        """Flatten topic groups into records, attaching the group topic when missing."""
        records: list[Any] = []
        for group in groups:
            topic = group.get("emne") or group.get("topic")
            for key in self.group_item_keys:
                for record in group.get(key) or []:
                    if topic and not (record.get("emne") or record.get("topic")):
                        record = {**record, "emne": topic}
                    records.append(record)
        return records


def _first(raw: Mapping[str, Any], *names: str) -> str:
    for name in names:
        if raw.get(name):
            return str(raw[name])
    return ""
