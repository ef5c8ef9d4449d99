"""Simple adapter for plain REST records.

Minimal transformation for entity types whose backend already uses the
common field spellings (id, title, description, status, priority, required).
"""

from __future__ import annotations

from typing import Any

from entityspace.adapters.base import BaseAdapter
from entityspace.core.entity import Entity
from entityspace.core.types import RawEntity


class SimpleAdapter(BaseAdapter):
    """Adapter for generic records; the UID falls back to ``<TYPE><id>``."""

    def __init__(self, entity_type: str, config: Any = None):
        super().__init__(entity_type, config)
        self.uid_prefix = self.config.get("uid_prefix", entity_type.upper())

    def transform(self, raw: RawEntity) -> Entity:
        return self.build_entity(raw)

    def transform_request(self, entity: Entity) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": entity.title,
            "description": entity.description,
            "priority": entity.priority,
            "required": entity.mandatory,
            "parentId": entity.parent_id,
            "statusId": entity.status.id if entity.status else None,
        }
        if not entity.is_provisional:
            payload["id"] = entity.id
        return payload
