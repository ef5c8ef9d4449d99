"""Core type definitions for entityspace."""

from collections.abc import Hashable, Mapping
from typing import Any, TypeAlias

EntityTypeTag: TypeAlias = str
"""Stable string naming a kind of record ("requirement", "measure", ...)."""

EntityKey: TypeAlias = int | str
"""Internal identifier of an entity (numeric from the backend, str for provisional ids)."""

RawEntity: TypeAlias = Mapping[str, Any]
"""Opaque record as received from the remote data source."""

QueryKey: TypeAlias = tuple[Hashable, ...]
"""Ordered cache key: (entity_type, namespace, *segments)."""
