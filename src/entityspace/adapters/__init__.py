"""Entity adapters: the only place entity-specific field names live.

Provides:
- EntityAdapter: protocol every adapter implements
- BaseAdapter: normalization helpers for concrete adapters
- SimpleAdapter / RequirementAdapter / MeasureAdapter: bundled adapters
- CombinedAdapter: two member types in one listing
- AdapterRegistry: explicit registry with create-on-first-use and dispose

Usage:
    from entityspace.adapters import default_registry

    registry = default_registry()
    adapter = registry.get("requirement")
    entity = adapter.transform(raw)
"""

from entityspace.adapters.base import BaseAdapter
from entityspace.adapters.combined import CombinedAdapter, combined_factory
from entityspace.adapters.models import (
    FilterOption,
    ListPage,
    SortKind,
    SortOption,
    SortOrder,
)
from entityspace.adapters.protocol import EntityAdapter
from entityspace.adapters.records import (
    MeasureAdapter,
    ProjectMeasureAdapter,
    ProjectRequirementAdapter,
    RecordAdapter,
    RequirementAdapter,
)
from entityspace.adapters.registry import AdapterFactory, AdapterRegistry, default_registry
from entityspace.adapters.simple import SimpleAdapter

__all__ = [
    # Protocol
    "EntityAdapter",
    # Types
    "ListPage",
    "SortOption",
    "SortKind",
    "SortOrder",
    "FilterOption",
    # Implementations
    "BaseAdapter",
    "SimpleAdapter",
    "RecordAdapter",
    "RequirementAdapter",
    "MeasureAdapter",
    "ProjectRequirementAdapter",
    "ProjectMeasureAdapter",
    "CombinedAdapter",
    # Registry
    "AdapterRegistry",
    "AdapterFactory",
    "default_registry",
    "combined_factory",
]
