"""Filtering: search, categorical filters, sorting and aggregate statistics."""

from entityspace.filtering.models import (
    COMPLETED_KEYWORDS,
    EXACT_FILTER_KEYS,
    PENDING_KEYWORDS,
    AvailableFilters,
    FilterBy,
    FilterStats,
    StatusBucket,
    WorkspaceFilters,
)
from entityspace.filtering.operations import (
    apply_filters,
    apply_search,
    apply_sorting,
    calculate_stats,
    collation_key,
    extract_available_filters,
    in_bucket,
    resolve_sort_field,
)
from entityspace.filtering.service import FilterService

__all__ = [
    # Models
    "WorkspaceFilters",
    "AvailableFilters",
    "FilterStats",
    "FilterBy",
    "StatusBucket",
    "COMPLETED_KEYWORDS",
    "PENDING_KEYWORDS",
    "EXACT_FILTER_KEYS",
    # Operations
    "apply_search",
    "apply_filters",
    "apply_sorting",
    "extract_available_filters",
    "calculate_stats",
    "collation_key",
    "in_bucket",
    "resolve_sort_field",
    # Service
    "FilterService",
]
