"""Tests for the adapter-bound FilterService."""

from entityspace.adapters import SimpleAdapter
from entityspace.filtering import FilterService, WorkspaceFilters


def test_process_runs_filter_search_and_sort(adapter, records):
    service = FilterService(adapter)
    filters = WorkspaceFilters(filter_by="mandatory", sort_by="title", sort_order="desc")

    result = service.process(records, search="sikkerhet", filters=filters)

    # Mandatory records under the "Sikkerhet" topic are ids 2 and 4
    assert [e.title for e in result] == ["Energi", "adgangskontroll"]


def test_process_without_filters_keeps_order(adapter, records):
    service = FilterService(adapter)
    assert [e.id for e in service.process(records)] == [r["id"] for r in records]


def test_stats_and_available_filters_from_raw(adapter, records):
    service = FilterService(adapter)

    stats = service.stats(records)
    available = service.available_filters(records)

    assert (stats.total, stats.mandatory, stats.completed, stats.pending, stats.active) == (10, 5, 4, 2, 4)
    assert available.topics == ("Miljø", "Sikkerhet")


def test_sort_catalog_helpers(adapter):
    service = FilterService(adapter)

    assert service.is_valid_sort_field("title")
    assert service.is_valid_sort_field("tittel")
    assert not service.is_valid_sort_field("colour")
    assert service.sort_field_label("prioritet") == "Priority"
    assert service.default_sort() == ("updated_at", "desc")


def test_disabled_filter_options_are_hidden():
    adapter = SimpleAdapter("ticket")
    service = FilterService(adapter)
    assert [o.key for o in service.get_filter_options()] == ["status", "priority"]


def test_with_additional_merges():
    filters = WorkspaceFilters().with_additional(status="Ny").with_additional(priority=2)
    assert filters.as_criteria() == {"filter_by": "all", "status": "Ny", "priority": 2}
