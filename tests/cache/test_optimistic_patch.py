"""Tests for CacheManager optimistic patches and cached lookups."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from entityspace.adapters import ListPage, RequirementAdapter
from entityspace.cache import CacheManager, InMemoryQueryCache, MutationKind, PatchStatus
from entityspace.core.entity import Entity
from entityspace.core.errors import MutationConflict, PatchStateError
from entityspace.filtering import FilterStats


def _entity(entity_id, title="Entity", **values):
    return Entity(id=entity_id, entity_type="requirement", title=title, **values)


def _seed(manager, ids, *, search=True, stats=True, details=()):
    items = [_entity(i, f"title {i}") for i in ids]
    manager.set_cached("workspace", ListPage(items=items, total=len(items)), {"page": 1})
    if search:
        manager.set_cached("search", ListPage(items=items[:2], total=2), {"search": "title"})
    if stats:
        manager.set_cached("stats", FilterStats(total=len(items), optional=len(items), active=len(items)))
    for entity_id in details:
        manager.set_cached("detail", _entity(entity_id, f"title {entity_id}"), entity_id)


def _state(cache):
    return {key: cache.get(key) for key in cache.keys()}


@given(
    ids=st.lists(st.integers(min_value=1, max_value=20), unique=True, max_size=8),
    mutation=st.sampled_from([MutationKind.CREATE, MutationKind.UPDATE, MutationKind.DELETE]),
    target=st.integers(min_value=1, max_value=25),
    search=st.booleans(),
    stats=st.booleans(),
    with_detail=st.booleans(),
)
def test_rollback_restores_every_touched_key(ids, mutation, target, search, stats, with_detail):
    """PROPERTY: Apply then rollback leaves the cache exactly as before."""
    manager = CacheManager(RequirementAdapter("requirement"), InMemoryQueryCache())
    _seed(manager, ids, search=search, stats=stats, details=[target] if with_detail else [])
    before = _state(manager.cache)

    patch = manager.apply_optimistic_patch(mutation, _entity(target, "patched"))
    patch.rollback()

    assert _state(manager.cache) == before
    assert patch.status is PatchStatus.ROLLED_BACK


def test_create_prepends_and_bumps_totals(manager):
    _seed(manager, [1, 2])
    draft = Entity.provisional("requirement", {"title": "New"})

    patch = manager.apply_optimistic_patch(MutationKind.CREATE, draft)

    page = manager.get_cached("workspace", {"page": 1})
    assert [e.id for e in page.items] == [draft.id, 1, 2]
    assert page.total == 3
    assert page.items[0].optimistic
    assert manager.get_cached("stats").total == 3
    assert manager.get_cached("detail", draft.id).title == "New"
    assert patch.is_pending


def test_update_replaces_in_place(manager):
    _seed(manager, [1, 2, 3])

    manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(2, "renamed"))

    page = manager.get_cached("workspace", {"page": 1})
    assert [e.title for e in page.items] == ["title 1", "renamed", "title 3"]
    assert page.total == 3
    assert manager.get_cached("stats").total == 3


def test_delete_removes_and_decrements(manager):
    _seed(manager, [1, 2, 3], details=[2])

    manager.apply_optimistic_patch(MutationKind.DELETE, _entity(2))

    page = manager.get_cached("workspace", {"page": 1})
    assert [e.id for e in page.items] == [1, 3]
    assert page.total == 2
    assert manager.get_cached("search", {"search": "title"}).total == 1
    assert manager.get_cached("detail", 2) is None
    assert manager.get_cached("stats").total == 2


def test_commit_invalidates_planned_prefixes(manager, cache):
    _seed(manager, [1])

    patch = manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(1, "renamed"))
    marked = patch.commit()

    assert list(cache.invalidations) == list(patch.invalidation_keys)
    assert ("requirement", "detail", 1) in patch.invalidation_keys
    assert marked >= 3
    assert cache.is_stale(("requirement", "workspace", "paginated"))
    # Patched values stay readable until a refetch replaces them
    assert manager.get_cached("workspace", {"page": 1}).items[0].title == "renamed"


def test_patch_resolves_once(manager):
    _seed(manager, [1])
    patch = manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(1, "x"))
    patch.commit()

    with pytest.raises(PatchStateError, match="already committed"):
        patch.commit()
    with pytest.raises(PatchStateError):
        patch.rollback()


def test_second_patch_for_same_entity_conflicts(manager):
    _seed(manager, [1])
    first = manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(1, "x"))

    with pytest.raises(MutationConflict):
        manager.apply_optimistic_patch(MutationKind.DELETE, _entity(1))

    first.rollback()
    assert manager.pending_patch(1) is None
    manager.apply_optimistic_patch(MutationKind.DELETE, _entity(1)).commit()


def test_bulk_kinds_are_rejected(manager):
    with pytest.raises(ValueError):
        manager.apply_optimistic_patch(MutationKind.BULK_DELETE, _entity(1))


class ExplodingStats(FilterStats):
    __slots__ = ()

    def adjusted(self, delta):
        raise RuntimeError("boom")


def test_failed_application_is_rolled_back(manager, cache):
    """A failure midway leaves no partial patch behind."""
    _seed(manager, [1, 2], stats=False)
    cache.set(("requirement", "stats"), ExplodingStats(total=2))
    before = _state(cache)

    with pytest.raises(RuntimeError, match="boom"):
        manager.apply_optimistic_patch(MutationKind.CREATE, Entity.provisional("requirement", {"title": "x"}))

    assert _state(cache) == before
    assert manager.cache_stats()["pending_patches"] == 0


def test_find_entity_prefers_detail_then_pages(manager):
    _seed(manager, [1, 2], details=[1])
    manager.set_cached("detail", _entity(1, "detailed"), 1)

    assert manager.find_entity(1).title == "detailed"
    assert manager.find_entity(2).title == "title 2"
    assert manager.find_entity(99) is None


def test_read_fresh_ignores_stale_entries(manager, clock):
    key = manager.set_cached("stats", FilterStats(total=1))
    assert manager.read_fresh(key) == FilterStats(total=1)

    clock.advance(31)
    assert manager.read_fresh(key) is None


def test_invalidate_returns_prefixes(manager, cache):
    _seed(manager, [1])
    prefixes = manager.invalidate(MutationKind.CREATE)
    assert prefixes[0] == ("requirement", "workspace")
    assert list(cache.invalidations) == prefixes


def test_cache_stats_and_clear(manager, cache):
    _seed(manager, [1, 2], details=[1])
    cache.set(("measure", "stats"), FilterStats())
    manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(1, "x"))
    manager.invalidate(MutationKind.UPDATE, _entity(2))

    stats = manager.cache_stats()
    assert stats["total_queries"] == 4
    assert stats["pending_patches"] == 1
    assert stats["stale_queries"] >= 3

    assert manager.clear_entity_cache() == 4
    assert ("measure", "stats") in cache
    assert manager.cache_stats()["pending_patches"] == 0


def test_rollback_keeps_key_that_held_none(manager, cache):
    key = ("requirement", "detail", 1)
    cache.set(key, None)

    patch = manager.apply_optimistic_patch(MutationKind.UPDATE, _entity(1, "x"))
    assert cache.get(key).title == "x"
    patch.rollback()

    assert key in cache
    assert cache.get(key) is None
