"""Unit tests for InMemoryQueryCache freshness and isolation."""

from entityspace.cache import InMemoryQueryCache, QueryCache


def test_satisfies_protocol() -> None:
    assert isinstance(InMemoryQueryCache(), QueryCache)


def test_values_are_copied_in_and_out() -> None:
    """Mutating a stored or returned value never changes the cached copy."""
    cache = InMemoryQueryCache()
    value = {"items": [1, 2]}

    cache.set(("t", "x"), value)
    value["items"].append(3)
    fetched = cache.get(("t", "x"))
    fetched["items"].append(4)

    assert cache.get(("t", "x")) == {"items": [1, 2]}


def test_missing_key_is_none_and_stale() -> None:
    cache = InMemoryQueryCache()
    assert cache.get(("t", "missing")) is None
    assert cache.is_stale(("t", "missing"))


def test_entries_go_stale_after_stale_time(clock) -> None:
    cache = InMemoryQueryCache(stale_time=30.0, clock=clock)
    cache.set(("t", "x"), 1)

    clock.advance(29)
    assert not cache.is_stale(("t", "x"))
    clock.advance(1)
    assert cache.is_stale(("t", "x"))


def test_invalidate_marks_prefix_stale_and_keeps_values() -> None:
    cache = InMemoryQueryCache()
    cache.set(("a", "workspace", "paginated"), 1)
    cache.set(("a", "detail", 1), 2)
    cache.set(("b", "workspace", "paginated"), 3)

    assert cache.invalidate(("a",)) == 2

    assert cache.is_stale(("a", "workspace", "paginated"))
    assert cache.is_stale(("a", "detail", 1))
    assert not cache.is_stale(("b", "workspace", "paginated"))
    assert cache.get(("a", "detail", 1)) == 2
    assert list(cache.invalidations) == [("a",)]


def test_set_refreshes_invalidated_entry() -> None:
    cache = InMemoryQueryCache()
    cache.set(("a", "stats"), 1)
    cache.invalidate(("a", "stats"))
    cache.set(("a", "stats"), 2)
    assert not cache.is_stale(("a", "stats"))


def test_keys_remove_and_clear() -> None:
    cache = InMemoryQueryCache()
    cache.set(("a", "workspace", "paginated"), 1)
    cache.set(("a", "search"), 2)
    cache.set(("b", "search"), 3)

    assert sorted(cache.keys(("a",))) == [("a", "search"), ("a", "workspace", "paginated")]
    assert cache.remove(("a", "search"))
    assert not cache.remove(("a", "search"))
    assert ("a", "search") not in cache
    assert len(cache) == 2

    cache.clear()
    assert len(cache) == 0


def test_invalidation_history_is_bounded() -> None:
    cache = InMemoryQueryCache(history=2)
    for prefix in (("a",), ("b",), ("c",)):
        cache.invalidate(prefix)
    assert list(cache.invalidations) == [("b",), ("c",)]


def test_key_holding_none_counts_as_present() -> None:
    cache = InMemoryQueryCache()
    cache.set(("a", "detail", 1), None)
    assert ("a", "detail", 1) in cache
    assert ("a", "detail", 2) not in cache
