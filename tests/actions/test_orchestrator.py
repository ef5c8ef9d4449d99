"""Tests for ActionOrchestrator mutation flows."""

import asyncio

import pytest

from entityspace.actions import ActionOrchestrator, ConflictPolicy
from entityspace.config import WorkspaceSettings
from entityspace.core.errors import MutationConflict, PermissionDenied, RemoteError, ValidationError
from entityspace.permissions import PermissionService, UserContext

PAGE_KEY = ("requirement", "workspace", "paginated")


def _build(adapter, manager, remote, user=None, **settings):
    permissions = PermissionService(adapter, user or UserContext(user_id=1, role="admin"))
    manager.set_cached("workspace", adapter.transform_response(remote.page_for({})))
    return ActionOrchestrator(
        adapter, manager, permissions, remote, WorkspaceSettings(_env_file=None, **settings)
    )


def _titles(manager):
    return {e.id: e.title for e in manager.cache.get(PAGE_KEY).items}


@pytest.mark.asyncio
async def test_update_success_commits(adapter, manager, remote, cache):
    orchestrator = _build(adapter, manager, remote)
    seen = []

    result = await orchestrator.update(3, {"title": "Renamed"}, on_success=seen.append)

    assert result.success
    assert result.optimistic
    assert result.data.title == "Renamed"
    assert seen == [result.data]
    assert remote.calls[-1][0] == "update"
    assert remote.calls[-1][1][1]["tittel"] == "Renamed"
    assert _titles(manager)[3] == "Renamed"
    assert ("requirement", "detail", 3) in cache.invalidations
    assert cache.is_stale(PAGE_KEY)


@pytest.mark.asyncio
async def test_remote_failure_rolls_back_and_returns_result(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)
    remote.fail_with = RuntimeError("server down")
    errors = []

    result = await orchestrator.update(
        3, {"title": "Renamed"}, on_error=lambda exc, entity: errors.append((exc, entity.id))
    )

    assert not result.success
    assert result.error == "server down"
    assert isinstance(result.exception, RemoteError)
    assert isinstance(result.exception.__cause__, RuntimeError)
    assert errors == [(result.exception, 3)]
    assert _titles(manager)[3] == "Universell utforming"
    assert manager.cache_stats()["pending_patches"] == 0


@pytest.mark.asyncio
async def test_permission_denied_before_any_patch(adapter, manager, remote, editor):
    """Editors may not edit mandatory entities; nothing is patched or sent."""
    orchestrator = _build(adapter, manager, remote, user=editor)
    before = manager.cache.get(PAGE_KEY)

    with pytest.raises(PermissionDenied) as excinfo:
        await orchestrator.update(2, {"title": "Nope"})

    assert excinfo.value.action == "canEdit"
    assert remote.calls == []
    assert manager.cache.get(PAGE_KEY) == before
    assert manager.cache_stats()["pending_patches"] == 0


@pytest.mark.asyncio
async def test_editor_can_edit_open_entity(adapter, manager, remote, editor):
    orchestrator = _build(adapter, manager, remote, user=editor)
    result = await orchestrator.update(3, {"title": "Edited"})
    assert result.success


@pytest.mark.asyncio
async def test_unknown_entity_is_not_found(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)
    result = await orchestrator.update(999, {"title": "x"})
    assert not result.success
    assert result.error == "Entity not found"
    assert remote.calls == []


@pytest.mark.asyncio
async def test_create_prepends_draft_then_returns_server_entity(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)

    result = await orchestrator.create({"title": "Ny", "mandatory": True})

    assert result.success
    assert result.data.id == 1001
    assert result.data.title == "Ny"
    payload = remote.calls[0][1]
    assert "id" not in payload
    assert payload["obligatorisk"] is True
    page = manager.cache.get(PAGE_KEY)
    assert page.total == 11
    assert page.items[0].is_provisional


@pytest.mark.asyncio
async def test_create_requires_permission(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote, user=UserContext(user_id=5, role="user"))
    with pytest.raises(PermissionDenied):
        await orchestrator.create({"title": "Ny"})
    assert remote.calls == []


@pytest.mark.asyncio
async def test_create_with_blank_title_raises_validation_error(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)
    with pytest.raises(ValidationError, match="Title is required"):
        await orchestrator.create({"title": "  "})
    assert remote.calls == []


@pytest.mark.asyncio
async def test_delete_removes_from_cache_and_remote(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)

    result = await orchestrator.delete(3)

    assert result.success
    assert result.data.id == 3
    assert 3 not in _titles(manager)
    assert all(r["id"] != 3 for r in remote.records)


@pytest.mark.asyncio
async def test_non_optimistic_update_only_invalidates(adapter, manager, remote, cache):
    orchestrator = _build(adapter, manager, remote, enable_optimistic=False)

    result = await orchestrator.update(3, {"title": "Renamed"})

    assert result.success
    assert not result.optimistic
    assert _titles(manager)[3] == "Universell utforming"
    assert cache.is_stale(PAGE_KEY)


@pytest.mark.asyncio
async def test_bulk_update_collects_per_item_outcomes(adapter, manager, remote, cache):
    orchestrator = _build(adapter, manager, remote)

    bulk = await orchestrator.bulk_update([1, 3, 999], {"priority": 3})

    # Entity 1 has a completed status and is locked
    assert [r.success for r in bulk.results] == [False, True, False]
    assert isinstance(bulk.results[0].exception, PermissionDenied)
    assert bulk.summary.total == 3
    assert bulk.summary.success == 1
    assert bulk.summary.errors == 2
    assert bulk.succeeded_ids == [3]
    assert not bulk.success
    assert ("requirement",) in cache.invalidations


@pytest.mark.asyncio
async def test_bulk_delete(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)

    bulk = await orchestrator.bulk_delete([3, 7])

    assert bulk.success
    assert [c for c in remote.calls if c[0] == "delete"] == [("delete", 3), ("delete", 7)]


@pytest.mark.asyncio
async def test_reject_policy_fails_second_mutation_fast(adapter, manager, gated_remote):
    remote = gated_remote
    orchestrator = _build(adapter, manager, remote, conflict_policy="reject")
    assert orchestrator.conflict_policy is ConflictPolicy.REJECT

    first = asyncio.create_task(orchestrator.update(3, {"title": "A"}))
    await remote.entered.wait()
    second = await orchestrator.update(3, {"title": "B"})

    assert not second.success
    assert isinstance(second.exception, MutationConflict)

    remote.gate.set()
    assert (await first).success
    assert _titles(manager)[3] == "A"


@pytest.mark.asyncio
async def test_serialize_policy_queues_mutations(adapter, manager, gated_remote):
    remote = gated_remote
    orchestrator = _build(adapter, manager, remote)

    first = asyncio.create_task(orchestrator.update(3, {"title": "A"}))
    await remote.entered.wait()
    second = asyncio.create_task(orchestrator.update(3, {"priority": 1}))
    await asyncio.sleep(0)
    assert remote.started == [3]

    remote.gate.set()
    results = await asyncio.gather(first, second)

    assert all(r.success for r in results)
    updates = [c[1] for c in remote.calls if c[0] == "update"]
    # The queued update sees the first one's result
    assert updates[1][1]["tittel"] == "A"
    assert updates[1][1]["prioritet"] == 1
    assert orchestrator._locks == {}


@pytest.mark.asyncio
async def test_cancelled_call_rolls_back(adapter, manager, gated_remote):
    remote = gated_remote
    orchestrator = _build(adapter, manager, remote)

    task = asyncio.create_task(orchestrator.update(3, {"title": "A"}))
    await remote.entered.wait()
    assert _titles(manager)[3] == "A"

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert _titles(manager)[3] == "Universell utforming"
    assert manager.cache_stats()["pending_patches"] == 0


def test_validate_reports_problems(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)

    assert orchestrator.validate({"title": "Ok"}).is_valid
    assert orchestrator.validate({"title": ""}).errors == ("Title is required",)
    assert orchestrator.validate({"title": "Ok"}, "update").errors == ("Entity ID is required for updates",)
    report = orchestrator.validate({"title": "Ok", "colour": "red"})
    assert not report.is_valid
    assert report.as_dict()["errors"] == ["Validation error: Unknown entity attributes: ['colour']"]


def _boom(*args):
    raise RuntimeError("callback failed")


@pytest.mark.asyncio
async def test_failing_success_callback_does_not_escape(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)

    result = await orchestrator.create({"title": "X"}, on_success=_boom)

    assert result.success
    assert result.data.id == 1001
    assert [c[0] for c in remote.calls] == ["create"]


@pytest.mark.asyncio
async def test_failing_error_callback_does_not_escape(adapter, manager, remote):
    orchestrator = _build(adapter, manager, remote)
    remote.fail_with = RuntimeError("server down")

    result = await orchestrator.update(3, {"title": "Renamed"}, on_error=_boom)

    assert not result.success
    assert result.error == "server down"
    assert _titles(manager)[3] == "Universell utforming"


@pytest.mark.asyncio
async def test_unreadable_response_keeps_applied_change(adapter, manager, remote, cache):
    """The server applied the update, so the cache is invalidated rather than rolled back."""
    orchestrator = _build(adapter, manager, remote)

    async def update(entity_id, payload):
        remote.calls.append(("update", (entity_id, dict(payload))))
        return ["not", "a", "record"]

    remote.update = update

    result = await orchestrator.update(3, {"title": "Renamed"})

    assert not result.success
    assert isinstance(result.exception, ValidationError)
    assert not isinstance(result.exception, RemoteError)
    assert manager.cache_stats()["pending_patches"] == 0
    assert cache.is_stale(PAGE_KEY)
    assert ("requirement", "detail", 3) in cache.invalidations
    assert _titles(manager)[3] == "Renamed"


@pytest.mark.asyncio
async def test_lookup_supplies_baseline(adapter, manager, remote):
    permissions = PermissionService(adapter, UserContext(user_id=1, role="admin"))
    known = adapter.transform(remote.records[2])
    seen = []

    def lookup(entity_id):
        seen.append(entity_id)
        return known.merge({"title": "Confirmed"}) if entity_id == 3 else None

    orchestrator = ActionOrchestrator(
        adapter, manager, permissions, remote, WorkspaceSettings(_env_file=None), lookup=lookup
    )

    result = await orchestrator.update(3, {"priority": 2})
    missing = await orchestrator.update(4, {"priority": 2})

    assert result.success
    assert remote.calls[0][1][1]["tittel"] == "Confirmed"
    assert missing.error == "Entity not found"
    assert seen == [3, 4]
