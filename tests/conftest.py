"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from entityspace.adapters import AdapterRegistry, RequirementAdapter, default_registry
from entityspace.cache import CacheManager, InMemoryQueryCache
from entityspace.config import WorkspaceSettings
from entityspace.core.entity import Entity, Label, Topic
from entityspace.permissions import PermissionService, UserContext


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemote:
    """In-memory remote data source.

    With ``hold = True`` list calls park on a future until the test releases
    them, so responses can arrive in any order.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None):
        self.records: list[dict[str, Any]] = [dict(r) for r in records or []]
        self.calls: list[tuple[str, Any]] = []
        self.fail_with: Exception | None = None
        self.hold = False
        self.pending: list[tuple[dict[str, Any], asyncio.Future[Any]]] = []
        self._next_id = 1000

    async def list(
        self,
        page: int,
        page_size: int,
        search: str,
        sort_by: str,
        sort_order: str,
        filter_by: str,
        additional_filters: Mapping[str, Any],
    ) -> dict[str, Any]:
        params = {
            "page": page,
            "page_size": page_size,
            "search": search,
            "sort_by": sort_by,
            "sort_order": sort_order,
            "filter_by": filter_by,
            "additional_filters": dict(additional_filters),
        }
        self.calls.append(("list", params))
        if self.hold:
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            self.pending.append((params, future))
            return await future
        if self.fail_with is not None:
            raise self.fail_with
        return self.page_for(params)

    def page_for(self, params: Mapping[str, Any]) -> dict[str, Any]:
        needle = (params.get("search") or "").casefold()
        items = [r for r in self.records if needle in str(r.get("tittel", "")).casefold()]
        return {
            "items": items,
            "total": len(items),
            "page": params.get("page", 1),
            "pageSize": params.get("page_size", 50),
        }

    def release(self, index: int) -> None:
        """Resolve a held list call with the matching page."""
        params, future = self.pending[index]
        future.set_result(self.page_for(params))

    def fail(self, index: int, exc: Exception) -> None:
        self.pending[index][1].set_exception(exc)

    async def create(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", dict(payload)))
        if self.fail_with is not None:
            raise self.fail_with
        self._next_id += 1
        record = {**payload, "id": self._next_id}
        self.records.insert(0, record)
        return record

    async def update(self, entity_id: Any, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("update", (entity_id, dict(payload))))
        if self.fail_with is not None:
            raise self.fail_with
        record = {**payload, "id": entity_id}
        self.records = [record if r.get("id") == entity_id else r for r in self.records]
        return record

    async def delete(self, entity_id: Any) -> None:
        self.calls.append(("delete", entity_id))
        if self.fail_with is not None:
            raise self.fail_with
        self.records = [r for r in self.records if r.get("id") != entity_id]


class GatedRemote(FakeRemote):
    """Remote whose updates block until the test opens the gate.

    ``fail_next`` fails only the next update that passes the gate.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None):
        super().__init__(records)
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.started: list[Any] = []
        self.fail_next: Exception | None = None

    async def update(self, entity_id: Any, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.started.append(entity_id)
        self.entered.set()
        await self.gate.wait()
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            self.calls.append(("update", (entity_id, dict(payload))))
            raise exc
        return await super().update(entity_id, payload)


def requirement_record(
    record_id: int,
    title: str,
    *,
    mandatory: bool = False,
    status: str = "Under arbeid",
    priority: int | None = None,
    topic: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": record_id,
        "tittel": title,
        "kravUID": f"GK{record_id:05d}",
        "obligatorisk": mandatory,
        "status": {"id": sum(map(ord, status)) % 100, "navn": status},
        "prioritet": priority,
        "updatedAt": f"2024-01-{(record_id % 28) + 1:02d}T10:00:00Z",
    }
    if topic is not None:
        record["emne"] = {"id": sum(map(ord, topic)) % 100, "tittel": topic}
    record.update(extra)
    return record


TEN_TITLES = [
    "Brannsikring",
    "adgangskontroll",
    "Universell utforming",
    "Energi",
    "Avfall",
    "Overvann",
    "Dagslys",
    "Støy",
    "Radon",
    "Ventilasjon",
]


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    return requirement_record


@pytest.fixture
def records() -> list[dict[str, Any]]:
    """Ten requirement records; even ids are mandatory."""
    statuses = ["Ferdig", "Under arbeid", "Venter", "Under arbeid", "Done"]
    return [
        requirement_record(
            i + 1,
            title,
            mandatory=(i + 1) % 2 == 0,
            status=statuses[i % len(statuses)],
            priority=(i % 3) + 1,
            topic="Sikkerhet" if i < 5 else "Miljø",
        )
        for i, title in enumerate(TEN_TITLES)
    ]


@pytest.fixture
def make_entity() -> Callable[..., Entity]:
    def build(entity_id: int | str = 1, title: str = "Entity", **values: Any) -> Entity:
        status = values.pop("status", None)
        topic = values.pop("topic", None)
        return Entity(
            id=entity_id,
            entity_type=values.pop("entity_type", "requirement"),
            title=title,
            status=Label(id=None, name=status) if isinstance(status, str) else status,
            topic=Topic(id=None, title=topic) if isinstance(topic, str) else topic,
            **values,
        )

    return build


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> AdapterRegistry:
    return default_registry()


@pytest.fixture
def adapter(registry: AdapterRegistry) -> RequirementAdapter:
    return registry.get("requirement")  # type: ignore[return-value]


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryQueryCache:
    return InMemoryQueryCache(stale_time=30.0, clock=clock)


@pytest.fixture
def manager(adapter: RequirementAdapter, cache: InMemoryQueryCache) -> CacheManager:
    return CacheManager(adapter, cache)


@pytest.fixture
def editor() -> UserContext:
    return UserContext(user_id=7, role="editor")


@pytest.fixture
def admin() -> UserContext:
    return UserContext(user_id=1, role="admin")


@pytest.fixture
def permissions(adapter: RequirementAdapter, admin: UserContext) -> PermissionService:
    return PermissionService(adapter, admin)


@pytest.fixture
def settings() -> WorkspaceSettings:
    return WorkspaceSettings(_env_file=None)


@pytest.fixture
def remote(records: list[dict[str, Any]]) -> FakeRemote:
    return FakeRemote(records)


@pytest.fixture
def gated_remote(records: list[dict[str, Any]]) -> GatedRemote:
    return GatedRemote(records)


@pytest.fixture
def empty_remote() -> FakeRemote:
    return FakeRemote([])


@pytest.fixture
def make_remote() -> Callable[..., FakeRemote]:
    return FakeRemote
