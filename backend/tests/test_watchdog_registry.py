# ruff: noqa: INP001, S101
"""SQL-backed registry and audit sink used by the supervisor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

import pytest

from app.models.audit_logs import AuditLog
from app.models.channels import CHANNEL_TYPE_WHATSAPP, Channel
from app.models.instances import Instance
from app.services.watchdog.registry import (
    SUPERVISOR_IP_ADDRESS,
    SqlAuditSink,
    SqlInstanceRegistry,
    WatchedInstance,
)


@dataclass
class _FakeResult:
    rows: list[object]

    def first(self) -> object | None:
        return self.rows[0] if self.rows else None

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self.rows)


@dataclass
class _FakeSession:
    exec_results: list[list[object]] = field(default_factory=list)
    rows_by_id: dict[UUID, object] = field(default_factory=dict)
    added: list[object] = field(default_factory=list)
    committed: int = 0

    async def __aenter__(self) -> _FakeSession:
        return self

    async def __aexit__(self, *_: object) -> None:
        return None

    async def exec(self, statement: object) -> _FakeResult:
        return _FakeResult(self.exec_results.pop(0) if self.exec_results else [])

    async def get(self, model: type[Any], obj_id: UUID) -> object | None:
        return self.rows_by_id.get(obj_id)

    def add(self, value: object) -> None:
        self.added.append(value)

    async def flush(self) -> None:
        return None

    async def commit(self) -> None:
        self.committed += 1

    async def refresh(self, value: object) -> None:
        return None


def _factory(session: _FakeSession) -> Any:
    return lambda: session


@pytest.mark.asyncio
async def test_list_active_instances_maps_rows_with_container_coordinates() -> None:
    placed = Instance(id=uuid4(), name="alpha", container_host="10.0.0.5", container_name="oc-alpha")
    unplaced = Instance(id=uuid4(), name="beta", container_host="10.0.0.5", container_name=None)
    session = _FakeSession(exec_results=[[placed, unplaced]])

    instances = await SqlInstanceRegistry(_factory(session)).list_active_instances()

    assert instances == [WatchedInstance(id=str(placed.id), host="10.0.0.5", container="oc-alpha")]


@pytest.mark.asyncio
async def test_set_gateway_status_updates_row() -> None:
    instance = Instance(id=uuid4(), name="alpha", container_host="h", container_name="c")
    session = _FakeSession(rows_by_id={instance.id: instance})

    await SqlInstanceRegistry(_factory(session)).set_gateway_status(str(instance.id), "error")

    assert instance.gateway_status == "error"
    assert session.committed == 1


@pytest.mark.asyncio
async def test_set_gateway_status_ignores_unknown_instance() -> None:
    session = _FakeSession()
    registry = SqlInstanceRegistry(_factory(session))

    await registry.set_gateway_status(str(uuid4()), "running")
    await registry.set_gateway_status("not-a-uuid", "running")

    assert session.committed == 0


@pytest.mark.asyncio
async def test_sync_channel_status_returns_channel_id() -> None:
    instance_id = uuid4()
    channel = Channel(id=uuid4(), instance_id=instance_id, type=CHANNEL_TYPE_WHATSAPP, status="connected")
    session = _FakeSession(exec_results=[[channel]])

    channel_id = await SqlInstanceRegistry(_factory(session)).sync_channel_status(
        str(instance_id),
        CHANNEL_TYPE_WHATSAPP,
        connected=False,
    )

    assert channel_id == str(channel.id)
    assert channel.status == "disconnected"
    assert session.committed == 1


@pytest.mark.asyncio
async def test_sync_channel_status_without_channel_returns_none() -> None:
    session = _FakeSession(exec_results=[[]])

    channel_id = await SqlInstanceRegistry(_factory(session)).sync_channel_status(
        str(uuid4()),
        CHANNEL_TYPE_WHATSAPP,
        connected=True,
    )

    assert channel_id is None
    assert session.committed == 0


@pytest.mark.asyncio
async def test_audit_sink_records_system_row() -> None:
    session = _FakeSession()

    await SqlAuditSink(_factory(session)).record(
        action="watchdog.gateway_restart",
        resource="instance",
        resource_id="inst-1",
        details={"reason": "gateway_not_running", "success": True, "crashes": 0},
    )

    assert len(session.added) == 1
    row = session.added[0]
    assert isinstance(row, AuditLog)
    assert row.user_id is None
    assert row.ip_address == SUPERVISOR_IP_ADDRESS
    assert row.action == "watchdog.gateway_restart"
    assert row.details == {"reason": "gateway_not_running", "success": True, "crashes": 0}
    assert session.committed == 1
