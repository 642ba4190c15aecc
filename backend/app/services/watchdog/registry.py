"""Collaborators the supervisor reads from and reports to.

The supervisor only sees the two protocols below. The SQL implementations back
them with the panel database.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from sqlmodel import col, select

from app.core.logging import get_logger
from app.core.time import utcnow
from app.db import crud
from app.db.session import async_session_maker
from app.models.audit_logs import AuditLog
from app.models.channels import (
    CHANNEL_STATUS_CONNECTED,
    CHANNEL_STATUS_DISCONNECTED,
    Channel,
)
from app.models.instances import Instance

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

SUPERVISOR_IP_ADDRESS = "127.0.0.1"


@dataclass(frozen=True, slots=True)
class WatchedInstance:
    """Identity and location of one supervised instance."""

    id: str
    host: str
    container: str


class InstanceRegistry(Protocol):
    async def list_active_instances(self) -> list[WatchedInstance]: ...

    async def set_gateway_status(self, instance_id: str, status: str) -> None: ...

    async def sync_channel_status(
        self,
        instance_id: str,
        channel_type: str,
        *,
        connected: bool,
    ) -> str | None:
        """Persist channel connectivity; return the channel id, or None if untracked."""
        ...


class AuditSink(Protocol):
    async def record(
        self,
        *,
        action: str,
        resource: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None: ...


SessionFactory = Callable[[], "AsyncSession"]


def _as_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


class SqlInstanceRegistry:
    """`InstanceRegistry` over the `instances` and `channels` tables."""

    def __init__(self, session_factory: SessionFactory = async_session_maker) -> None:
        self._session_factory = session_factory

    async def list_active_instances(self) -> list[WatchedInstance]:
        active_channels = select(Channel.instance_id).where(col(Channel.is_active).is_(True))
        async with self._session_factory() as session:
            rows = await Instance.objects.filter(
                col(Instance.container_host).is_not(None),
                col(Instance.container_name).is_not(None),
                col(Instance.id).in_(active_channels),
            ).all(session)
        return [
            WatchedInstance(id=str(row.id), host=row.container_host, container=row.container_name)
            for row in rows
            if row.container_host and row.container_name
        ]

    async def set_gateway_status(self, instance_id: str, status: str) -> None:
        key = _as_uuid(instance_id)
        if key is None:
            return
        async with self._session_factory() as session:
            instance = await crud.get_by_id(session, Instance, key)
            if instance is None:
                logger.debug("watchdog.registry.instance_missing instance_id=%s", instance_id)
                return
            await crud.patch(
                session,
                instance,
                {"gateway_status": status, "updated_at": utcnow()},
                refresh=False,
            )

    async def sync_channel_status(
        self,
        instance_id: str,
        channel_type: str,
        *,
        connected: bool,
    ) -> str | None:
        key = _as_uuid(instance_id)
        if key is None:
            return None
        async with self._session_factory() as session:
            channel = await Channel.objects.filter_by(instance_id=key, type=channel_type).first(
                session,
            )
            if channel is None:
                return None
            await crud.patch(
                session,
                channel,
                {
                    "status": CHANNEL_STATUS_CONNECTED if connected else CHANNEL_STATUS_DISCONNECTED,
                    "updated_at": utcnow(),
                },
                refresh=False,
            )
            return str(channel.id)


class SqlAuditSink:
    """`AuditSink` appending rows to `audit_logs` as the system user."""

    def __init__(self, session_factory: SessionFactory = async_session_maker) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        *,
        action: str,
        resource: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None:
        async with self._session_factory() as session:
            await crud.create(
                session,
                AuditLog,
                user_id=None,
                action=action,
                resource=resource,
                resource_id=resource_id,
                details=details,
                ip_address=SUPERVISOR_IP_ADDRESS,
                refresh=False,
            )
