"""Managed agent-runtime instance mapped to a host and LXC container."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

GATEWAY_STATUS_RUNNING = "running"
GATEWAY_STATUS_STOPPED = "stopped"
GATEWAY_STATUS_ERROR = "error"
GATEWAY_STATUS_UNKNOWN = "unknown"


class Instance(QueryModel, table=True):
    """One deployment of the OpenClaw runtime inside an isolated container."""

    __tablename__ = "instances"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    container_host: str | None = Field(default=None)
    container_name: str | None = Field(default=None)
    gateway_status: str = Field(default=GATEWAY_STATUS_UNKNOWN, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
