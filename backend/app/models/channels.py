"""Messaging channel attached to an instance."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

CHANNEL_TYPE_WHATSAPP = "WHATSAPP"
CHANNEL_STATUS_CONNECTED = "connected"
CHANNEL_STATUS_DISCONNECTED = "disconnected"


class Channel(QueryModel, table=True):
    """Communication surface whose connectivity the watchdog tracks."""

    __tablename__ = "channels"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    instance_id: UUID = Field(foreign_key="instances.id", index=True)
    type: str = Field(index=True)
    status: str = Field(default="unknown")
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
