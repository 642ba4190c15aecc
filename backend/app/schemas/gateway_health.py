"""Schemas for the payloads returned by `openclaw gateway call health|status`."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _GatewayPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ChannelIdentity(_GatewayPayload):
    """Account the channel is linked as (e.g. the WhatsApp number)."""

    e164: str | None = None
    jid: str | None = None


class ChannelHealth(_GatewayPayload):
    """Per-channel connectivity as reported by the gateway."""

    configured: bool = False
    linked: bool = False
    running: bool = False
    connected: bool = False
    identity: ChannelIdentity | None = Field(default=None, alias="self")
    last_error: str | None = None
    last_connected_at: Any = None
    last_disconnect: Any = None
    account_id: str | None = None


class HealthReport(_GatewayPayload):
    """Functional health of a running gateway."""

    ok: bool = False
    channels: dict[str, ChannelHealth] = Field(default_factory=dict)
    channel_order: list[str] | None = None


class LinkChannel(_GatewayPayload):
    """Link state for the primary channel in a `status` payload."""

    id: str | None = None
    linked: bool = False
    auth_age_ms: int | None = None


class GatewayStatusPayload(_GatewayPayload):
    """Subset of the gateway `status` call consumed by the watchdog."""

    link_channel: LinkChannel | None = None
    channel_summary: list[str] = Field(default_factory=list)
