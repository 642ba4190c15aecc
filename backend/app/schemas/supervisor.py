"""Schemas for the read-only supervisor status endpoint."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class SupervisorPolicyRead(SQLModel):
    """Effective restart and repair bounds."""

    interval_seconds: float
    restart_cooldown_seconds: float
    max_restarts_per_hour: int
    crash_loop_threshold: int
    config_repair_interval_seconds: float


class InstanceHealthRead(SQLModel):
    """In-memory health bookkeeping for one instance."""

    instance_id: str
    was_connected: bool
    last_restart_at: datetime | None = None
    restarts_this_hour: int
    hour_window_start: datetime
    consecutive_crashes: int
    last_config_sanitize_at: datetime | None = None


class SupervisorStatusRead(SQLModel):
    """Supervisor liveness plus a snapshot of every tracked instance."""

    enabled: bool
    running: bool
    last_sweep_at: datetime | None = None
    policy: SupervisorPolicyRead
    instances: list[InstanceHealthRead] = Field(default_factory=list)
