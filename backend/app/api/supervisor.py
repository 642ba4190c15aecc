"""Read-only view of the gateway supervisor."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_supervisor
from app.core.config import settings
from app.schemas.supervisor import InstanceHealthRead, SupervisorPolicyRead, SupervisorStatusRead
from app.services.watchdog.supervisor import GatewaySupervisor

router = APIRouter(prefix="/supervisor", tags=["supervisor"])


@router.get("/status", response_model=SupervisorStatusRead)
def supervisor_status(
    supervisor: GatewaySupervisor | None = Depends(get_supervisor),
) -> SupervisorStatusRead:
    """Report whether the supervisor runs and what it currently tracks per instance."""
    if supervisor is None:
        return SupervisorStatusRead(
            enabled=False,
            running=False,
            policy=SupervisorPolicyRead(
                interval_seconds=settings.watchdog_interval_seconds,
                restart_cooldown_seconds=settings.watchdog_restart_cooldown_seconds,
                max_restarts_per_hour=settings.watchdog_max_restarts_per_hour,
                crash_loop_threshold=settings.watchdog_crash_loop_threshold,
                config_repair_interval_seconds=settings.watchdog_config_repair_interval_seconds,
            ),
        )

    policy = supervisor.policy
    instances = [
        InstanceHealthRead(
            instance_id=instance_id,
            was_connected=state.was_connected,
            last_restart_at=state.last_restart_at,
            restarts_this_hour=state.restarts_this_hour,
            hour_window_start=state.hour_window_start,
            consecutive_crashes=state.consecutive_crashes,
            last_config_sanitize_at=state.last_config_sanitize_at,
        )
        for instance_id, state in sorted(supervisor.states.snapshot().items())
    ]
    return SupervisorStatusRead(
        enabled=True,
        running=supervisor.running,
        last_sweep_at=supervisor.last_sweep_at,
        policy=SupervisorPolicyRead(
            interval_seconds=supervisor.interval_seconds,
            restart_cooldown_seconds=policy.cooldown.total_seconds(),
            max_restarts_per_hour=policy.max_restarts_per_hour,
            crash_loop_threshold=policy.crash_loop_threshold,
            config_repair_interval_seconds=policy.repair_interval.total_seconds(),
        ),
        instances=instances,
    )
