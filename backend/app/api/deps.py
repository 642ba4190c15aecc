from __future__ import annotations

from fastapi import Request

from app.services.watchdog.supervisor import GatewaySupervisor


def get_supervisor(request: Request) -> GatewaySupervisor | None:
    """Supervisor attached by the lifespan, or `None` when the watchdog is disabled."""
    return getattr(request.app.state, "supervisor", None)
