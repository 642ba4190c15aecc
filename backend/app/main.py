"""FastAPI application entrypoint and supervisor wiring for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.supervisor import router as supervisor_router
from app.core.config import Settings, settings
from app.core.error_handling import install_error_handling
from app.core.logging import configure_logging, get_logger
from app.core.version import APP_NAME, APP_VERSION
from app.db.session import init_db
from app.services.openclaw.config_safeguard import ConfigSafeguard
from app.services.openclaw.config_store import OpenClawConfigStore
from app.services.openclaw.gateway_probe import GatewayProbe
from app.services.openclaw.remote_exec import LxcRemoteExecutor
from app.services.watchdog.registry import SqlAuditSink, SqlInstanceRegistry
from app.services.watchdog.supervisor import GatewaySupervisor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "supervisor",
        "description": (
            "Gateway supervisor state: restart budget, crash-loop counters, and "
            "channel connectivity tracked per instance."
        ),
    },
]


def build_supervisor(config: Settings) -> GatewaySupervisor:
    """Assemble the supervisor and its collaborators from settings."""
    executor = LxcRemoteExecutor(ssh_key=config.lxc_ssh_key, local_hosts=config.local_hosts)
    store = OpenClawConfigStore(executor)
    return GatewaySupervisor.from_settings(
        config,
        registry=SqlInstanceRegistry(),
        audit=SqlAuditSink(),
        probe=GatewayProbe(executor, store),
        safeguard=ConfigSafeguard(store),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize the database, then run the supervisor for the app's lifetime."""
    logger.info(
        "app.lifecycle.starting environment=%s db_auto_migrate=%s watchdog_enabled=%s",
        settings.environment,
        settings.db_auto_migrate,
        settings.watchdog_enabled,
    )
    await init_db()
    supervisor: GatewaySupervisor | None = None
    if settings.watchdog_enabled:
        supervisor = build_supervisor(settings)
        await supervisor.start()
    app.state.supervisor = supervisor
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        if supervisor is not None:
            await supervisor.stop()
        app.state.supervisor = None
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="OpenClaw Panel API",
    version=APP_VERSION,
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("app.cors.enabled origins_count=%s", len(origins))
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get("/health")
def health() -> dict[str, bool]:
    """Lightweight liveness probe endpoint."""
    return {"ok": True}


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    """Alias liveness probe endpoint for platform compatibility."""
    return {"ok": True}


@app.get("/readyz")
def readyz() -> dict[str, bool]:
    """Readiness probe endpoint for service orchestration checks."""
    return {"ok": True}


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(supervisor_router)
app.include_router(api_v1)

logger.debug("app.routes.registered app=%s count=%s", APP_NAME, len(app.routes))
