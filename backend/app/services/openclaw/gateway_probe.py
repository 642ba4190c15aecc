"""Liveness, health, and channel probes for the gateway inside a container.

Every probe runs over the same `RemoteExecutor` channel. A failed or
unparseable probe yields "unknown" (`None`, or a non-conclusive status); it is
never read as healthy or unhealthy.
"""

from __future__ import annotations

import asyncio
import json
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any

from pydantic import ValidationError

from app.core.logging import TRACE_LEVEL, get_logger
from app.schemas.gateway_health import GatewayStatusPayload, HealthReport
from app.services.openclaw.config_store import ContainerTarget, OpenClawConfigStore
from app.services.openclaw.constants import (
    CONFIG_ERROR_LOG_LINES,
    CONFIG_ERROR_PATTERN,
    GATEWAY_INIT_WAIT_S,
    GATEWAY_KILL_TIMEOUT_MS,
    GATEWAY_LAUNCH_TIMEOUT_MS,
    GATEWAY_LOG_FILE,
    GATEWAY_PROCESS_PATTERN,
    HEALTH_QUERY_TIMEOUT_MS,
    LOG_TAIL_TIMEOUT_MS,
    OPENCLAW_BIN,
    OPENCLAW_DIR,
    OPENCLAW_GATEWAY_LOCK,
    OPENCLAW_PAIRED_FILE,
    PHONE_PATTERN,
    PROCESS_QUERY_TIMEOUT_MS,
    STATUS_QUERY_TIMEOUT_MS,
)
from app.services.openclaw.remote_exec import ExecResult, RemoteExecutor

logger = get_logger(__name__)

_FOUND = "FOUND"
_NOT_FOUND = "NOTFOUND"
_ENV_PREAMBLE = f"cd {OPENCLAW_DIR} && [ -f .env ] && set -a && . .env && set +a;"


@dataclass(frozen=True, slots=True)
class GatewayStatus:
    """Process-table view of the gateway.

    `conclusive` is False when the probe itself failed (no sentinel came back),
    in which case `running` carries no information.
    """

    running: bool
    pid: int | None = None
    port: int | None = None
    conclusive: bool = True


@dataclass(frozen=True, slots=True)
class GatewayStartResult:
    success: bool
    output: str


@dataclass(frozen=True, slots=True)
class WhatsAppStatus:
    """Derived WhatsApp link state and the source that decided it."""

    paired: bool
    phone: str | None
    connected: bool
    running: bool
    source: str
    data: Any = field(default=None, compare=False)

    @property
    def conclusive(self) -> bool:
        """False when no source answered; `connected` then carries no information."""
        return self.source != "none"


WHATSAPP_UNKNOWN = WhatsAppStatus(
    paired=False,
    phone=None,
    connected=False,
    running=False,
    source="none",
)

WhatsAppStrategy = Callable[[ContainerTarget], Awaitable[WhatsAppStatus | None]]


class _Unfetched(Enum):
    """Marks a health report the caller has not fetched yet."""

    HEALTH = "health"


def extract_json_payload(output: str | None) -> Any | None:
    """Parse JSON starting at the first `{`, skipping banner or log noise."""
    if not output:
        return None
    start = output.find("{")
    if start < 0:
        return None
    try:
        return json.loads(output[start:])
    except ValueError:
        return None


def _first_pid(lines: list[str]) -> int | None:
    for line in lines:
        candidate = line.strip()
        if candidate.isdigit():
            return int(candidate)
    return None


def _coerce_port(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class GatewayProbe:
    """Inspect and (re)start the OpenClaw gateway over a `RemoteExecutor`."""

    def __init__(
        self,
        executor: RemoteExecutor,
        store: OpenClawConfigStore,
        *,
        init_wait_s: float = GATEWAY_INIT_WAIT_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.executor = executor
        self.store = store
        self.init_wait_s = init_wait_s
        self._sleep = sleep

    async def _run(self, target: ContainerTarget, command: str, timeout_ms: int) -> ExecResult:
        return await self.executor.execute(target.host, target.container, command, timeout_ms)

    async def get_status(self, target: ContainerTarget) -> GatewayStatus:
        pattern = shlex.quote(GATEWAY_PROCESS_PATTERN)
        result = await self._run(
            target,
            f"pgrep -f {pattern} 2>/dev/null && echo {_FOUND} || echo {_NOT_FOUND}",
            PROCESS_QUERY_TIMEOUT_MS,
        )
        lines = [line.strip() for line in result.stdout.splitlines()]
        if _FOUND not in lines and _NOT_FOUND not in lines:
            logger.warning(
                "openclaw.probe.status_inconclusive container=%s exit_code=%s",
                target.container,
                result.exit_code,
            )
            return GatewayStatus(running=False, conclusive=False)
        if _FOUND not in lines:
            return GatewayStatus(running=False)

        port: int | None = None
        config = await self.store.read_config(target)
        gateway_section = config.get("gateway") if config else None
        if isinstance(gateway_section, dict):
            port = _coerce_port(gateway_section.get("port"))
        return GatewayStatus(running=True, pid=_first_pid(lines), port=port)

    async def get_health(self, target: ContainerTarget) -> HealthReport | None:
        result = await self._run(
            target,
            f"{OPENCLAW_BIN} gateway call health --json 2>/dev/null",
            HEALTH_QUERY_TIMEOUT_MS,
        )
        if result.exit_code != 0 or not result.stdout:
            return None
        payload = extract_json_payload(result.stdout)
        if not isinstance(payload, dict):
            return None
        try:
            return HealthReport.model_validate(payload)
        except ValidationError:
            logger.debug("openclaw.probe.health_unparseable container=%s", target.container)
            return None

    async def _whatsapp_from_status_call(self, target: ContainerTarget) -> WhatsAppStatus | None:
        result = await self._run(
            target,
            f"{OPENCLAW_BIN} gateway call status --json 2>/dev/null",
            STATUS_QUERY_TIMEOUT_MS,
        )
        if result.exit_code != 0 or not result.stdout:
            return None
        payload = extract_json_payload(result.stdout)
        if not isinstance(payload, dict):
            return None
        try:
            status = GatewayStatusPayload.model_validate(payload)
        except ValidationError:
            return None
        link = status.link_channel
        if link is None or link.id != "whatsapp":
            return None
        summary = " ".join(str(item) for item in status.channel_summary)
        phone_match = PHONE_PATTERN.search(summary)
        connected = link.linked and link.auth_age_ms is not None
        return WhatsAppStatus(
            paired=link.linked,
            phone=phone_match.group(0) if phone_match else None,
            connected=connected,
            running=connected,
            source="status",
            data={**link.model_dump(by_alias=True), "channelSummary": status.channel_summary},
        )

    async def _whatsapp_from_health(
        self,
        target: ContainerTarget,
        health: HealthReport | None | _Unfetched = _Unfetched.HEALTH,
    ) -> WhatsAppStatus | None:
        if health is _Unfetched.HEALTH:
            health = await self.get_health(target)
        if health is None:
            return None
        channel = health.channels.get("whatsapp")
        if channel is None:
            return None
        identity = channel.identity
        # Health may say running=false for a linked session; a linked account
        # with a resolved number is treated as active.
        active = channel.linked and bool(identity and identity.e164)
        return WhatsAppStatus(
            paired=channel.linked,
            phone=(identity.e164 or identity.jid) if identity else None,
            connected=True if active else channel.connected,
            running=True if active else channel.running,
            source="health",
            data=channel.model_dump(by_alias=True),
        )

    async def _whatsapp_from_pairing_file(self, target: ContainerTarget) -> WhatsAppStatus | None:
        raw = await self.store.read_file(target, OPENCLAW_PAIRED_FILE)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        phone = data.get("phone") or data.get("jid")
        return WhatsAppStatus(
            paired=bool(phone),
            phone=phone if isinstance(phone, str) else None,
            connected=False,
            running=False,
            source="paired_file",
            data=data,
        )

    def whatsapp_strategies(
        self,
        health: HealthReport | None | _Unfetched = _Unfetched.HEALTH,
    ) -> tuple[WhatsAppStrategy, ...]:
        """Sources in priority order; the first conclusive answer wins.

        A `health` report the caller already holds (or `None` when that fetch
        failed) is reused instead of querying the gateway a second time.
        """
        return (
            self._whatsapp_from_status_call,
            partial(self._whatsapp_from_health, health=health),
            self._whatsapp_from_pairing_file,
        )

    async def get_whatsapp_status(
        self,
        target: ContainerTarget,
        *,
        health: HealthReport | None | _Unfetched = _Unfetched.HEALTH,
    ) -> WhatsAppStatus:
        for strategy in self.whatsapp_strategies(health):
            status = await strategy(target)
            if status is not None:
                logger.log(
                    TRACE_LEVEL,
                    "openclaw.probe.whatsapp container=%s source=%s connected=%s",
                    target.container,
                    status.source,
                    status.connected,
                )
                return status
        return WHATSAPP_UNKNOWN

    async def start_gateway(self, target: ContainerTarget) -> GatewayStartResult:
        """Kill any gateway process, clear the lock, and launch a fresh one."""
        await self._run(
            target,
            "killall -9 openclaw-gateway 2>/dev/null; "
            'pkill -9 -f "openclaw gateway" 2>/dev/null; sleep 1; '
            f"rm -f {OPENCLAW_GATEWAY_LOCK}",
            GATEWAY_KILL_TIMEOUT_MS,
        )
        launch = await self._run(
            target,
            f"{_ENV_PREAMBLE} nohup {OPENCLAW_BIN} gateway > {GATEWAY_LOG_FILE} 2>&1 & "
            "PID=$!; echo $PID",
            GATEWAY_LAUNCH_TIMEOUT_MS,
        )
        pid_line = launch.stdout.strip().splitlines()[-1] if launch.stdout.strip() else ""
        if not pid_line.strip().isdigit():
            logger.warning(
                "openclaw.gateway.launch_failed container=%s stderr=%s",
                target.container,
                launch.stderr,
            )
            return GatewayStartResult(success=False, output=launch.stderr or "Failed to start")

        await self._sleep(self.init_wait_s)
        status = await self.get_status(target)
        return GatewayStartResult(success=status.running, output=f"PID: {pid_line.strip()}")

    async def detect_config_error(self, target: ContainerTarget) -> str | None:
        """Return the first config-error line in the gateway log tail, if any."""
        result = await self._run(
            target,
            f"tail -{CONFIG_ERROR_LOG_LINES} {GATEWAY_LOG_FILE} 2>/dev/null || true",
            LOG_TAIL_TIMEOUT_MS,
        )
        for line in result.stdout.splitlines():
            if CONFIG_ERROR_PATTERN.search(line):
                return line.strip()
        return None
