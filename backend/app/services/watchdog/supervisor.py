"""Periodic gateway supervisor.

Every sweep checks each active instance concurrently: a dead gateway is
restarted within the restart policy, a crash loop triggers a guarded config
repair, and a WhatsApp channel that drops from connected to disconnected gets
one gateway restart under the same budget. Each instance's tick runs under its
own lock, so a slow tick is never doubled up by the next sweep.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from app.core.config import Settings
from app.core.logging import get_logger
from app.core.time import utcnow
from app.models.channels import CHANNEL_TYPE_WHATSAPP
from app.models.instances import (
    GATEWAY_STATUS_ERROR,
    GATEWAY_STATUS_RUNNING,
    GATEWAY_STATUS_STOPPED,
)
from app.services.openclaw.config_safeguard import ConfigSafeguard
from app.services.openclaw.config_store import ContainerTarget
from app.services.openclaw.gateway_probe import GatewayProbe, GatewayStartResult
from app.services.watchdog.registry import AuditSink, InstanceRegistry, WatchedInstance
from app.services.watchdog.state import HealthStateStore, InstanceHealthState, RestartPolicy

logger = get_logger(__name__)

AUDIT_RESOURCE = "instance"
ACTION_GATEWAY_RESTART = "watchdog.gateway_restart"
ACTION_WHATSAPP_RECONNECT = "watchdog.whatsapp_reconnect"
ACTION_CONFIG_SANITIZE = "watchdog.config_sanitize"

REASON_GATEWAY_NOT_RUNNING = "gateway_not_running"
REASON_WHATSAPP_DISCONNECTED = "whatsapp_disconnected"
REASON_CRASH_LOOP = "crash_loop_detected"
REASON_CONFIG_ERROR = "config_error_detected"

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


class GatewaySupervisor:
    """Owns the sweep loop, the per-instance locks, and the health state store."""

    def __init__(
        self,
        *,
        registry: InstanceRegistry,
        audit: AuditSink,
        probe: GatewayProbe,
        safeguard: ConfigSafeguard,
        policy: RestartPolicy | None = None,
        interval_seconds: float = 60.0,
        initial_delay_seconds: float = 10.0,
        settle_seconds: float = 3.0,
        clock: Clock = utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.audit = audit
        self.probe = probe
        self.safeguard = safeguard
        self.policy = policy or RestartPolicy()
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.settle_seconds = settle_seconds
        self.states = HealthStateStore()
        self._clock = clock
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.last_sweep_at: datetime | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        registry: InstanceRegistry,
        audit: AuditSink,
        probe: GatewayProbe,
        safeguard: ConfigSafeguard,
    ) -> GatewaySupervisor:
        return cls(
            registry=registry,
            audit=audit,
            probe=probe,
            safeguard=safeguard,
            policy=RestartPolicy.from_settings(settings),
            interval_seconds=settings.watchdog_interval_seconds,
            initial_delay_seconds=settings.watchdog_initial_delay_seconds,
            settle_seconds=settings.watchdog_post_start_settle_seconds,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # Lifecycle

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="gateway-supervisor")
        logger.info(
            "watchdog.started interval_s=%s initial_delay_s=%s",
            self.interval_seconds,
            self.initial_delay_seconds,
        )

    async def stop(self) -> None:
        """Cancel the pending wait and let any in-flight sweep finish."""
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        await task
        self._task = None
        logger.info("watchdog.stopped")

    async def _wait_or_stop(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        if await self._wait_or_stop(self.initial_delay_seconds):
            return
        while True:
            await self.sweep()
            if await self._wait_or_stop(self.interval_seconds):
                return

    # Sweep

    async def sweep(self) -> None:
        try:
            instances = await self.registry.list_active_instances()
        except Exception:
            logger.exception("watchdog.sweep.list_failed")
            return
        self.last_sweep_at = self._clock()
        if not instances:
            return
        logger.debug("watchdog.sweep instance_count=%s", len(instances))
        await asyncio.gather(*(self.check_instance(instance) for instance in instances))

    async def check_instance(self, instance: WatchedInstance) -> None:
        lock = self._locks.setdefault(instance.id, asyncio.Lock())
        if lock.locked():
            logger.info("watchdog.tick.skipped instance_id=%s reason=in_progress", instance.id)
            return
        async with lock:
            try:
                await self._tick(instance)
            except Exception:
                logger.exception("watchdog.tick.failed instance_id=%s", instance.id)

    async def _tick(self, instance: WatchedInstance) -> None:
        target = ContainerTarget(host=instance.host, container=instance.container)
        state = self.states.get(instance.id, self._clock())

        status = await self.probe.get_status(target)
        if not status.conclusive:
            logger.warning("watchdog.tick.status_unknown instance_id=%s", instance.id)
            return
        if status.running:
            await self._handle_running(instance, target, state)
        else:
            await self._handle_not_running(instance, target, state)

    # Process-death path

    async def _try_repair(
        self,
        instance: WatchedInstance,
        target: ContainerTarget,
        state: InstanceHealthState,
        reason: str,
    ) -> bool:
        if not self.policy.claim_repair(state, self._clock()):
            logger.info("watchdog.repair.throttled instance_id=%s", instance.id)
            return False
        logger.warning("watchdog.repair.start instance_id=%s reason=%s", instance.id, reason)
        repaired = await self.safeguard.repair_config(target)
        if repaired:
            state.consecutive_crashes = 0
        else:
            logger.error("watchdog.repair.failed instance_id=%s", instance.id)
        await self._audit(
            ACTION_CONFIG_SANITIZE,
            instance.id,
            {"instanceId": instance.id, "reason": reason, "success": repaired},
        )
        return repaired

    async def _handle_not_running(
        self,
        instance: WatchedInstance,
        target: ContainerTarget,
        state: InstanceHealthState,
    ) -> None:
        now = self._clock()
        state.observe_liveness(alive=False, now=now, cooldown=self.policy.cooldown)
        await self.registry.set_gateway_status(instance.id, GATEWAY_STATUS_STOPPED)

        if self.policy.is_crash_looping(state):
            logger.error(
                "watchdog.crash_loop instance_id=%s consecutive_crashes=%s",
                instance.id,
                state.consecutive_crashes,
            )
            config_error = await self.probe.detect_config_error(target)
            if config_error:
                logger.error(
                    "watchdog.crash_loop.config_error instance_id=%s error=%s",
                    instance.id,
                    config_error,
                )
            await self._try_repair(instance, target, state, REASON_CRASH_LOOP)

        if not self.policy.can_restart(state, now):
            logger.warning(
                "watchdog.restart.denied instance_id=%s restarts_this_hour=%s",
                instance.id,
                state.restarts_this_hour,
            )
            return

        logger.warning(
            "watchdog.restart.start instance_id=%s reason=%s",
            instance.id,
            REASON_GATEWAY_NOT_RUNNING,
        )
        result = await self.probe.start_gateway(target)
        state.record_restart(self._clock())
        result = await self._confirm_start(instance, target, state, result)

        if result.success:
            state.observe_liveness(alive=True, now=self._clock(), cooldown=self.policy.cooldown)
            logger.info("watchdog.restart.success instance_id=%s", instance.id)
        else:
            logger.error("watchdog.restart.failed instance_id=%s output=%s", instance.id, result.output)

        await self.registry.set_gateway_status(
            instance.id,
            GATEWAY_STATUS_RUNNING if result.success else GATEWAY_STATUS_ERROR,
        )
        await self._audit(
            ACTION_GATEWAY_RESTART,
            instance.id,
            {
                "instanceId": instance.id,
                "reason": REASON_GATEWAY_NOT_RUNNING,
                "success": result.success,
                "crashes": state.consecutive_crashes,
            },
        )

    async def _confirm_start(
        self,
        instance: WatchedInstance,
        target: ContainerTarget,
        state: InstanceHealthState,
        result: GatewayStartResult,
    ) -> GatewayStartResult:
        """Re-probe after the settle delay; repair and retry once on an immediate crash."""
        await self._sleep(self.settle_seconds)
        recheck = await self.probe.get_status(target)
        if not recheck.conclusive:
            return result
        if recheck.running:
            return GatewayStartResult(success=True, output=result.output)

        state.observe_liveness(alive=False, now=self._clock(), cooldown=self.policy.cooldown)
        logger.error(
            "watchdog.restart.died instance_id=%s consecutive_crashes=%s",
            instance.id,
            state.consecutive_crashes,
        )
        config_error = await self.probe.detect_config_error(target)
        if not config_error:
            return GatewayStartResult(success=False, output=result.output)
        logger.error(
            "watchdog.restart.config_error instance_id=%s error=%s",
            instance.id,
            config_error,
        )
        if not await self._try_repair(instance, target, state, REASON_CONFIG_ERROR):
            return GatewayStartResult(success=False, output=result.output)
        logger.info("watchdog.restart.retry instance_id=%s", instance.id)
        return await self.probe.start_gateway(target)

    # Channel path

    async def _handle_running(
        self,
        instance: WatchedInstance,
        target: ContainerTarget,
        state: InstanceHealthState,
    ) -> None:
        state.observe_liveness(alive=True, now=self._clock(), cooldown=self.policy.cooldown)

        health = await self.probe.get_health(target)
        if health is None:
            logger.info("watchdog.health.unknown instance_id=%s", instance.id)
        elif not health.ok:
            logger.warning("watchdog.health.unhealthy instance_id=%s", instance.id)

        whatsapp = await self.probe.get_whatsapp_status(target, health=health)
        if not whatsapp.conclusive:
            # No source answered; keep the last known channel state.
            logger.info("watchdog.whatsapp.unknown instance_id=%s", instance.id)
            await self.registry.set_gateway_status(instance.id, GATEWAY_STATUS_RUNNING)
            return
        channel_id = await self.registry.sync_channel_status(
            instance.id,
            CHANNEL_TYPE_WHATSAPP,
            connected=whatsapp.connected,
        )
        await self.registry.set_gateway_status(instance.id, GATEWAY_STATUS_RUNNING)
        if channel_id is None:
            return

        try:
            if state.was_connected and not whatsapp.connected:
                await self._reconnect_channel(instance, target, state, channel_id)
        finally:
            state.was_connected = whatsapp.connected

    async def _reconnect_channel(
        self,
        instance: WatchedInstance,
        target: ContainerTarget,
        state: InstanceHealthState,
        channel_id: str,
    ) -> None:
        now = self._clock()
        logger.warning("watchdog.whatsapp.disconnected instance_id=%s", instance.id)
        if not self.policy.can_restart(state, now):
            logger.warning(
                "watchdog.whatsapp.restart_denied instance_id=%s restarts_this_hour=%s",
                instance.id,
                state.restarts_this_hour,
            )
            return
        result = await self.probe.start_gateway(target)
        state.record_restart(now)
        if result.success:
            logger.info("watchdog.whatsapp.restart_success instance_id=%s", instance.id)
        else:
            logger.error("watchdog.whatsapp.restart_failed instance_id=%s", instance.id)
        await self._audit(
            ACTION_WHATSAPP_RECONNECT,
            channel_id,
            {
                "instanceId": instance.id,
                "reason": REASON_WHATSAPP_DISCONNECTED,
                "success": result.success,
            },
            resource="channel",
        )

    async def _audit(
        self,
        action: str,
        resource_id: str,
        details: dict[str, Any],
        *,
        resource: str = AUDIT_RESOURCE,
    ) -> None:
        try:
            await self.audit.record(
                action=action,
                resource=resource,
                resource_id=resource_id,
                details=details,
            )
        except Exception:
            logger.exception("watchdog.audit.failed action=%s resource_id=%s", action, resource_id)
