"""Per-instance health bookkeeping and the restart/repair policy.

State lives in memory for the lifetime of the supervisor. A restart of the
panel process starts every instance from a clean slate.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from app.core.config import Settings

HOUR_WINDOW = timedelta(hours=1)


@dataclass(slots=True)
class InstanceHealthState:
    """What the supervisor remembers about one instance between ticks."""

    hour_window_start: datetime
    was_connected: bool = False
    last_restart_at: datetime | None = None
    restarts_this_hour: int = 0
    consecutive_crashes: int = 0
    last_config_sanitize_at: datetime | None = None

    def roll_hour_window(self, now: datetime) -> None:
        if now - self.hour_window_start > HOUR_WINDOW:
            self.restarts_this_hour = 0
            self.hour_window_start = now

    def restarted_within(self, now: datetime, window: timedelta) -> bool:
        return self.last_restart_at is not None and now - self.last_restart_at < window

    def observe_liveness(self, *, alive: bool, now: datetime, cooldown: timedelta) -> None:
        """Single crash-accounting transition.

        Alive resets the streak. Dead counts as a crash only when the last
        restart is still inside the cooldown, which covers both a gateway found
        dead at the start of a tick and one that dies right after a fresh start.
        """
        if alive:
            self.consecutive_crashes = 0
        elif self.restarted_within(now, cooldown):
            self.consecutive_crashes += 1

    def record_restart(self, now: datetime) -> None:
        self.last_restart_at = now
        self.restarts_this_hour += 1


@dataclass(frozen=True, slots=True)
class RestartPolicy:
    """Bounds shared by the process-death and channel-disconnect paths."""

    cooldown: timedelta = timedelta(minutes=5)
    max_restarts_per_hour: int = 3
    crash_loop_threshold: int = 3
    repair_interval: timedelta = timedelta(minutes=10)

    @classmethod
    def from_settings(cls, settings: Settings) -> RestartPolicy:
        return cls(
            cooldown=timedelta(seconds=settings.watchdog_restart_cooldown_seconds),
            max_restarts_per_hour=settings.watchdog_max_restarts_per_hour,
            crash_loop_threshold=settings.watchdog_crash_loop_threshold,
            repair_interval=timedelta(seconds=settings.watchdog_config_repair_interval_seconds),
        )

    def can_restart(self, state: InstanceHealthState, now: datetime) -> bool:
        if state.restarts_this_hour >= self.max_restarts_per_hour:
            return False
        return not state.restarted_within(now, self.cooldown)

    def is_crash_looping(self, state: InstanceHealthState) -> bool:
        return state.consecutive_crashes >= self.crash_loop_threshold

    def claim_repair(self, state: InstanceHealthState, now: datetime) -> bool:
        """Stamp and allow a repair attempt unless one ran inside the interval."""
        last = state.last_config_sanitize_at
        if last is not None and now - last <= self.repair_interval:
            return False
        state.last_config_sanitize_at = now
        return True


class HealthStateStore:
    """Owned map of instance id to `InstanceHealthState`.

    Entries are created on first observation and never removed; an instance
    that leaves the active set simply stops being ticked.
    """

    def __init__(self) -> None:
        self._states: dict[str, InstanceHealthState] = {}

    def get(self, instance_id: str, now: datetime) -> InstanceHealthState:
        state = self._states.get(instance_id)
        if state is None:
            state = InstanceHealthState(hour_window_start=now)
            self._states[instance_id] = state
        state.roll_hour_window(now)
        return state

    def snapshot(self) -> dict[str, InstanceHealthState]:
        return {key: replace(value) for key, value in self._states.items()}

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._states

    def __iter__(self) -> Iterator[str]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)
