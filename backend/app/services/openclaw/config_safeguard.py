"""Sanitize and safely persist `openclaw.json`.

The runtime refuses to start the whole gateway when it meets an unknown key or
an incoherent `dmPolicy`/`allowFrom` pair, so every write goes through
`sanitize_config` first. Writes follow backup, staged write and rename, verify,
and roll back when verification fails: the live file is either the new valid
document or the previous one, never anything in between.
"""

from __future__ import annotations

import copy
import json
import shlex
from dataclasses import dataclass
from typing import Any

from app.core.logging import get_logger
from app.services.openclaw.config_store import (
    ContainerTarget,
    OpenClawConfigStore,
    parse_config_document,
)
from app.services.openclaw.constants import (
    AGENT_DEFAULTS_FORBIDDEN_KEYS,
    ALLOW_FROM_WILDCARD,
    CHANNEL_FORBIDDEN_KEYS,
    DM_POLICY_ALLOWLIST,
    DM_POLICY_DISABLED,
    DM_POLICY_OPEN,
    GATEWAY_RELOAD_PATTERN,
    OPENCLAW_CONFIG_BACKUP,
    VALID_CHANNEL_KEYS,
)

logger = get_logger(__name__)

_BACKUP_TAKEN = "BACKED_UP"
_NO_PRIOR_CONFIG = "NO_CONFIG"
_BACKUP_FAILED = "BACKUP_FAILED"


def _enforce_allow_from(channel_name: str, channel: dict[str, Any]) -> None:
    policy = channel.get("dmPolicy")
    allow_from = channel.get("allowFrom")
    if policy == DM_POLICY_OPEN:
        if not isinstance(allow_from, list) or ALLOW_FROM_WILDCARD not in allow_from:
            logger.info(
                "openclaw.config.sanitize.allow_from_forced channel=%s policy=open",
                channel_name,
            )
            channel["allowFrom"] = [ALLOW_FROM_WILDCARD]
    elif policy == DM_POLICY_ALLOWLIST:
        if isinstance(allow_from, list):
            channel["allowFrom"] = [v for v in allow_from if v != ALLOW_FROM_WILDCARD]
    elif policy == DM_POLICY_DISABLED:
        channel["allowFrom"] = []


def _strip_channel_keys(channel_name: str, channel: dict[str, Any]) -> None:
    for key in list(channel):
        if key in CHANNEL_FORBIDDEN_KEYS or key not in VALID_CHANNEL_KEYS:
            logger.warning(
                "openclaw.config.sanitize.key_removed path=channels.%s.%s",
                channel_name,
                key,
            )
            del channel[key]


def sanitize_config(config: Any) -> Any:
    """Return a copy of `config` the runtime will accept.

    - drops unknown and forbidden keys from every `channels.<name>` object
    - makes `allowFrom` agree with `dmPolicy`
    - drops keys from `agents.defaults` that are only valid per agent

    Non-object input is returned unchanged. The function is idempotent.
    """
    if not isinstance(config, dict):
        return config
    sanitized = copy.deepcopy(config)

    channels = sanitized.get("channels")
    if isinstance(channels, dict):
        for channel_name, channel in channels.items():
            if not isinstance(channel, dict):
                continue
            _strip_channel_keys(channel_name, channel)
            _enforce_allow_from(channel_name, channel)

    agents = sanitized.get("agents")
    defaults = agents.get("defaults") if isinstance(agents, dict) else None
    if isinstance(defaults, dict):
        for key in AGENT_DEFAULTS_FORBIDDEN_KEYS & defaults.keys():
            logger.warning("openclaw.config.sanitize.key_removed path=agents.defaults.%s", key)
            del defaults[key]

    return sanitized


def serialize_config(config: Any) -> str | None:
    """Serialize and round-trip parse; `None` when the result would not be lossless."""
    try:
        content = json.dumps(config, indent=2, allow_nan=False)
        reparsed = json.loads(content)
    except (TypeError, ValueError) as exc:
        logger.error("openclaw.config.serialize_failed error=%s", str(exc))
        return None
    if reparsed != config:
        logger.error("openclaw.config.serialize_failed error=round_trip_mismatch")
        return None
    return content


@dataclass(frozen=True, slots=True)
class _BackupOutcome:
    taken: bool
    had_prior_config: bool


class ConfigSafeguard:
    """Backup-write-verify-rollback writer for the runtime config."""

    def __init__(
        self,
        store: OpenClawConfigStore,
        *,
        backup_path: str = OPENCLAW_CONFIG_BACKUP,
    ) -> None:
        self.store = store
        self.executor = store.executor
        self.backup_path = backup_path

    async def _backup(self, target: ContainerTarget) -> _BackupOutcome:
        live = shlex.quote(self.store.config_path)
        backup = shlex.quote(self.backup_path)
        staging = shlex.quote(f"{self.backup_path}.tmp")
        # The slot is replaced by rename only, so a failed copy never clobbers the last good backup.
        result = await self.executor.execute(
            target.host,
            target.container,
            f"if [ -f {live} ]; then "
            f"if cp {live} {staging} && mv -f {staging} {backup}; then echo {_BACKUP_TAKEN}; "
            f"else rm -f {staging}; echo {_BACKUP_FAILED}; fi; "
            f"else echo {_NO_PRIOR_CONFIG}; fi",
        )
        marker = result.stdout.strip()
        outcome = _BackupOutcome(
            taken=marker == _BACKUP_TAKEN,
            had_prior_config=marker != _NO_PRIOR_CONFIG,
        )
        if not outcome.taken and outcome.had_prior_config:
            logger.warning(
                "openclaw.config.backup_failed container=%s exit_code=%s",
                target.container,
                result.exit_code,
            )
        return outcome

    async def _restore(self, target: ContainerTarget, backup: _BackupOutcome) -> None:
        live = shlex.quote(self.store.config_path)
        if backup.taken:
            staging = shlex.quote(self.store.staging_path)
            command = f"cp {shlex.quote(self.backup_path)} {staging} && mv -f {staging} {live}"
        elif not backup.had_prior_config:
            command = f"rm -f {live}"
        else:
            logger.error("openclaw.config.restore_unavailable container=%s", target.container)
            return
        result = await self.executor.execute(target.host, target.container, command)
        if result.exit_code != 0:
            logger.error(
                "openclaw.config.restore_failed container=%s exit_code=%s",
                target.container,
                result.exit_code,
            )
            return
        logger.warning("openclaw.config.restored container=%s", target.container)

    async def _signal_reload(self, target: ContainerTarget) -> None:
        # Fire and forget: with no running gateway the new file applies on next start.
        await self.executor.execute(
            target.host,
            target.container,
            f"PID=$(pgrep -f {shlex.quote(GATEWAY_RELOAD_PATTERN)} | head -1); "
            '[ -n "$PID" ] && kill -USR1 "$PID" 2>/dev/null; true',
        )

    async def write_config(self, target: ContainerTarget, config: Any) -> bool:
        safe = sanitize_config(config)
        content = serialize_config(safe) if isinstance(safe, dict) else None
        if content is None:
            logger.error(
                "openclaw.config.write_aborted container=%s reason=invalid_json",
                target.container,
            )
            return False

        backup = await self._backup(target)

        exit_code = await self.store.write_raw(target, content)
        if exit_code != 0:
            logger.error(
                "openclaw.config.write_failed container=%s exit_code=%s",
                target.container,
                exit_code,
            )
            return False

        written = parse_config_document(await self.store.read_file(target, self.store.config_path))
        if written is None:
            logger.error(
                "openclaw.config.verify_failed container=%s",
                target.container,
            )
            await self._restore(target, backup)
            return False

        await self._signal_reload(target)
        logger.info("openclaw.config.write_success container=%s", target.container)
        return True

    async def repair_config(self, target: ContainerTarget) -> bool:
        """Re-write the live config through the sanitizer."""
        config = await self.store.read_config(target)
        if config is None:
            logger.warning(
                "openclaw.config.repair_skipped container=%s reason=unreadable",
                target.container,
            )
            return False
        return await self.write_config(target, config)
