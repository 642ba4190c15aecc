"""Read access to files and the `openclaw.json` document inside a container."""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass
from typing import Any

from app.core.logging import TRACE_LEVEL, get_logger
from app.services.openclaw.constants import OPENCLAW_CONFIG
from app.services.openclaw.remote_exec import DEFAULT_EXEC_TIMEOUT_MS, RemoteExecutor

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ContainerTarget:
    """Host plus container name that identifies one isolated environment."""

    host: str
    container: str


def parse_config_document(raw: str | None) -> dict[str, Any] | None:
    """Parse a config document, returning `None` unless it is a JSON object."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class OpenClawConfigStore:
    """Thin accessor for the runtime config file over a `RemoteExecutor`."""

    def __init__(self, executor: RemoteExecutor, *, config_path: str = OPENCLAW_CONFIG) -> None:
        self.executor = executor
        self.config_path = config_path

    @property
    def staging_path(self) -> str:
        """Sibling file that new content lands in before it is renamed over the live path."""
        return f"{self.config_path}.tmp"

    async def read_file(
        self,
        target: ContainerTarget,
        path: str,
        *,
        timeout_ms: int = DEFAULT_EXEC_TIMEOUT_MS,
    ) -> str | None:
        result = await self.executor.execute(
            target.host,
            target.container,
            f"cat {shlex.quote(path)} 2>/dev/null",
            timeout_ms,
        )
        if result.exit_code != 0:
            logger.log(
                TRACE_LEVEL,
                "openclaw.config_store.read_miss container=%s path=%s exit_code=%s",
                target.container,
                path,
                result.exit_code,
            )
            return None
        return result.stdout

    async def read_config(self, target: ContainerTarget) -> dict[str, Any] | None:
        """Return the live config document, or `None` when missing or unparseable."""
        return parse_config_document(await self.read_file(target, self.config_path))

    async def write_raw(self, target: ContainerTarget, content: str) -> int:
        """Replace the live config file verbatim and return the exit code.

        Content is staged in `staging_path` and renamed into place, so a failed
        write leaves the live file untouched.
        """
        live = shlex.quote(self.config_path)
        staging = shlex.quote(self.staging_path)
        command = (
            f"cat > {staging} << 'EOFCFG' && mv -f {staging} {live} || {{ rm -f {staging}; false; }}\n"
            f"{content}\nEOFCFG"
        )
        result = await self.executor.execute(target.host, target.container, command)
        if result.exit_code != 0:
            logger.warning(
                "openclaw.config_store.write_failed container=%s exit_code=%s stderr=%s",
                target.container,
                result.exit_code,
                result.stderr,
            )
        return result.exit_code
