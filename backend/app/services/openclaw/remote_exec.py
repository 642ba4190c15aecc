"""Command execution inside instance containers.

The watchdog and config safeguard only depend on the `RemoteExecutor`
protocol. `LxcRemoteExecutor` is the adapter wired by the application: it runs
`lxc exec <container> -- bash -c <command>` locally for loopback hosts and over
`ssh` for remote ones. Failures (spawn errors, timeouts, nonzero exits) are
always reported through `ExecResult`, never raised.
"""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from time import perf_counter
from typing import Protocol

from app.core.config import settings
from app.core.logging import TRACE_LEVEL, get_logger

DEFAULT_EXEC_TIMEOUT_MS = 30_000
TIMEOUT_EXIT_CODE = 124
SPAWN_FAILURE_EXIT_CODE = 127
logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ExecResult:
    """Outcome of one remote command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RemoteExecutor(Protocol):
    """Run a shell command inside a named container on a named host."""

    async def execute(
        self,
        host: str,
        environment: str,
        command: str,
        timeout_ms: int = DEFAULT_EXEC_TIMEOUT_MS,
    ) -> ExecResult: ...


class LxcRemoteExecutor:
    """`RemoteExecutor` backed by the `lxc` CLI, optionally tunnelled over ssh."""

    def __init__(
        self,
        *,
        ssh_key: str | None = None,
        local_hosts: frozenset[str] | None = None,
    ) -> None:
        self._ssh_key = settings.lxc_ssh_key if ssh_key is None else ssh_key
        self._local_hosts = settings.local_hosts if local_hosts is None else local_hosts

    def is_local(self, host: str) -> bool:
        return host in self._local_hosts

    def build_argv(self, host: str, environment: str, command: str) -> list[str]:
        container_cmd = f"lxc exec {shlex.quote(environment)} -- bash -c {shlex.quote(command)}"
        if self.is_local(host):
            return ["bash", "-c", container_cmd]
        argv = ["ssh", "-o", "StrictHostKeyChecking=no", "-o", "ConnectTimeout=10"]
        if self._ssh_key:
            argv.extend(["-i", self._ssh_key])
        argv.extend([f"root@{host}", container_cmd])
        return argv

    async def execute(
        self,
        host: str,
        environment: str,
        command: str,
        timeout_ms: int = DEFAULT_EXEC_TIMEOUT_MS,
    ) -> ExecResult:
        argv = self.build_argv(host, environment, command)
        started_at = perf_counter()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning(
                "lxc.exec.spawn_failed host=%s container=%s error=%s",
                host,
                environment,
                str(exc),
            )
            return ExecResult(exit_code=SPAWN_FAILURE_EXIT_CODE, stdout="", stderr=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_ms / 1000)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(
                "lxc.exec.timeout host=%s container=%s timeout_ms=%s",
                host,
                environment,
                timeout_ms,
            )
            return ExecResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {timeout_ms}ms",
            )

        result = ExecResult(
            exit_code=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
        )
        logger.log(
            TRACE_LEVEL,
            "lxc.exec.done host=%s container=%s exit_code=%s duration_ms=%s",
            host,
            environment,
            result.exit_code,
            int((perf_counter() - started_at) * 1000),
        )
        return result
