# ruff: noqa: INP001, S101
"""Command construction and failure mapping for the lxc executor."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import pytest

from app.services.openclaw import remote_exec
from app.services.openclaw.remote_exec import (
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    LxcRemoteExecutor,
)

LOCAL = frozenset({"localhost", "127.0.0.1"})


def test_local_host_runs_lxc_directly() -> None:
    executor = LxcRemoteExecutor(ssh_key="", local_hosts=LOCAL)

    argv = executor.build_argv("127.0.0.1", "oc-demo", "echo 'hi'")

    assert argv == ["bash", "-c", "lxc exec oc-demo -- bash -c 'echo '\"'\"'hi'\"'\"''"]


def test_remote_host_tunnels_over_ssh_with_key() -> None:
    executor = LxcRemoteExecutor(ssh_key="/etc/panel/id_ed25519", local_hosts=LOCAL)

    argv = executor.build_argv("10.0.0.5", "oc-demo", "uptime")

    assert argv == [
        "ssh",
        "-o",
        "StrictHostKeyChecking=no",
        "-o",
        "ConnectTimeout=10",
        "-i",
        "/etc/panel/id_ed25519",
        "root@10.0.0.5",
        "lxc exec oc-demo -- bash -c uptime",
    ]


def test_remote_host_without_key_omits_identity_flag() -> None:
    executor = LxcRemoteExecutor(ssh_key="", local_hosts=LOCAL)

    assert "-i" not in executor.build_argv("10.0.0.5", "oc-demo", "uptime")


@dataclass
class _FakeProcess:
    stdout: bytes = b""
    stderr: bytes = b""
    returncode: int | None = 0
    hang: bool = False
    killed: bool = False

    async def communicate(self) -> tuple[bytes, bytes]:
        if self.hang:
            await asyncio.sleep(3600)
        return self.stdout, self.stderr

    def kill(self) -> None:
        self.killed = True

    async def wait(self) -> int:
        return -9


@pytest.mark.asyncio
async def test_execute_decodes_and_strips_output(monkeypatch: pytest.MonkeyPatch) -> None:
    process = _FakeProcess(stdout=b"1234\nFOUND\n", stderr=b"", returncode=0)
    seen: list[tuple[Any, ...]] = []

    async def _spawn(*argv: Any, **_: Any) -> _FakeProcess:
        seen.append(argv)
        return process

    monkeypatch.setattr(remote_exec.asyncio, "create_subprocess_exec", _spawn)
    executor = LxcRemoteExecutor(ssh_key="", local_hosts=LOCAL)

    result = await executor.execute("localhost", "oc-demo", "pgrep -f x")

    assert result.ok is True
    assert result.stdout == "1234\nFOUND"
    assert seen[0][0] == "bash"


@pytest.mark.asyncio
async def test_execute_maps_timeout_to_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    process = _FakeProcess(hang=True)

    async def _spawn(*_argv: Any, **_: Any) -> _FakeProcess:
        return process

    monkeypatch.setattr(remote_exec.asyncio, "create_subprocess_exec", _spawn)
    executor = LxcRemoteExecutor(ssh_key="", local_hosts=LOCAL)

    result = await executor.execute("localhost", "oc-demo", "sleep 60", timeout_ms=10)

    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert process.killed is True


@pytest.mark.asyncio
async def test_execute_maps_spawn_failure_to_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _spawn(*_argv: Any, **_: Any) -> _FakeProcess:
        raise FileNotFoundError("ssh")

    monkeypatch.setattr(remote_exec.asyncio, "create_subprocess_exec", _spawn)
    executor = LxcRemoteExecutor(ssh_key="", local_hosts=LOCAL)

    result = await executor.execute("10.0.0.5", "oc-demo", "uptime")

    assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
    assert result.ok is False
    assert "ssh" in result.stderr
