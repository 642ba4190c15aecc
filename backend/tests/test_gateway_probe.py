# ruff: noqa: INP001, S101
"""Gateway liveness/health parsing and the WhatsApp source priority order."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import pytest

from app.schemas.gateway_health import HealthReport
from app.services.openclaw.config_store import ContainerTarget, OpenClawConfigStore
from app.services.openclaw.gateway_probe import (
    WHATSAPP_UNKNOWN,
    GatewayProbe,
    extract_json_payload,
)
from app.services.openclaw.remote_exec import ExecResult

TARGET = ContainerTarget(host="10.0.0.5", container="oc-demo")

HEALTH_CMD = "gateway call health"
STATUS_CMD = "gateway call status"
PGREP_CMD = "pgrep -f"
CONFIG_READ = "cat /root/.openclaw/openclaw.json"
PAIRED_READ = "cat /root/.openclaw/devices/paired.json"


def _ok(stdout: str) -> ExecResult:
    return ExecResult(exit_code=0, stdout=stdout, stderr="")


_FAIL = ExecResult(exit_code=1, stdout="", stderr="")


@dataclass
class _ScriptedExecutor:
    """Return the first scripted result whose needle occurs in the command."""

    responses: dict[str, list[ExecResult]] = field(default_factory=dict)
    commands: list[str] = field(default_factory=list)

    async def execute(
        self,
        host: str,
        environment: str,
        command: str,
        timeout_ms: int = 30_000,
    ) -> ExecResult:
        self.commands.append(command)
        for needle, results in self.responses.items():
            if needle in command:
                return results.pop(0) if len(results) > 1 else results[0]
        return _FAIL


def _probe(executor: _ScriptedExecutor) -> tuple[GatewayProbe, list[float]]:
    sleeps: list[float] = []

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return GatewayProbe(executor, OpenClawConfigStore(executor), sleep=_sleep), sleeps


def test_extract_json_payload_skips_banner_noise() -> None:
    output = '[plugins] loaded 3 plugins\nwarn: something {not yet}\n'
    assert extract_json_payload(output) is None
    assert extract_json_payload('🦞 OpenClaw 2026.2\n{"ok": true}') == {"ok": True}
    assert extract_json_payload("") is None


@pytest.mark.asyncio
async def test_get_status_reads_pid_and_port_when_found() -> None:
    executor = _ScriptedExecutor(
        responses={
            PGREP_CMD: [_ok("1234\n1240\nFOUND")],
            CONFIG_READ: [_ok(json.dumps({"gateway": {"port": 18789}}))],
        },
    )
    probe, _ = _probe(executor)

    status = await probe.get_status(TARGET)

    assert status.running is True
    assert status.conclusive is True
    assert status.pid == 1234
    assert status.port == 18789
    assert "[o]penclaw-gatewa" in executor.commands[0]


@pytest.mark.asyncio
async def test_get_status_not_found_is_conclusive() -> None:
    probe, _ = _probe(_ScriptedExecutor(responses={PGREP_CMD: [_ok("NOTFOUND")]}))

    status = await probe.get_status(TARGET)

    assert status.running is False
    assert status.conclusive is True


@pytest.mark.asyncio
async def test_get_status_without_sentinel_is_inconclusive() -> None:
    timeout = ExecResult(exit_code=124, stdout="", stderr="Command timed out after 10000ms")
    probe, _ = _probe(_ScriptedExecutor(responses={PGREP_CMD: [timeout]}))

    status = await probe.get_status(TARGET)

    assert status.running is False
    assert status.conclusive is False


@pytest.mark.asyncio
async def test_get_health_parses_payload_after_banner() -> None:
    payload = {
        "ok": False,
        "channels": {
            "whatsapp": {
                "configured": True,
                "linked": True,
                "running": False,
                "connected": False,
                "self": {"e164": "+15550001"},
                "lastError": "stream errored",
            },
        },
    }
    executor = _ScriptedExecutor(responses={HEALTH_CMD: [_ok("Gateway ready\n" + json.dumps(payload))]})
    probe, _ = _probe(executor)

    report = await probe.get_health(TARGET)

    assert report is not None
    assert report.ok is False
    whatsapp = report.channels["whatsapp"]
    assert whatsapp.linked is True
    assert whatsapp.identity is not None
    assert whatsapp.identity.e164 == "+15550001"
    assert whatsapp.last_error == "stream errored"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result",
    [
        _FAIL,
        _ok(""),
        _ok("gateway not reachable"),
        _ok("{broken json"),
        _ok('{"channels": "nope"}'),
    ],
)
async def test_get_health_failure_is_unknown(result: ExecResult) -> None:
    probe, _ = _probe(_ScriptedExecutor(responses={HEALTH_CMD: [result]}))

    assert await probe.get_health(TARGET) is None


@pytest.mark.asyncio
async def test_whatsapp_status_call_wins_when_conclusive() -> None:
    status_payload = {
        "linkChannel": {"id": "whatsapp", "linked": True, "authAgeMs": 5400},
        "channelSummary": ["WhatsApp: linked +15551234567 (auth 5s)"],
    }
    executor = _ScriptedExecutor(
        responses={
            STATUS_CMD: [_ok(json.dumps(status_payload))],
            HEALTH_CMD: [_ok(json.dumps({"ok": True, "channels": {}}))],
        },
    )
    probe, _ = _probe(executor)

    status = await probe.get_whatsapp_status(TARGET)

    assert status.source == "status"
    assert status.paired is True
    assert status.connected is True
    assert status.phone == "+15551234567"
    assert not any(HEALTH_CMD in command for command in executor.commands)


@pytest.mark.asyncio
async def test_whatsapp_linked_without_auth_age_is_not_connected() -> None:
    status_payload = {"linkChannel": {"id": "whatsapp", "linked": True}, "channelSummary": []}
    probe, _ = _probe(_ScriptedExecutor(responses={STATUS_CMD: [_ok(json.dumps(status_payload))]}))

    status = await probe.get_whatsapp_status(TARGET)

    assert status.source == "status"
    assert status.paired is True
    assert status.connected is False
    assert status.phone is None


@pytest.mark.asyncio
async def test_whatsapp_falls_back_to_health_when_status_is_for_another_channel() -> None:
    status_payload = {"linkChannel": {"id": "telegram", "linked": True, "authAgeMs": 1}}
    health_payload = {
        "ok": True,
        "channels": {
            "whatsapp": {"linked": True, "running": False, "connected": False, "self": {"e164": "+4470000"}},
        },
    }
    executor = _ScriptedExecutor(
        responses={
            STATUS_CMD: [_ok(json.dumps(status_payload))],
            HEALTH_CMD: [_ok(json.dumps(health_payload))],
        },
    )
    probe, _ = _probe(executor)

    status = await probe.get_whatsapp_status(TARGET)

    assert status.source == "health"
    assert status.connected is True
    assert status.running is True
    assert status.phone == "+4470000"


@pytest.mark.asyncio
async def test_whatsapp_health_without_identity_reports_flags_as_is() -> None:
    health_payload = {"ok": True, "channels": {"whatsapp": {"linked": True, "connected": False}}}
    probe, _ = _probe(_ScriptedExecutor(responses={HEALTH_CMD: [_ok(json.dumps(health_payload))]}))

    status = await probe.get_whatsapp_status(TARGET)

    assert status.source == "health"
    assert status.paired is True
    assert status.connected is False


@pytest.mark.asyncio
async def test_whatsapp_falls_back_to_pairing_file() -> None:
    executor = _ScriptedExecutor(
        responses={PAIRED_READ: [_ok(json.dumps({"jid": "15550001@s.whatsapp.net"}))]},
    )
    probe, _ = _probe(executor)

    status = await probe.get_whatsapp_status(TARGET)

    assert status.source == "paired_file"
    assert status.paired is True
    assert status.connected is False
    assert status.phone == "15550001@s.whatsapp.net"
    sources_tried = [
        needle
        for command in executor.commands
        for needle in (STATUS_CMD, HEALTH_CMD, PAIRED_READ)
        if needle in command
    ]
    assert sources_tried == [STATUS_CMD, HEALTH_CMD, PAIRED_READ]


@pytest.mark.asyncio
async def test_whatsapp_unknown_when_no_source_is_conclusive() -> None:
    probe, _ = _probe(_ScriptedExecutor())

    status = await probe.get_whatsapp_status(TARGET)

    assert status == WHATSAPP_UNKNOWN
    assert status.conclusive is False


@pytest.mark.asyncio
async def test_whatsapp_reuses_prefetched_health_report() -> None:
    report = HealthReport.model_validate(
        {"ok": True, "channels": {"whatsapp": {"linked": True, "self": {"e164": "+4470000"}}}},
    )
    executor = _ScriptedExecutor()
    probe, _ = _probe(executor)

    status = await probe.get_whatsapp_status(TARGET, health=report)

    assert status.source == "health"
    assert status.connected is True
    assert not any(HEALTH_CMD in command for command in executor.commands)


@pytest.mark.asyncio
async def test_whatsapp_failed_prefetch_skips_health_query() -> None:
    executor = _ScriptedExecutor(
        responses={PAIRED_READ: [_ok(json.dumps({"phone": "+15550001"}))]},
    )
    probe, _ = _probe(executor)

    status = await probe.get_whatsapp_status(TARGET, health=None)

    assert status.source == "paired_file"
    assert status.conclusive is True
    assert not any(HEALTH_CMD in command for command in executor.commands)


@pytest.mark.asyncio
async def test_start_gateway_confirms_process_after_init_wait() -> None:
    executor = _ScriptedExecutor(
        responses={
            "killall": [_ok("")],
            "nohup": [_ok("5678")],
            PGREP_CMD: [_ok("5678\nFOUND")],
        },
    )
    probe, sleeps = _probe(executor)

    result = await probe.start_gateway(TARGET)

    assert result.success is True
    assert result.output == "PID: 5678"
    assert sleeps == [probe.init_wait_s]
    assert "rm -f /root/.openclaw/gateway.lock" in executor.commands[0]
    assert "/tmp/openclaw-gateway.log" in executor.commands[1]


@pytest.mark.asyncio
async def test_start_gateway_without_pid_fails_fast() -> None:
    executor = _ScriptedExecutor(
        responses={
            "killall": [_ok("")],
            "nohup": [ExecResult(exit_code=1, stdout="", stderr="openclaw: not found")],
        },
    )
    probe, sleeps = _probe(executor)

    result = await probe.start_gateway(TARGET)

    assert result.success is False
    assert result.output == "openclaw: not found"
    assert sleeps == []


@pytest.mark.asyncio
async def test_start_gateway_reports_failure_when_process_exits() -> None:
    executor = _ScriptedExecutor(
        responses={
            "killall": [_ok("")],
            "nohup": [_ok("5678")],
            PGREP_CMD: [_ok("NOTFOUND")],
        },
    )
    probe, _ = _probe(executor)

    assert (await probe.start_gateway(TARGET)).success is False


@pytest.mark.asyncio
async def test_detect_config_error_returns_first_matching_log_line() -> None:
    log_tail = "\n".join(
        [
            "gateway starting",
            "  Invalid config at channels.whatsapp: Unrecognized key \"enabled\"  ",
            "Unrecognized key: contactLabels",
        ],
    )
    probe, _ = _probe(_ScriptedExecutor(responses={"tail -50": [_ok(log_tail)]}))

    assert (
        await probe.detect_config_error(TARGET)
        == 'Invalid config at channels.whatsapp: Unrecognized key "enabled"'
    )


@pytest.mark.asyncio
async def test_detect_config_error_none_for_clean_log() -> None:
    probe, _ = _probe(_ScriptedExecutor(responses={"tail -50": [_ok("listening on :18789")]}))

    assert await probe.detect_config_error(TARGET) is None
