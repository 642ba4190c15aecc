"""Shared constants for the OpenClaw runtime inside instance containers."""

from __future__ import annotations

import re

OPENCLAW_DIR = "/root/.openclaw"
OPENCLAW_CONFIG = f"{OPENCLAW_DIR}/openclaw.json"
OPENCLAW_CONFIG_BACKUP = f"{OPENCLAW_CONFIG}.bak"
OPENCLAW_BIN = "/usr/bin/openclaw"
OPENCLAW_PAIRED_FILE = f"{OPENCLAW_DIR}/devices/paired.json"
OPENCLAW_GATEWAY_LOCK = f"{OPENCLAW_DIR}/gateway.lock"
GATEWAY_LOG_FILE = "/tmp/openclaw-gateway.log"

# The kernel truncates process names to 15 characters ("openclaw-gatewa"), so the
# liveness pattern stops at that prefix and matches truncated and full names alike.
# The bracket keeps `pgrep -f` from matching the wrapping `bash -c` command line.
GATEWAY_PROCESS_PATTERN = "[o]penclaw-gatewa"
GATEWAY_RELOAD_PATTERN = "[o]penclaw.*gateway"

ALLOW_FROM_WILDCARD = "*"
DM_POLICY_OPEN = "open"
DM_POLICY_ALLOWLIST = "allowlist"
DM_POLICY_DISABLED = "disabled"

# Keys inside `channels.<name>` that the runtime rejects outright. `enabled`
# lives under `plugins.entries.<name>`; `contactLabels` is panel-only data.
CHANNEL_FORBIDDEN_KEYS = frozenset({"enabled", "contactLabels"})

# `identity` is valid in `agents.list[]` entries but not in `agents.defaults`.
AGENT_DEFAULTS_FORBIDDEN_KEYS = frozenset({"identity"})

VALID_CHANNEL_KEYS = frozenset(
    {
        "dmPolicy",
        "allowFrom",
        "groupPolicy",
        "groupAllowFrom",
        "mediaMaxMb",
        "debounceMs",
        "textChunkLimit",
        "chunkMode",
        "readReceipts",
        "requireMention",
        "historyLimit",
        "streamMode",
        "replyToMode",
        "linkPreview",
        "reactionScope",
        "configWrites",
        "customCommands",
        "allowBots",
        "maxLinesPerMessage",
        "chatmode",
        "token",
        "botToken",
        "appToken",
        "signingSecret",
        "username",
        "applicationId",
        "guildId",
        "appId",
        "appPassword",
        "tenantId",
        "serviceAccountKey",
        "spaceId",
        "serviceAccountFile",
        "homeserver",
        "accessToken",
        "userId",
        "url",
        "secret",
        "apiKey",
        "allowedOrigins",
        "bridgeUrl",
        "signalCliPath",
        "channelAccessToken",
        "channelSecret",
        "mode",
        "webhookPath",
        "userTokenReadOnly",
        "webhookMode",
        "webhookUrl",
        "webhookSecret",
        "dmEnabled",
        "dmGroupEnabled",
        "threadHistoryScope",
        "slashCommandEnabled",
        "mediaMax",
        "accounts",
        "groups",
        "guilds",
        "channels",
    },
)

CONFIG_ERROR_LOG_LINES = 50
CONFIG_ERROR_PATTERN = re.compile(r"Invalid config|Unrecognized key|invalid.*config", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\+\d+")

HEALTH_QUERY_TIMEOUT_MS = 15_000
STATUS_QUERY_TIMEOUT_MS = 15_000
PROCESS_QUERY_TIMEOUT_MS = 10_000
LOG_TAIL_TIMEOUT_MS = 5_000
GATEWAY_KILL_TIMEOUT_MS = 10_000
GATEWAY_LAUNCH_TIMEOUT_MS = 15_000
GATEWAY_INIT_WAIT_S = 4.0
