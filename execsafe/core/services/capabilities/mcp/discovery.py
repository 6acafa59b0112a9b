"""
MCP server discovery — collect configured MCP servers from env, the
settings file, and a JSON file in the state dir.

Sources are merged first-wins by server name:

    1. ``EXECSAFE_MCP_SERVERS``       (JSON in the environment)
    2. ``mcp_servers`` in execsafe.yml
    3. ``EXECSAFE_MCP_SERVERS_FILE``  or ``<state_dir>/mcp-servers.json``

Invalid entries never raise; they are skipped and reported as warnings.
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from execsafe.core.config.loader import Settings
from execsafe.core.models.mcp import MCPServerConfig, MCPToolSchema

logger = logging.getLogger(__name__)

DEFAULT_MCP_CONFIG_FILE = "mcp-servers.json"
ENV_SERVERS = "EXECSAFE_MCP_SERVERS"
ENV_SERVERS_FILE = "EXECSAFE_MCP_SERVERS_FILE"


@dataclass
class DiscoveryResult:
    servers: list[MCPServerConfig] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _parse_tool(raw: Any, server: str, source: str, index: int) -> MCPToolSchema | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name").strip() if isinstance(raw.get("name"), str) else ""
    if not name:
        logger.warning("%s: server %r tool[%d] missing name", source, server, index)
        return None
    description = raw.get("description") if isinstance(raw.get("description"), str) else ""
    schema = raw.get("inputSchema", raw.get("input_schema"))
    if isinstance(schema, dict):
        return MCPToolSchema(name=name, description=description, input_schema=schema)
    return MCPToolSchema(name=name, description=description)


def _parse_server(raw: Any, source: str, index: int) -> tuple[MCPServerConfig | None, str | None]:
    if not isinstance(raw, dict):
        return None, f"{source}: entry[{index}] is not an object"

    name = raw.get("name").strip() if isinstance(raw.get("name"), str) else ""
    command = raw.get("command").strip() if isinstance(raw.get("command"), str) else ""
    if not name or not command:
        return None, f"{source}: entry[{index}] must include non-empty name and command"

    raw_args = raw.get("args")
    args = [a for a in raw_args if isinstance(a, str)] if isinstance(raw_args, list) else []

    tools: list[MCPToolSchema] = []
    raw_tools = raw.get("tools") if isinstance(raw.get("tools"), list) else []
    for i, raw_tool in enumerate(raw_tools):
        tool = _parse_tool(raw_tool, name, source, i)
        if tool is not None:
            tools.append(tool)

    idle = raw.get("idleTimeout", raw.get("idle_timeout"))
    idle_timeout = None
    if isinstance(idle, (int, float)) and not isinstance(idle, bool) and math.isfinite(idle):
        idle_timeout = max(0, round(idle))

    return MCPServerConfig(
        name=name,
        command=command,
        args=args,
        tools=tools,
        idle_timeout=idle_timeout,
        source=source,
    ), None


def parse_mcp_server_list(raw: Any, source: str) -> DiscoveryResult:
    """Parse a list of servers, or ``{"servers": [...]}``."""
    if isinstance(raw, list):
        entries = raw
    elif isinstance(raw, dict) and isinstance(raw.get("servers"), list):
        entries = raw["servers"]
    else:
        entries = []

    result = DiscoveryResult()
    for index, entry in enumerate(entries):
        server, warning = _parse_server(entry, source, index)
        if warning:
            result.warnings.append(warning)
        if server is not None:
            result.servers.append(server)
    return result


def _read_json_file(path: Path) -> Any:
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not parse %s: %s", path, e)
        return None


def mcp_servers_file(settings: Settings) -> Path:
    configured = os.environ.get(ENV_SERVERS_FILE, "").strip()
    if configured:
        return Path(configured).expanduser()
    return settings.resolved_state_dir() / DEFAULT_MCP_CONFIG_FILE


def load_configured_mcp_servers(settings: Settings | None = None) -> DiscoveryResult:
    """Merge every configured source, first source wins per name."""
    settings = settings or Settings()
    warnings: list[str] = []

    env_raw: Any = None
    env_text = os.environ.get(ENV_SERVERS, "")
    if env_text.strip():
        try:
            env_raw = json.loads(env_text)
        except json.JSONDecodeError as e:
            warnings.append(f"env:{ENV_SERVERS} is invalid JSON ({e})")

    file_path = mcp_servers_file(settings)
    candidates: list[tuple[str, Any]] = [
        (f"env:{ENV_SERVERS}", env_raw),
        ("settings:mcp_servers", settings.mcp_servers),
        (f"file:{file_path}", _read_json_file(file_path)),
    ]

    merged: dict[str, MCPServerConfig] = {}
    for source, raw in candidates:
        parsed = parse_mcp_server_list(raw, source)
        warnings.extend(parsed.warnings)
        for server in parsed.servers:
            merged.setdefault(server.name, server)

    for warning in warnings:
        logger.warning("MCP discovery: %s", warning)
    return DiscoveryResult(servers=list(merged.values()), warnings=warnings)
