"""
MCP server models — configuration as discovered and runtime state as
tracked by the runtime manager.
"""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

MCPServerHealthStatus = Literal["starting", "healthy", "degraded", "unhealthy", "stopped"]


def _default_input_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


class MCPToolSchema(BaseModel):
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=_default_input_schema)


class MCPServerConfig(BaseModel):
    """A configured MCP server (before it is started)."""

    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    tools: list[MCPToolSchema] = Field(default_factory=list)
    idle_timeout: int | None = None
    source: str = ""            # where this entry was discovered


class MCPToolRuntimeState(BaseModel):
    namespace: str
    name: str
    enabled: bool = True
    last_registered_at: float | None = None


class MCPServerRuntimeState(BaseModel):
    """Health state machine for one MCP server.

    starting → healthy / degraded / unhealthy; a restart goes back to
    starting and bumps ``restart_count``.
    """

    name: str
    namespace: str
    pid: int | None = None
    status: MCPServerHealthStatus = "starting"
    restart_count: int = 0
    consecutive_failures: int = 0
    last_started_at: float = Field(default_factory=time.time)
    last_health_check_at: float | None = None
    last_error: str | None = None
    tools: list[MCPToolRuntimeState] = Field(default_factory=list)
