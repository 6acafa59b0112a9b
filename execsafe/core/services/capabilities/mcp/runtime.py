"""
MCP runtime tracker — health state for configured MCP servers.

Tracks state only; starting, stopping and talking to server processes
belong to the MCP host.  Transitions:

    register        → starting
    health ok       → healthy (consecutive failures reset)
    health degraded → degraded
    health failure  → unhealthy (consecutive failures +1)
    restart         → starting (restart count +1)
    stop            → stopped
"""

from __future__ import annotations

import logging
import re
import threading
import time

from execsafe.core.models.mcp import (
    MCPServerConfig,
    MCPServerHealthStatus,
    MCPServerRuntimeState,
    MCPToolRuntimeState,
)

logger = logging.getLogger(__name__)

_NAMESPACE_RE = re.compile(r"[^a-z0-9_]+")


def server_namespace(name: str) -> str:
    """Tool namespace for a server: ``mcp_<slug>``."""
    slug = _NAMESPACE_RE.sub("_", name.strip().lower()).strip("_")
    return f"mcp_{slug or 'server'}"


class MCPRuntimeTracker:
    """Thread-safe registry of MCP server runtime states."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._servers: dict[str, MCPServerRuntimeState] = {}

    def register_server(
        self,
        config: MCPServerConfig,
        pid: int | None = None,
    ) -> MCPServerRuntimeState:
        """Start tracking a server (or re-track it) in ``starting``."""
        now = time.time()
        namespace = server_namespace(config.name)
        state = MCPServerRuntimeState(
            name=config.name,
            namespace=namespace,
            pid=pid,
            status="starting",
            last_started_at=now,
            tools=[
                MCPToolRuntimeState(namespace=namespace, name=t.name, last_registered_at=now)
                for t in config.tools
            ],
        )
        with self._lock:
            previous = self._servers.get(config.name)
            if previous is not None:
                state.restart_count = previous.restart_count
            self._servers[config.name] = state
        logger.debug("MCP server registered: %s (%d tools)", config.name, len(config.tools))
        return state.model_copy(deep=True)

    def update_health(
        self,
        name: str,
        status: MCPServerHealthStatus,
        error: str | None = None,
    ) -> MCPServerRuntimeState | None:
        """Record a health check result.  None for an unknown server."""
        with self._lock:
            state = self._servers.get(name)
            if state is None:
                return None
            previous = state.status
            state.status = status
            state.last_health_check_at = time.time()
            if status == "healthy":
                state.consecutive_failures = 0
                state.last_error = None
            elif status == "unhealthy":
                state.consecutive_failures += 1
                state.last_error = error or state.last_error
            elif error:
                state.last_error = error
            snapshot = state.model_copy(deep=True)

        if previous != status:
            log = logger.warning if status == "unhealthy" else logger.info
            log("MCP server '%s': %s → %s", name, previous, status)
        return snapshot

    def record_restart(self, name: str, pid: int | None = None) -> MCPServerRuntimeState | None:
        """Mark a restart: back to ``starting`` with the counter bumped."""
        with self._lock:
            state = self._servers.get(name)
            if state is None:
                return None
            state.restart_count += 1
            state.status = "starting"
            state.pid = pid
            state.last_started_at = time.time()
            snapshot = state.model_copy(deep=True)
        logger.info("MCP server '%s' restarted (#%d)", name, snapshot.restart_count)
        return snapshot

    def mark_stopped(self, name: str) -> MCPServerRuntimeState | None:
        return self.update_health(name, "stopped")

    def get(self, name: str) -> MCPServerRuntimeState | None:
        with self._lock:
            state = self._servers.get(name)
            return state.model_copy(deep=True) if state else None

    def list(self) -> list[MCPServerRuntimeState]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._servers.values()]
