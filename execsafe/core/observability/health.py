"""
Health checker — aggregate platform health from its components.

Reports on MCP servers, install cooldowns, the checkpoint root and the
container sandbox.  Used by the CLI ``health`` command.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from execsafe.core.services.capabilities.execution.checkpoint import CheckpointManager
from execsafe.core.services.capabilities.mcp.runtime import MCPRuntimeTracker
from execsafe.core.services.capabilities.orchestration.install import InstallOrchestrator

if TYPE_CHECKING:
    from execsafe.core.services.capabilities.orchestration.services import PlatformServices

logger = logging.getLogger(__name__)


def _writable(path: Path) -> bool:
    """Whether ``path`` (or its nearest existing ancestor) accepts new files."""
    probe = path
    while not probe.exists() and probe.parent != probe:
        probe = probe.parent
    return probe.is_dir() and os.access(probe, os.W_OK | os.X_OK)


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the platform."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_mcp_servers(tracker: MCPRuntimeTracker) -> ComponentHealth:
    """Unhealthy if any tracked server is unhealthy, degraded if any is degraded."""
    servers = tracker.list()
    if not servers:
        return ComponentHealth(
            name="mcp_servers", status="healthy", message="No MCP servers tracked",
        )

    by_status: dict[str, list[str]] = {}
    for server in servers:
        by_status.setdefault(server.status, []).append(server.name)

    total = len(servers)
    if by_status.get("unhealthy"):
        status = "unhealthy"
        message = f"{len(by_status['unhealthy'])}/{total} servers unhealthy"
    elif by_status.get("degraded"):
        status = "degraded"
        message = f"{len(by_status['degraded'])}/{total} servers degraded"
    else:
        status = "healthy"
        message = f"{total} servers tracked"

    return ComponentHealth(name="mcp_servers", status=status, message=message, details=by_status)


def check_install_cooldowns(installer: InstallOrchestrator) -> ComponentHealth:
    """Degraded while any capability is in its failure cooldown."""
    cooling = installer.cooldown_status()
    if cooling:
        return ComponentHealth(
            name="install_cooldowns",
            status="degraded",
            message=f"{len(cooling)} capabilities cooling down: {', '.join(sorted(cooling))}",
            details=cooling,
        )
    return ComponentHealth(
        name="install_cooldowns", status="healthy", message="No install cooldowns active",
    )


def check_checkpoint_root(manager: CheckpointManager) -> ComponentHealth:
    """Unhealthy when backups could not be written under the checkpoint root."""
    root = manager.root
    writable = _writable(root)
    details: dict[str, Any] = {"root": str(root)}
    if root.is_dir():
        details.update(manager.usage())

    if not writable:
        return ComponentHealth(
            name="checkpoint_root",
            status="unhealthy",
            message=f"Checkpoint root not writable: {root}",
            details=details,
        )
    return ComponentHealth(
        name="checkpoint_root", status="healthy", message=f"Writable: {root}", details=details,
    )


def check_sandbox(services: PlatformServices) -> ComponentHealth:
    """Degraded when container execution is on but no runtime answers."""
    if not services.flags.is_enabled("container_execution"):
        return ComponentHealth(
            name="sandbox", status="healthy", message="Container execution disabled (host)",
        )
    runtime = services.sandbox.runtime_status()
    return ComponentHealth(
        name="sandbox",
        status="healthy" if runtime.available else "degraded",
        message=runtime.detail,
        details={"runtime": runtime.runtime},
    )


def check_system_health(services: PlatformServices) -> SystemHealth:
    """Run all health checks and return aggregate status."""
    health = SystemHealth()
    health.add(check_checkpoint_root(services.checkpoints))
    health.add(check_install_cooldowns(services.installer))
    health.add(check_mcp_servers(services.mcp))
    health.add(check_sandbox(services))
    health.add(check_state_dir(services.settings.resolved_state_dir()))
    logger.debug("System health: %s", health.status)
    return health


def check_state_dir(path: Path) -> ComponentHealth:
    """Whether the state directory (flags, evidence) is usable."""
    if _writable(path):
        return ComponentHealth(name="state_dir", status="healthy", message=str(path))
    return ComponentHealth(
        name="state_dir", status="unhealthy", message=f"State dir not writable: {path}",
    )
