"""
Shared test fixtures and configuration.

No test touches the host's package managers or container runtimes:
binary probes and shell runners are replaced by ``FakeHost``.
"""

from pathlib import Path

import pytest

from execsafe.adapters.containers.runtime import ContainerRuntimeStatus
from execsafe.core.config.loader import Settings
from execsafe.core.models.capability import CapabilityDescriptor, InstallRecipe
from execsafe.core.services.capabilities.orchestration.services import create_platform_services

WIDGET = CapabilityDescriptor(
    id="widget",
    binary="widget",
    aliases=("widget-cli",),
    description="Test capability with two recipes.",
    install_recipes=(
        InstallRecipe(id="apt-widget", method="apt", command="install-apt widget", verified=True),
        InstallRecipe(
            id="script-widget", method="script", command="install-script widget", verified=False,
        ),
    ),
)


class FakeHost:
    """Stands in for the host: which binaries exist and what commands do.

    ``results`` maps a command to the dict the runner returns (default:
    success).  ``installs`` maps a command to the binary it makes present
    when it succeeds.
    """

    def __init__(self, present=()):
        self.present = set(present)
        self.probes = []
        self.commands = []
        self.calls = []
        self.container_commands = []
        self.container_available = False
        self.results = {}
        self.installs = {}

    def probe(self, binary):
        self.probes.append(binary)
        return binary in self.present

    def run(self, command, *, timeout_s=120, env_overrides=None, cwd=None):
        self.commands.append(command)
        self.calls.append({"command": command, "timeout_s": timeout_s, "cwd": cwd})
        result = dict(self.results.get(
            command, {"ok": True, "stdout": "", "stderr": "", "elapsed_ms": 1},
        ))
        if result.get("ok") and command in self.installs:
            self.present.add(self.installs[command])
        return result

    def container_run(self, command, *, timeout_s=300, **kwargs):
        self.container_commands.append(command)
        if not self.container_available:
            return {"ok": False, "unavailable": True, "error": "No supported container runtime found"}
        if command in self.installs:
            self.present.add(self.installs[command])
        return {"ok": True, "stdout": "ran in container", "elapsed_ms": 1, "runtime": "docker"}

    def container_check(self, runtime):
        if self.container_available:
            return ContainerRuntimeStatus(available=True, runtime=runtime, detail=f"{runtime} ready")
        return ContainerRuntimeStatus(available=False, detail=f"{runtime} binary unavailable")


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def widget() -> CapabilityDescriptor:
    return WIDGET


@pytest.fixture
def make_services(tmp_path: Path, host: FakeHost, monkeypatch):
    """Factory for ``PlatformServices`` rooted in ``tmp_path``.

    ``scratch_roots`` is empty so files under ``tmp_path`` (which lives
    in the system temp dir) are still checkpointed.
    """
    monkeypatch.delenv("EXECSAFE_MCP_SERVERS", raising=False)
    monkeypatch.delenv("EXECSAFE_MCP_SERVERS_FILE", raising=False)
    monkeypatch.delenv("EXECSAFE_CONTAINER_RUNTIME", raising=False)

    def _make(**overrides):
        values = {
            "state_dir": str(tmp_path / "state"),
            "checkpoint_root": str(tmp_path / "checkpoints"),
            "scratch_roots": [],
            "allowed_roots": [str(tmp_path)],
            "capabilities": [WIDGET],
        }
        values.update(overrides)
        return create_platform_services(
            Settings(**values),
            probe=host.probe,
            runner=host.run,
            container_runner=host.container_run,
            container_checker=host.container_check,
        )

    return _make


@pytest.fixture
def services(make_services):
    return make_services()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A working directory inside the allowed root."""
    path = tmp_path / "work"
    path.mkdir()
    return path
