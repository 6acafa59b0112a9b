"""
Tests for observability — health checks and logging setup.
"""

import logging

import pytest

from execsafe.core.models.mcp import MCPServerConfig
from execsafe.core.observability.health import (
    ComponentHealth,
    SystemHealth,
    check_checkpoint_root,
    check_install_cooldowns,
    check_mcp_servers,
    check_sandbox,
    check_system_health,
)
from execsafe.core.observability.logging_config import resolve_level, setup_logging
from execsafe.core.services.capabilities.execution.checkpoint import CheckpointManager
from execsafe.core.services.capabilities.mcp.runtime import MCPRuntimeTracker

# ── Health ───────────────────────────────────────────────────────────


class TestSystemHealth:
    def test_aggregation(self):
        health = SystemHealth()
        health.add(ComponentHealth(name="a", status="healthy"))
        assert health.status == "healthy"
        health.add(ComponentHealth(name="b", status="degraded"))
        assert health.status == "degraded"
        health.add(ComponentHealth(name="c", status="unhealthy"))
        assert health.status == "unhealthy"

    def test_unknown_component(self):
        health = SystemHealth()
        health.add(ComponentHealth(name="a", status="healthy"))
        health.add(ComponentHealth(name="b"))
        assert health.status == "unknown"

    def test_to_dict(self):
        health = SystemHealth()
        health.add(ComponentHealth(name="a", status="healthy", message="fine"))
        data = health.to_dict()
        assert data["status"] == "healthy"
        assert data["timestamp"]
        assert data["components"] == [
            {"name": "a", "status": "healthy", "message": "fine", "details": {}},
        ]


class TestComponentChecks:
    def test_all_healthy(self, services):
        health = check_system_health(services)
        assert health.status == "healthy"
        assert [c.name for c in health.components] == [
            "checkpoint_root", "install_cooldowns", "mcp_servers", "sandbox", "state_dir",
        ]

    def test_cooldown_degrades(self, services, host):
        host.results["install-apt widget"] = {"ok": False, "stderr": "no"}
        host.results["install-script widget"] = {"ok": False, "stderr": "no"}
        services.installer.ensure_capability_installed("widget")

        component = check_install_cooldowns(services.installer)

        assert component.status == "degraded"
        assert "widget" in component.message
        assert check_system_health(services).status == "degraded"

    def test_mcp_servers(self):
        tracker = MCPRuntimeTracker()
        assert check_mcp_servers(tracker).status == "healthy"

        tracker.register_server(MCPServerConfig(name="docs", command="docs-server"))
        tracker.register_server(MCPServerConfig(name="wiki", command="wiki-server"))
        tracker.update_health("docs", "degraded")
        assert check_mcp_servers(tracker).status == "degraded"

        tracker.update_health("wiki", "unhealthy", "crashed")
        component = check_mcp_servers(tracker)
        assert component.status == "unhealthy"
        assert component.message == "1/2 servers unhealthy"
        assert component.details["unhealthy"] == ["wiki"]

    def test_checkpoint_root_not_writable(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        component = check_checkpoint_root(CheckpointManager(blocker / "cp"))
        assert component.status == "unhealthy"

    def test_checkpoint_root_usage(self, tmp_path):
        root = tmp_path / "cp"
        root.mkdir()
        (root / "abc.bak").write_text("12345")
        component = check_checkpoint_root(CheckpointManager(root))
        assert component.status == "healthy"
        assert component.details["backups"] == 1
        assert component.details["bytes"] == 5

    def test_sandbox(self, services, host):
        assert check_sandbox(services).status == "healthy"
        services.flags.set(container_execution=True)
        assert check_sandbox(services).status == "degraded"
        host.container_available = True
        services.sandbox.detector.detect(force=True)
        component = check_sandbox(services)
        assert component.status == "healthy"
        assert component.details["runtime"] == "docker"


# ── Logging ──────────────────────────────────────────────────────────


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_cli_wins(self, monkeypatch):
        monkeypatch.setenv("EXECSAFE_LOG_LEVEL", "ERROR")
        assert resolve_level("DEBUG") == "DEBUG"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("EXECSAFE_LOG_LEVEL", "INFO")
        assert resolve_level() == "INFO"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("EXECSAFE_LOG_LEVEL", raising=False)
        assert resolve_level() == "WARNING"


class TestSetupLogging:
    def test_console_level(self, restore_root_logger, monkeypatch):
        monkeypatch.delenv("EXECSAFE_LOG_FILE", raising=False)
        setup_logging("INFO")
        assert restore_root_logger.level == logging.INFO
        assert len(restore_root_logger.handlers) == 1
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_unknown_level_means_warning(self, restore_root_logger, monkeypatch):
        monkeypatch.delenv("EXECSAFE_LOG_FILE", raising=False)
        setup_logging("CHATTY")
        assert restore_root_logger.level == logging.WARNING

    def test_log_file(self, restore_root_logger, tmp_path, monkeypatch):
        monkeypatch.delenv("EXECSAFE_LOG_FILE_LEVEL", raising=False)
        log_file = tmp_path / "execsafe.log"
        monkeypatch.setenv("EXECSAFE_LOG_FILE", str(log_file))

        setup_logging("WARNING", log_file_level="DEBUG")
        logging.getLogger("execsafe.test").debug("probe message")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert "probe message" in log_file.read_text()
