"""
Tests for the CLI — every command, through click's CliRunner.

Commands get a pre-built ``PlatformServices`` via ``obj`` so nothing
touches the host's package managers.
"""

import json
import logging

import pytest
from click.testing import CliRunner

from execsafe.main import cli


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def invoke(services):
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(cli, list(args), obj={"services": services})

    return _invoke


class TestCLIBasics:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("check", "resolve", "ensure", "run", "file", "flags", "health", "mcp"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["-c", str(tmp_path / "missing.yml"), "flags", "show"], obj={},
        )
        assert result.exit_code == 1
        assert "Config file not found" in result.output


# ── Policy ───────────────────────────────────────────────────────────


class TestCheck:
    def test_allow(self, invoke, workdir):
        result = invoke("check", "ls -la", "--cwd", str(workdir))
        assert result.exit_code == 0
        assert "allow" in result.output

    def test_rewrite(self, invoke, workdir):
        result = invoke("check", "pip install requests", "--cwd", str(workdir))
        assert result.exit_code == 0
        assert "rewrite" in result.output
        assert "python3 -m pip install requests" in result.output

    def test_deny(self, invoke, workdir):
        result = invoke("check", "rm -rf /etc/app", "--cwd", str(workdir))
        assert result.exit_code == 1
        assert "deny" in result.output
        assert "/etc/app" in result.output

    def test_hard_violation(self, invoke, workdir):
        result = invoke("check", "rm -rf /", "--cwd", str(workdir))
        assert result.exit_code == 1
        assert "hard violation" in result.output

    def test_allow_root_option(self, invoke):
        result = invoke("check", "rm -rf /opt/app/cache", "--cwd", "/opt/app", "--allow-root", "/opt/app")
        assert result.exit_code == 0

    def test_json(self, invoke, workdir):
        result = invoke("-q", "check", "rm -rf /etc/app", "--cwd", str(workdir), "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["action"] == "deny"
        assert data["hard_violation"] is False


class TestResolve:
    def test_json(self, invoke, host):
        host.present.add("rg")
        result = invoke("-q", "resolve", "widget run | rg x | frobnicate", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert set(data["executables"]) == {"widget", "rg", "frobnicate"}
        assert set(data["known"]) == {"widget", "rg"}
        assert data["missing"] == ["widget"]
        assert data["unknown"] == ["frobnicate"]

    def test_human(self, invoke):
        result = invoke("resolve", "widget run")
        assert result.exit_code == 0
        assert "widget (missing)" in result.output


class TestEnsure:
    def test_installs(self, invoke, host):
        host.installs["install-apt widget"] = "widget"
        result = invoke("ensure", "widget run")
        assert result.exit_code == 0
        assert "[install_started]" in result.output
        assert "Installed: widget" in result.output

    def test_failure(self, invoke, host):
        host.results["install-apt widget"] = {"ok": False, "stderr": "no"}
        host.results["install-script widget"] = {"ok": False, "stderr": "no"}
        result = invoke("ensure", "widget run")
        assert result.exit_code == 1
        assert "widget: Failed to auto-install widget" in result.output

    def test_strict_trust(self, invoke, host):
        host.results["install-apt widget"] = {"ok": False, "stderr": "no"}
        result = invoke("ensure", "widget run", "--trust", "strict_verified")
        assert result.exit_code == 1
        assert host.commands == ["install-apt widget"]

    def test_denied(self, invoke, host):
        result = invoke("ensure", "rm -rf /etc/app")
        assert result.exit_code == 1
        assert "Blocked by policy" in result.output
        assert host.commands == []

    def test_nothing_missing(self, invoke, host):
        host.present.add("widget")
        result = invoke("ensure", "widget run")
        assert result.exit_code == 0
        assert "All known capabilities available" in result.output

    def test_json(self, invoke, host):
        host.installs["install-apt widget"] = "widget"
        result = invoke("-q", "ensure", "widget run", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ensure"]["installed"] == ["widget"]


class TestRun:
    def test_denied(self, invoke, workdir):
        result = invoke("run", "rm -rf /etc/app", "--cwd", str(workdir))
        assert result.exit_code == 1
        assert "Blocked by policy" in result.output

    def test_dry_run(self, invoke, host, workdir):
        host.present.add("widget")
        result = invoke("run", "widget run", "--cwd", str(workdir), "--dry-run")
        assert result.exit_code == 0
        assert "[dry-run] Would execute: widget run" in result.output


class TestFile:
    def test_write_then_edit(self, invoke, workdir):
        result = invoke("file", "write", "notes.txt", "--content", "hello world", "--cwd", str(workdir))
        assert result.exit_code == 0
        assert "Written 11 bytes" in result.output

        result = invoke(
            "file", "edit", "notes.txt", "--old", "world", "--new", "there", "--cwd", str(workdir),
        )
        assert result.exit_code == 0
        assert (workdir / "notes.txt").read_text() == "hello there"

    def test_failed_edit_leaves_file_alone(self, invoke, workdir):
        (workdir / "notes.txt").write_text("hello")
        result = invoke(
            "file", "edit", "notes.txt", "--old", "absent", "--new", "x", "--cwd", str(workdir),
        )
        assert result.exit_code == 1
        assert "Text to replace not found" in result.output
        assert (workdir / "notes.txt").read_text() == "hello"

    def test_dry_run(self, invoke, workdir):
        result = invoke("file", "delete", "gone.txt", "--cwd", str(workdir), "--dry-run")
        assert result.exit_code == 0
        assert "[dry-run] Would delete" in result.output

    def test_missing_content(self, invoke, workdir):
        result = invoke("file", "write", "notes.txt", "--cwd", str(workdir))
        assert result.exit_code == 1
        assert "Missing required param: 'content'" in result.output


# ── Capabilities & flags ─────────────────────────────────────────────


class TestCapabilitiesList:
    def test_json(self, invoke):
        result = invoke("-q", "capabilities", "list", "--json")
        assert result.exit_code == 0
        ids = [c["id"] for c in json.loads(result.output)]
        assert "widget" in ids
        assert "rg" in ids

    def test_human(self, invoke):
        result = invoke("capabilities", "list")
        assert "widget (aka widget-cli)" in result.output
        assert "apt-widget [apt, verified]" in result.output
        assert "script-widget [script, community]" in result.output


class TestFlags:
    def test_show_json(self, invoke):
        result = invoke("-q", "flags", "show", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["enabled"] is True
        assert data["container_execution"] is False

    def test_set(self, invoke, services):
        result = invoke("flags", "set", "container_execution=on", "cohort=beta")
        assert result.exit_code == 0
        assert "container_execution = True" in result.output
        assert services.flags.get().container_execution
        assert services.flags.get().cohort == "beta"

    @pytest.mark.parametrize("assignment,message", [
        ("nonsense", "Expected KEY=VALUE"),
        ("warp_drive=on", "Unknown flag: warp_drive"),
        ("enabled=maybe", "expects a boolean"),
        ("cohort=everyone", "Invalid flag value"),
    ])
    def test_set_rejects(self, invoke, services, assignment, message):
        result = invoke("flags", "set", assignment)
        assert result.exit_code == 1
        assert message in result.output
        assert services.flags.get().cohort == "internal"


# ── Health & MCP ─────────────────────────────────────────────────────


class TestHealth:
    def test_json(self, invoke):
        result = invoke("-q", "health", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == "healthy"

    def test_human(self, invoke):
        result = invoke("health")
        assert result.exit_code == 0
        assert "checkpoint_root" in result.output


class TestMCPList:
    def test_empty(self, invoke):
        result = invoke("mcp", "list")
        assert result.exit_code == 0
        assert "No MCP servers configured." in result.output

    def test_json(self, make_services):
        services = make_services(mcp_servers=[{"name": "docs", "command": "docs-server"}])
        result = CliRunner().invoke(cli, ["-q", "mcp", "list", "--json"], obj={"services": services})
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [s["name"] for s in data["servers"]] == ["docs"]
        assert data["runtime"] == []
