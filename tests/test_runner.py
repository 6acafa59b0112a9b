"""
Tests for the subprocess runner and binary probe (real processes).
"""

import shutil
import time

import pytest

from execsafe.core.services.capabilities.detection.binary_probe import probe_binary
from execsafe.core.services.capabilities.execution.subprocess_runner import combined_output, run_shell

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")


@needs_bash
class TestRunShell:
    def test_success(self, tmp_path):
        (tmp_path / "marker.txt").write_text("x")
        result = run_shell("ls", cwd=str(tmp_path))
        assert result["ok"] is True
        assert "marker.txt" in result["stdout"].split()
        assert result["elapsed_ms"] >= 0

    def test_failure(self):
        result = run_shell("echo oops >&2; exit 3")
        assert result["ok"] is False
        assert result["returncode"] == 3
        assert result["error"] == "Command failed (exit 3)"
        assert result["stderr"].strip().endswith("oops")

    def test_timeout(self):
        result = run_shell("sleep 5", timeout_s=0.2)
        assert result["ok"] is False
        assert result["timed_out"] is True
        assert "timed out" in result["error"]

    def test_timeout_kills_background_children(self, tmp_path):
        marker = tmp_path / "late.txt"
        started = time.monotonic()
        result = run_shell(f"(sleep 1; touch {marker}) & sleep 30", timeout_s=0.5)
        assert result["timed_out"] is True
        assert time.monotonic() - started < 5
        time.sleep(1.5)
        assert not marker.exists()

    def test_env_overrides(self):
        result = run_shell('echo "$EXECSAFE_TEST_VALUE"', env_overrides={"EXECSAFE_TEST_VALUE": "xyz"})
        assert result["stdout"].strip().endswith("xyz")

    def test_missing_cwd_never_raises(self, tmp_path):
        result = run_shell("true", cwd=str(tmp_path / "nowhere"))
        assert result["ok"] is False
        assert result["error"]


@needs_bash
class TestProbeBinary:
    def test_present(self):
        assert probe_binary("bash") is True

    def test_absent(self):
        assert probe_binary("definitely-not-a-real-binary-xyz") is False


class TestCombinedOutput:
    def test_joins_non_empty_parts(self):
        result = {"error": "Command failed (exit 1)", "stdout": "  out \n", "stderr": ""}
        assert combined_output(result) == "Command failed (exit 1)\nout"

    def test_empty(self):
        assert combined_output({"ok": True}) == ""
