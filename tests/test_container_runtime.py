"""
Tests for the container runtime — detection, run plans, configuration.
"""

import os
from pathlib import Path

import pytest

from execsafe.adapters.containers.runtime import (
    DEFAULT_CONTAINER_IMAGE,
    ContainerMount,
    ContainerRuntimeDetector,
    ContainerRuntimeStatus,
    build_container_run_plan,
    execute_command_in_container,
    get_container_image,
    get_container_network_mode,
    resolve_workspace,
)


class RecordingChecker:
    def __init__(self, available=()):
        self.available = set(available)
        self.calls = []

    def __call__(self, runtime):
        self.calls.append(runtime)
        if runtime in self.available:
            return ContainerRuntimeStatus(available=True, runtime=runtime, detail=f"{runtime} ready")
        return ContainerRuntimeStatus(available=False, detail=f"{runtime} binary unavailable")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("EXECSAFE_CONTAINER_RUNTIME", "EXECSAFE_CONTAINER_IMAGE", "EXECSAFE_CONTAINER_NETWORK"):
        monkeypatch.delenv(name, raising=False)


class TestDetector:
    def test_prefers_docker(self):
        checker = RecordingChecker({"docker", "podman"})
        status = ContainerRuntimeDetector(checker).detect()
        assert status.runtime == "docker"
        assert checker.calls == ["docker"]

    def test_falls_through_to_podman(self):
        checker = RecordingChecker({"podman"})
        status = ContainerRuntimeDetector(checker).detect()
        assert status.runtime == "podman"
        assert checker.calls == ["docker", "podman"]

    def test_env_preference(self, monkeypatch):
        monkeypatch.setenv("EXECSAFE_CONTAINER_RUNTIME", "podman")
        checker = RecordingChecker({"docker", "podman"})
        assert ContainerRuntimeDetector(checker).detect().runtime == "podman"

    def test_none_available(self):
        status = ContainerRuntimeDetector(RecordingChecker()).detect()
        assert not status.available
        assert status.runtime is None
        assert "docker/podman" in status.detail

    def test_result_cached(self):
        checker = RecordingChecker({"docker"})
        detector = ContainerRuntimeDetector(checker, ttl_s=60)
        detector.detect()
        detector.detect()
        assert checker.calls == ["docker"]
        detector.detect(force=True)
        assert checker.calls == ["docker", "docker"]


class TestRunPlan:
    def test_default_plan(self, tmp_path):
        plan = build_container_run_plan("docker", "img:1", str(tmp_path))
        args = plan.args
        assert args[:8] == ["run", "--rm", "--init", "-i", "-w", "/workspace", "-e", "HOME=/tmp/execsafe"]
        assert not any(a.startswith("--network") for a in args)
        assert args[args.index("-v") + 1] == f"{tmp_path}:/workspace"
        assert args[-3:] == ["img:1", "/bin/sh", "-lc"]
        if hasattr(os, "getuid"):
            assert args[args.index("--user") + 1] == f"{os.getuid()}:{os.getgid()}"

    @pytest.mark.parametrize("mode,flag", [
        ("none", "--network=none"),
        ("restricted", "--network=none"),
        ("host", "--network=host"),
    ])
    def test_network_modes(self, tmp_path, mode, flag):
        plan = build_container_run_plan("podman", "img", str(tmp_path), network_mode=mode)
        assert flag in plan.args
        assert plan.network_mode == mode

    def test_extra_mounts(self, tmp_path):
        workspace = str(tmp_path)
        plan = build_container_run_plan(
            "docker", "img", workspace,
            extra_mounts=[
                ContainerMount(host_path="/data", container_path="/data", read_only=True),
                ContainerMount(host_path=workspace),
            ],
        )
        mounts = [plan.args[i + 1] for i, a in enumerate(plan.args) if a == "-v"]
        assert mounts == [f"{workspace}:/workspace", "/data:/data:ro"]

    def test_argv(self, tmp_path):
        plan = build_container_run_plan("docker", "img", str(tmp_path))
        argv = plan.argv("echo hi")
        assert argv[0] == "docker"
        assert argv[-1] == "echo hi"
        assert argv[-2] == "-lc"


class TestConfiguration:
    def test_image_default_and_env(self, monkeypatch):
        assert get_container_image() == DEFAULT_CONTAINER_IMAGE == "python:3.12-slim"
        monkeypatch.setenv("EXECSAFE_CONTAINER_IMAGE", "ubuntu:24.04")
        assert get_container_image() == "ubuntu:24.04"

    @pytest.mark.parametrize("raw,mode", [
        ("", "allow"), ("NONE", "none"), ("restricted", "restricted"), ("host", "host"), ("weird", "allow"),
    ])
    def test_network_mode(self, monkeypatch, raw, mode):
        monkeypatch.setenv("EXECSAFE_CONTAINER_NETWORK", raw)
        assert get_container_network_mode() == mode

    def test_workspace_resolution(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        assert resolve_workspace(str(tmp_path)) == str(tmp_path)
        assert resolve_workspace(str(target)) == str(tmp_path)
        assert resolve_workspace(str(tmp_path / "missing")) == str(Path.home())


class TestExecute:
    def test_unavailable_runtime(self, tmp_path):
        detector = ContainerRuntimeDetector(RecordingChecker())
        result = execute_command_in_container("echo hi", cwd=str(tmp_path), detector=detector)
        assert result["ok"] is False
        assert result["unavailable"] is True
        assert result["error"]
