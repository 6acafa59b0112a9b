"""
Container runtime — run a shell command inside a throwaway container.

Uses the docker or podman CLI, never an engine API.  The host working
directory is bind-mounted at ``/workspace``; the container is removed
on exit.  This module plans and invokes a container, it does not
design a sandbox: isolation is whatever the runtime provides.

Environment:
    EXECSAFE_CONTAINER_RUNTIME  preferred runtime (docker|podman)
    EXECSAFE_CONTAINER_IMAGE    image (default python:3.12-slim)
    EXECSAFE_CONTAINER_NETWORK  allow|restricted|none|host (default allow)
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ContainerRuntime = Literal["docker", "podman"]
ContainerNetworkMode = Literal["allow", "restricted", "none", "host"]

DEFAULT_CONTAINER_IMAGE = "python:3.12-slim"
CONTAINER_WORKSPACE = "/workspace"
RUNTIME_CACHE_TTL_S = 20.0


class ContainerMount(BaseModel):
    host_path: str
    container_path: str = CONTAINER_WORKSPACE
    read_only: bool = False


class ContainerRuntimeStatus(BaseModel):
    available: bool
    runtime: ContainerRuntime | None = None
    detail: str = ""
    checked_at: float = Field(default_factory=time.monotonic)


class ContainerRunPlan(BaseModel):
    """Fully resolved ``<runtime> run ...`` invocation, minus the command."""

    runtime: ContainerRuntime
    image: str
    args: list[str]
    host_workspace: str
    container_workspace: str = CONTAINER_WORKSPACE
    network_mode: ContainerNetworkMode = "allow"

    def argv(self, command: str) -> list[str]:
        """Complete argv for running ``command`` under this plan."""
        return [self.runtime, *self.args, command]


# ── Detection ───────────────────────────────────────────────────


def _cli_ok(argv: list[str], timeout: float) -> tuple[bool, str]:
    try:
        result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        return False, str(e)
    output = f"{result.stdout or ''}{result.stderr or ''}".strip()
    return result.returncode == 0, output


def check_runtime(runtime: ContainerRuntime) -> ContainerRuntimeStatus:
    """Probe one runtime: binary present, then daemon/service answering."""
    ok, _ = _cli_ok([runtime, "--version"], 1.5)
    if not ok:
        return ContainerRuntimeStatus(available=False, detail=f"{runtime} binary unavailable")

    fmt = "{{.ServerVersion}}" if runtime == "docker" else "{{.Version.Version}}"
    ok, output = _cli_ok([runtime, "info", "--format", fmt], 2.5)
    if not ok:
        return ContainerRuntimeStatus(available=False, detail=f"{runtime} runtime unavailable")

    version = output.splitlines()[0].strip() if output else ""
    return ContainerRuntimeStatus(
        available=True,
        runtime=runtime,
        detail=f"{runtime} ready ({version or 'version unknown'})",
    )


class ContainerRuntimeDetector:
    """Cached runtime detection.

    Args:
        checker: Per-runtime probe (injectable for tests).
        ttl_s: Seconds a detection result is reused.
    """

    def __init__(
        self,
        checker: Callable[[ContainerRuntime], ContainerRuntimeStatus] = check_runtime,
        *,
        ttl_s: float = RUNTIME_CACHE_TTL_S,
    ):
        self._checker = checker
        self._ttl_s = ttl_s
        self._lock = threading.Lock()
        self._cached: ContainerRuntimeStatus | None = None

    def detect(self, force: bool = False) -> ContainerRuntimeStatus:
        with self._lock:
            cached = self._cached
        if not force and cached and time.monotonic() - cached.checked_at < self._ttl_s:
            return cached

        preferred = os.environ.get("EXECSAFE_CONTAINER_RUNTIME", "").strip().lower()
        candidates: list[ContainerRuntime] = (
            ["podman", "docker"] if preferred == "podman" else ["docker", "podman"]
        )

        status = ContainerRuntimeStatus(
            available=False,
            detail="No supported container runtime found (docker/podman).",
        )
        for runtime in candidates:
            candidate = self._checker(runtime)
            if candidate.available:
                status = candidate
                break

        logger.debug("Container runtime: %s", status.detail)
        with self._lock:
            self._cached = status
        return status


_default_detector = ContainerRuntimeDetector()


def detect_container_runtime(force: bool = False) -> ContainerRuntimeStatus:
    """Detect docker or podman (result cached for 20 s)."""
    return _default_detector.detect(force=force)


# ── Configuration ───────────────────────────────────────────────


def get_container_image() -> str:
    return os.environ.get("EXECSAFE_CONTAINER_IMAGE", "").strip() or DEFAULT_CONTAINER_IMAGE


def get_container_network_mode() -> ContainerNetworkMode:
    raw = os.environ.get("EXECSAFE_CONTAINER_NETWORK", "").strip().lower()
    if raw in ("none", "restricted", "host"):
        return raw  # type: ignore[return-value]
    return "allow"


def resolve_workspace(cwd: str | None) -> str:
    """Directory to mount: ``cwd`` itself, its parent if a file, else home."""
    candidate = Path(cwd or Path.home()).expanduser().absolute()
    if candidate.is_dir():
        return str(candidate)
    if candidate.exists():
        return str(candidate.parent)
    return str(Path.home())


# ── Planning & execution ────────────────────────────────────────


def _mount_args(mount: ContainerMount) -> list[str]:
    suffix = ":ro" if mount.read_only else ""
    return ["-v", f"{mount.host_path}:{mount.container_path}{suffix}"]


def build_container_run_plan(
    runtime: ContainerRuntime,
    image: str,
    workspace: str,
    *,
    network_mode: ContainerNetworkMode = "allow",
    extra_mounts: list[ContainerMount] | None = None,
) -> ContainerRunPlan:
    """Build the ``run`` arguments for one command.

    The container runs as the host uid:gid so files written to the
    workspace keep host ownership.
    """
    args = [
        "run", "--rm", "--init", "-i",
        "-w", CONTAINER_WORKSPACE,
        "-e", "HOME=/tmp/execsafe",
    ]
    if network_mode in ("none", "restricted"):
        args.append("--network=none")
    elif network_mode == "host":
        args.append("--network=host")

    args += _mount_args(ContainerMount(host_path=workspace))
    for mount in extra_mounts or []:
        if not mount.host_path or mount.host_path == workspace:
            continue
        args += _mount_args(mount)

    if hasattr(os, "getuid") and hasattr(os, "getgid"):
        args += ["--user", f"{os.getuid()}:{os.getgid()}"]

    args += [image, "/bin/sh", "-lc"]
    return ContainerRunPlan(
        runtime=runtime,
        image=image,
        args=args,
        host_workspace=workspace,
        network_mode=network_mode,
    )


def execute_command_in_container(
    command: str,
    *,
    cwd: str | None = None,
    timeout_s: float = 300,
    network_mode: ContainerNetworkMode | None = None,
    extra_mounts: list[ContainerMount] | None = None,
    detector: ContainerRuntimeDetector | None = None,
) -> dict[str, Any]:
    """Run ``command`` in a fresh container.

    Returns:
        The same result dict shape as ``run_shell``, plus ``runtime``,
        ``image`` and ``host_workspace``.  When no runtime is available
        the dict has ``ok=False`` and ``unavailable=True``; callers
        decide whether to fall back to the host.
    """
    status = (detector or _default_detector).detect()
    if not status.available or not status.runtime:
        return {"ok": False, "unavailable": True, "error": status.detail}

    workspace = resolve_workspace(cwd)
    plan = build_container_run_plan(
        status.runtime,
        get_container_image(),
        workspace,
        network_mode=network_mode or get_container_network_mode(),
        extra_mounts=extra_mounts,
    )
    meta = {"runtime": plan.runtime, "image": plan.image, "host_workspace": workspace}

    start = time.monotonic()
    try:
        result = subprocess.run(
            plan.argv(command),
            capture_output=True,
            text=True,
            timeout=timeout_s,
            stdin=subprocess.DEVNULL,
            cwd=workspace,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Container command timed out ({timeout_s:g}s)", **meta}
    except OSError as e:
        logger.error("Container launch failed: %s", e)
        return {"ok": False, "error": str(e), **meta}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    out = {
        "stdout": (result.stdout or "")[-2000:],
        "stderr": (result.stderr or "")[-2000:],
        "elapsed_ms": elapsed_ms,
        **meta,
    }
    if result.returncode == 0:
        return {"ok": True, **out}
    return {"ok": False, "error": f"Exit code: {result.returncode}", **out}
