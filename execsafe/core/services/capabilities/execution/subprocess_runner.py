"""
L4 Execution — Core subprocess runner.

The single place where host shell commands are spawned for install
recipes, verify commands and guarded shell actions.  Commands are shell
text and run through ``bash -lc`` so profile PATH additions apply.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from typing import Any, Callable

from execsafe.core.services.capabilities.data.constants import OUTPUT_TAIL_CHARS

logger = logging.getLogger(__name__)

_REAP_TIMEOUT_S = 5

ShellRunner = Callable[..., dict[str, Any]]
"""``runner(command, *, timeout_s, env_overrides=None, cwd=None) -> result dict``."""


def _tail(text: str | None) -> str:
    return text[-OUTPUT_TAIL_CHARS:] if text else ""


def _kill_process_group(proc: subprocess.Popen) -> None:
    """SIGKILL the child's whole session, not just ``bash``."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


def run_shell(
    command: str,
    *,
    timeout_s: float = 120,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run shell text with a hard timeout.

    The command runs in its own session.  When the timeout expires the
    whole process group is killed, so background jobs and pipelines
    started by the command do not outlive it.

    Args:
        command: Shell text, passed to ``bash -lc``.
        timeout_s: Seconds before the process group is killed.
        env_overrides: Extra env vars (values get ``$VAR`` expansion).
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", "stdout": ..., "stderr": ...}``
        on failure.  Never raises.
    """
    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            ["bash", "-lc", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            env=env,
            cwd=cwd,
            start_new_session=True,
        )
    except OSError as e:
        logger.exception("Subprocess error: %s", command)
        return {"ok": False, "error": str(e), "elapsed_ms": int((time.monotonic() - start) * 1000)}

    try:
        stdout, stderr = proc.communicate(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        try:
            stdout, _ = proc.communicate(timeout=_REAP_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            # A descendant left the group and still holds the pipes.
            stdout = ""
        logger.warning("Command timed out after %gs, killed process group: %s", timeout_s, command)
        return {
            "ok": False,
            "error": f"Command timed out ({timeout_s:g}s)",
            "timed_out": True,
            "stdout": _tail(stdout),
            "elapsed_ms": int((time.monotonic() - start) * 1000),
        }

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if proc.returncode == 0:
        return {
            "ok": True,
            "stdout": _tail(stdout),
            "stderr": _tail(stderr),
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "error": f"Command failed (exit {proc.returncode})",
        "returncode": proc.returncode,
        "stdout": _tail(stdout),
        "stderr": _tail(stderr),
        "elapsed_ms": elapsed_ms,
    }


def combined_output(result: dict[str, Any]) -> str:
    """Error line plus stdout/stderr tails, for previews and logs."""
    parts = [
        result.get("error") or "",
        result.get("stdout") or "",
        result.get("stderr") or "",
    ]
    return "\n".join(p.strip() for p in parts if p and p.strip())
