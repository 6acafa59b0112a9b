"""
L3 Detection — Binary presence probe.

Read-only: asks a login shell whether an executable resolves on PATH.
A login shell sees PATH additions from profile files (``~/.local/bin``,
nvm, cargo) that the current process may not.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import threading
from concurrent.futures import Future
from typing import Callable

from execsafe.core.services.capabilities.data.constants import BINARY_PROBE_TIMEOUT_S

logger = logging.getLogger(__name__)

BinaryProbe = Callable[[str], bool]
"""``probe(binary) -> present``.  Must not raise."""


def probe_binary(binary: str, *, timeout: float = BINARY_PROBE_TIMEOUT_S) -> bool:
    """Whether ``binary`` resolves in a login shell.

    Runs ``bash -lc 'command -v <binary>'``.  Falls back to
    ``shutil.which`` when bash itself is missing.  Timeouts and other
    errors count as absent.
    """
    if not binary:
        return False
    try:
        result = subprocess.run(
            ["bash", "-lc", f"command -v {shlex.quote(binary)}"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        found = result.returncode == 0 and bool(result.stdout.strip())
        logger.debug("probe %s → %s", binary, found)
        return found
    except FileNotFoundError:
        found = shutil.which(binary) is not None
        logger.debug("probe %s (no bash, which) → %s", binary, found)
        return found
    except subprocess.TimeoutExpired:
        logger.debug("probe %s timed out after %.1fs", binary, timeout)
        return False
    except OSError as e:
        logger.debug("probe %s failed: %s", binary, e)
        return False


class CoalescingProbe:
    """Share one in-flight probe per binary across threads.

    Concurrent callers asking about the same binary wait on the first
    caller's result instead of spawning their own shell.

    Args:
        probe: Underlying probe function (default ``probe_binary``).
    """

    def __init__(self, probe: BinaryProbe | None = None) -> None:
        self._probe = probe or probe_binary
        self._lock = threading.Lock()
        self._inflight: dict[str, Future[bool]] = {}

    def __call__(self, binary: str) -> bool:
        with self._lock:
            future = self._inflight.get(binary)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[binary] = future

        if not owner:
            return future.result()

        try:
            found = bool(self._probe(binary))
        except Exception as e:
            logger.warning("Binary probe for %s raised: %s", binary, e)
            found = False
        future.set_result(found)
        with self._lock:
            self._inflight.pop(binary, None)
        return found

    @property
    def inflight(self) -> int:
        """Number of probes currently running."""
        with self._lock:
            return len(self._inflight)
