"""
L1 Domain — Install failure cooldown.

After every permitted recipe for a capability has failed, further
install attempts for that capability are refused for a fixed window.

States (per capability):
    READY    → Installs may be attempted.
    COOLING  → Installs refused until the window elapses.

Transitions:
    READY → COOLING:   start(capability_id) after recipe exhaustion
    COOLING → READY:   window elapsed, or reset()

Cooldown is scoped to one capability; siblings are unaffected.
Nothing is persisted: a new process starts READY.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from execsafe.core.services.capabilities.data.constants import INSTALL_FAILURE_COOLDOWN_S

logger = logging.getLogger(__name__)


@dataclass
class InstallCooldown:
    """Per-capability install cooldown tracker.

    Args:
        window_s: Seconds a capability stays cooling after exhaustion.
        clock: Monotonic time source (injectable for tests).
    """

    window_s: float = INSTALL_FAILURE_COOLDOWN_S
    clock: Callable[[], float] = time.monotonic

    # ── Internal state ───────────────────────────────────────────
    _until: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def start(self, capability_id: str) -> None:
        """Begin (or restart) the cooldown window for a capability."""
        with self._lock:
            self._until[capability_id] = self.clock() + self.window_s
        logger.info(
            "Install cooldown started for '%s' (%.0fs)", capability_id, self.window_s,
        )

    def remaining(self, capability_id: str) -> float:
        """Seconds left in the window, 0.0 when READY."""
        with self._lock:
            until = self._until.get(capability_id)
            if until is None:
                return 0.0
            left = until - self.clock()
            if left <= 0:
                del self._until[capability_id]
                return 0.0
            return left

    def is_cooling(self, capability_id: str) -> bool:
        """Whether installs for ``capability_id`` are currently refused."""
        return self.remaining(capability_id) > 0

    def reset(self, capability_id: str | None = None) -> None:
        """Clear one capability's window, or all of them."""
        with self._lock:
            if capability_id is None:
                self._until.clear()
            else:
                self._until.pop(capability_id, None)

    def status(self) -> dict[str, float]:
        """Remaining seconds per cooling capability."""
        with self._lock:
            now = self.clock()
            expired = [cid for cid, until in self._until.items() if until <= now]
            for cid in expired:
                del self._until[cid]
            return {cid: round(until - now, 1) for cid, until in self._until.items()}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the tracker state."""
        return {"window_s": self.window_s, "cooling": self.status()}
