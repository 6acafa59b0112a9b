"""
Lifecycle events — fault-barrier delivery of ``CapabilityEvent``s.

Every policy, install, checkpoint and MCP transition is reported as a
``CapabilityEvent``.  Delivery is fire-and-forget: a sink that raises
is logged and skipped, and the operation that emitted the event carries
on as if nothing happened.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer`` and ``_listeners``.
- Callbacks run outside the lock, in the emitting thread.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

from execsafe.core.models.events import CapabilityEvent, EventCallback

logger = logging.getLogger(__name__)


def deliver(event: CapabilityEvent, callback: EventCallback | None) -> bool:
    """Invoke one callback, swallowing anything it raises.

    Returns:
        True if the callback ran without raising (or there was none).
    """
    if callback is None:
        return True
    try:
        callback(event)
        return True
    except Exception as e:
        logger.warning("Event sink failed for %s: %s", event.type, e)
        return False


class LifecycleEventEmitter:
    """In-process event fan-out with a bounded replay buffer.

    Args:
        buffer_size: Recent events kept for ``recent()``.
        enabled: Predicate consulted on every emit; when it returns
            False events are dropped before reaching any sink.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 200,
        enabled: Callable[[], bool] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._seq = 0
        self._buffer: deque[CapabilityEvent] = deque(maxlen=buffer_size)
        self._listeners: list[EventCallback] = []
        self._enabled = enabled or (lambda: True)
        self.dropped_sink_errors = 0

    # ── Properties ──────────────────────────────────────────────

    @property
    def seq(self) -> int:
        """Number of events accepted so far."""
        with self._lock:
            return self._seq

    # ── Listeners ───────────────────────────────────────────────

    def subscribe(self, callback: EventCallback) -> None:
        with self._lock:
            self._listeners.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        with self._lock:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

    # ── Emitting ────────────────────────────────────────────────

    def emit(self, event: CapabilityEvent, on_event: EventCallback | None = None) -> bool:
        """Record ``event`` and forward it to listeners and ``on_event``.

        Returns:
            False when events are disabled and the event was dropped.
        """
        try:
            enabled = self._enabled()
        except Exception as e:
            logger.warning("Event gate check failed: %s", e)
            enabled = False
        if not enabled:
            return False

        with self._lock:
            self._seq += 1
            self._buffer.append(event)
            listeners = list(self._listeners)

        logger.debug("event %s %s: %s", event.type, event.capability_id or "-", event.message)
        for callback in [*listeners, on_event]:
            if not deliver(event, callback):
                with self._lock:
                    self.dropped_sink_errors += 1
        return True

    def recent(self, limit: int = 50) -> list[CapabilityEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._buffer)
        return events[-limit:] if limit else events
