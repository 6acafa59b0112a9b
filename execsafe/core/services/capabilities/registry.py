"""
Capability registry — descriptors, lookup index, and liveness cache.

One instance per ``PlatformServices``.  The registry answers two
questions: "what capability does this name refer to?" and "is its
binary on this host right now?".  All state lives on the instance and
is guarded by a single lock; probes run outside the lock and are
coalesced per binary.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable

from execsafe.core.models.capability import (
    CapabilityDescriptor,
    CapabilityState,
    CommandCapabilityResolution,
)
from execsafe.core.services.capabilities.data.catalog import DEFAULT_CAPABILITIES
from execsafe.core.services.capabilities.data.constants import BINARY_STATE_TTL_S
from execsafe.core.services.capabilities.detection.binary_probe import (
    BinaryProbe,
    CoalescingProbe,
)
from execsafe.core.services.capabilities.domain.command_analyzer import collect_executables

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    return name.strip().lower()


class CapabilityRegistry:
    """Registry of known capabilities with a TTL'd availability cache.

    Args:
        probe: Binary probe (default: login-shell ``command -v``).
            Wrapped so concurrent probes of one binary share a result.
        ttl_s: Seconds a cached availability entry stays fresh.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        probe: BinaryProbe | None = None,
        *,
        ttl_s: float = BINARY_STATE_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._lock = threading.RLock()
        self._descriptors: dict[str, CapabilityDescriptor] = {}
        self._index: dict[str, str] = {}          # name/alias/binary → id
        self._states: dict[str, CapabilityState] = {}
        self._probe = CoalescingProbe(probe)
        self._ttl_s = ttl_s
        self._clock = clock

    # ── Descriptors ─────────────────────────────────────────────

    def register(self, descriptor: CapabilityDescriptor) -> None:
        """Add or replace a capability.

        Re-registering an id replaces the descriptor and drops index
        entries that only the old descriptor carried.
        """
        with self._lock:
            previous = self._descriptors.get(descriptor.id)
            if previous is not None:
                for name in self._names_for(previous):
                    if self._index.get(name) == previous.id:
                        del self._index[name]
                logger.debug("Replacing capability: %s", descriptor.id)

            self._descriptors[descriptor.id] = descriptor
            for name in self._names_for(descriptor):
                owner = self._index.get(name)
                if owner and owner != descriptor.id:
                    logger.warning(
                        "Capability name '%s' moved from %s to %s", name, owner, descriptor.id,
                    )
                self._index[name] = descriptor.id
        logger.debug("Registered capability: %s", descriptor.id)

    def register_many(self, descriptors: Iterable[CapabilityDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def load_default_catalog(self) -> None:
        """Register the built-in catalog.  Safe to call repeatedly."""
        self.register_many(DEFAULT_CAPABILITIES)

    def get(self, name: str) -> CapabilityDescriptor | None:
        """Look up by id, binary name, or alias (case-insensitive)."""
        with self._lock:
            capability_id = self._index.get(_key(name))
            if capability_id is None:
                return None
            return self._descriptors.get(capability_id)

    def list(self) -> list[CapabilityDescriptor]:
        """All registered descriptors, sorted by id."""
        with self._lock:
            return sorted(self._descriptors.values(), key=lambda d: d.id)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)

    @staticmethod
    def _names_for(descriptor: CapabilityDescriptor) -> set[str]:
        names = {descriptor.id, _key(descriptor.binary_name)}
        names.update(_key(a) for a in descriptor.aliases if a.strip())
        return names

    # ── Liveness cache ──────────────────────────────────────────

    def is_binary_available(self, binary: str, *, refresh: bool = False) -> bool:
        """Whether ``binary`` is present, from cache when fresh.

        Args:
            binary: Executable name.
            refresh: Bypass the cache and probe now.
        """
        key = _key(binary)
        if not key:
            return False

        if not refresh:
            with self._lock:
                state = self._states.get(key)
                if state is not None and state.is_fresh(self._ttl_s, now=self._clock()):
                    return state.available

        available = self._probe(key)
        with self._lock:
            self._states[key] = CapabilityState(
                id=key,
                available=available,
                last_checked_at=self._clock(),
                source="probe",
            )
        return available

    def set_binary_state(
        self,
        binary: str,
        available: bool,
        detail: str | None = None,
    ) -> None:
        """Record availability learned at runtime (e.g. after an install)."""
        key = _key(binary)
        with self._lock:
            self._states[key] = CapabilityState(
                id=key,
                available=available,
                last_checked_at=self._clock(),
                source="runtime",
                detail=detail,
            )

    def get_state(self, binary: str) -> CapabilityState | None:
        """Cached state for ``binary`` (fresh or not)."""
        with self._lock:
            return self._states.get(_key(binary))

    def invalidate(self, binary: str | None = None) -> None:
        """Drop cached state for one binary, or for all."""
        with self._lock:
            if binary is None:
                self._states.clear()
            else:
                self._states.pop(_key(binary), None)

    # ── Command resolution ──────────────────────────────────────

    def resolve_command(self, command: str) -> CommandCapabilityResolution:
        """Map a command's executables to known and missing capabilities.

        Executables the registry does not know are reported in
        ``unknown_executables``; they never make the command fail.
        """
        executables = collect_executables(command)
        known: list[CapabilityDescriptor] = []
        missing: list[CapabilityDescriptor] = []
        unknown: list[str] = []
        seen: set[str] = set()

        for executable in executables:
            descriptor = self.get(executable)
            if descriptor is None:
                unknown.append(executable)
                continue
            if descriptor.id in seen:
                continue
            seen.add(descriptor.id)
            known.append(descriptor)
            if not self.is_binary_available(descriptor.binary_name):
                missing.append(descriptor)

        if missing:
            logger.debug(
                "Command needs missing capabilities: %s", ", ".join(d.id for d in missing),
            )
        return CommandCapabilityResolution(
            executables=executables,
            known_capabilities=known,
            missing_capabilities=missing,
            unknown_executables=unknown,
        )
