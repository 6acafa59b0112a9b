"""
Platform feature flags — persisted switches for the optional subsystems.

Flags live in ``<state_dir>/platform_flags.json``.  Policy evaluation
is never behind a flag; everything else (events, installs, checkpoints,
MCP tracking, containers) can be turned off.  ``enabled`` is a master
switch: when it is off every optional subsystem reads as off.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from execsafe.core.persistence.state_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

FLAGS_FILE = "platform_flags.json"

Cohort = Literal["internal", "beta", "default"]


class PlatformFlags(BaseModel):
    """All feature flags with their defaults."""

    enabled: bool = True
    cohort: Cohort = "internal"
    lifecycle_events: bool = True
    install_orchestrator: bool = True
    checkpoint_rollback: bool = True
    mcp_runtime_manager: bool = False
    container_execution: bool = False
    containerize_mcp_servers: bool = False
    containerize_installs: bool = False


FLAG_NAMES: tuple[str, ...] = tuple(PlatformFlags.model_fields)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_flag_value(name: str, raw: str) -> Any:
    """Coerce a CLI string (``on``, ``false``, ``beta``…) for flag ``name``."""
    if name not in FLAG_NAMES:
        raise KeyError(f"Unknown flag: {name}")
    if name == "cohort":
        return raw.strip().lower()
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"Flag '{name}' expects a boolean, got {raw!r}")


class FlagStore:
    """Thread-safe, file-backed flag store.

    Args:
        path: JSON file the flags persist to.  None keeps them in memory.
        overrides: Initial values applied over the persisted file
            (not written back until ``set`` is called).
    """

    def __init__(self, path: Path | None = None, overrides: dict[str, Any] | None = None):
        self.path = path
        self._lock = threading.Lock()
        self._flags = self._load(overrides or {})

    def _load(self, overrides: dict[str, Any]) -> PlatformFlags:
        data: dict[str, Any] = {}
        if self.path is not None:
            stored = read_json(self.path)
            if isinstance(stored, dict):
                data.update({k: v for k, v in stored.items() if k in FLAG_NAMES})
        data.update({k: v for k, v in overrides.items() if k in FLAG_NAMES})
        try:
            return PlatformFlags.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid platform flags, using defaults: %s", e)
            return PlatformFlags()

    def get(self) -> PlatformFlags:
        """Snapshot of the current flags."""
        with self._lock:
            return self._flags.model_copy()

    def set(self, **updates: Any) -> PlatformFlags:
        """Update flags and persist.

        Raises:
            KeyError: an unknown flag name.
            pydantic.ValidationError: a value of the wrong type.
        """
        unknown = [k for k in updates if k not in FLAG_NAMES]
        if unknown:
            raise KeyError(f"Unknown flag(s): {', '.join(sorted(unknown))}")

        with self._lock:
            merged = {**self._flags.model_dump(), **updates}
            self._flags = PlatformFlags.model_validate(merged)
            snapshot = self._flags.model_copy()
        if self.path is not None:
            write_json_atomic(self.path, snapshot.model_dump(mode="json"))
        logger.info("Platform flags updated: %s", ", ".join(f"{k}={v}" for k, v in updates.items()))
        return snapshot

    def is_enabled(self, name: str) -> bool:
        """Whether boolean flag ``name`` is on (respecting the master switch)."""
        if name not in FLAG_NAMES:
            raise KeyError(f"Unknown flag: {name}")
        flags = self.get()
        if name == "enabled":
            return flags.enabled
        value = getattr(flags, name)
        if not isinstance(value, bool):
            raise KeyError(f"Flag '{name}' is not a boolean")
        return flags.enabled and value
