"""
Lifecycle event model — structured notifications about policy,
install, checkpoint, and MCP state transitions.

Events are emitted, never stored here.  Delivery and persistence
belong to the evidence ledger and whatever sink the caller supplies.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, model_validator

CapabilityEventType = Literal[
    "capability_discovered",
    "capability_missing",
    "install_started",
    "install_verified",
    "install_succeeded",
    "install_failed",
    "policy_rewrite",
    "policy_blocked",
    "checkpoint_created",
    "rollback_applied",
    "rollback_failed",
    "mcp_server_health",
    "task_evidence_summary",
]

EVENT_NAME_BY_TYPE: dict[str, str] = {
    "capability_discovered": "CAPABILITY_DISCOVERED",
    "capability_missing": "CAPABILITY_MISSING",
    "install_started": "INSTALL_STARTED",
    "install_verified": "INSTALL_VERIFIED",
    "install_succeeded": "INSTALL_VERIFIED",
    "install_failed": "INSTALL_FAILED",
    "policy_rewrite": "POLICY_REWRITE_APPLIED",
    "policy_blocked": "POLICY_BLOCKED",
    "checkpoint_created": "CHECKPOINT_CREATED",
    "rollback_applied": "ROLLBACK_APPLIED",
    "rollback_failed": "ROLLBACK_APPLIED",
    "mcp_server_health": "MCP_SERVER_HEALTH",
    "task_evidence_summary": "TASK_EVIDENCE_SUMMARY",
}
"""Runtime event type → normalized lifecycle name (many-to-one)."""


def to_lifecycle_event_name(event_type: str) -> str:
    """Map a known event type to its lifecycle name.

    Raises:
        KeyError: for an unknown type.  Use ``try_lifecycle_event_name``
            when the input is untrusted.
    """
    return EVENT_NAME_BY_TYPE[event_type]


def try_lifecycle_event_name(event_type: str) -> str | None:
    """Tolerant variant of ``to_lifecycle_event_name``."""
    return EVENT_NAME_BY_TYPE.get(event_type)


class CapabilityEvent(BaseModel):
    """A single lifecycle notification."""

    type: CapabilityEventType
    event_name: str | None = None
    capability_id: str | None = None
    message: str
    detail: str | None = None
    command: str | None = None
    recipe_id: str | None = None
    step_index: int | None = None
    total_steps: int | None = None
    duration_ms: int | None = None
    status: Literal["success", "error", "warning", "pending"] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    ts: float = Field(default_factory=time.time)

    @model_validator(mode="after")
    def _fill_event_name(self) -> CapabilityEvent:
        if self.event_name is None:
            self.event_name = try_lifecycle_event_name(self.type)
        return self


EventCallback = Callable[[CapabilityEvent], Any]
