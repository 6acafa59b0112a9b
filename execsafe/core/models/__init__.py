"""
Domain models — Pydantic types for the safety platform.

All models are re-exported here for convenient access:

    from execsafe.core.models import CapabilityDescriptor, PolicyDecision, FileCheckpoint
"""

from execsafe.core.models.action import Action, Receipt
from execsafe.core.models.capability import (
    CapabilityDescriptor,
    CapabilityState,
    CommandCapabilityResolution,
    InstallRecipe,
)
from execsafe.core.models.checkpoint import FileCheckpoint, RestoreResult
from execsafe.core.models.events import CapabilityEvent
from execsafe.core.models.install import EnsureCommandResult, InstallAttempt, InstallResult
from execsafe.core.models.mcp import (
    MCPServerConfig,
    MCPServerRuntimeState,
    MCPToolRuntimeState,
    MCPToolSchema,
)
from execsafe.core.models.policy import PolicyDecision

__all__ = [
    # action.py
    "Action",
    # capability.py
    "CapabilityDescriptor",
    "CapabilityEvent",
    "CapabilityState",
    "CommandCapabilityResolution",
    # install.py
    "EnsureCommandResult",
    # checkpoint.py
    "FileCheckpoint",
    "InstallAttempt",
    "InstallRecipe",
    "InstallResult",
    # mcp.py
    "MCPServerConfig",
    "MCPServerRuntimeState",
    "MCPToolRuntimeState",
    "MCPToolSchema",
    # policy.py
    "PolicyDecision",
    "Receipt",
    "RestoreResult",
]
