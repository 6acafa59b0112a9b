"""
Capability models — descriptors, install recipes, and liveness state.

A capability is a named external dependency (binary, tool, or MCP
server) that a command may require.  Descriptors and recipes are
static catalog data and are frozen once built; ``CapabilityState`` is
the runtime liveness cache entry the registry keeps per binary.
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CapabilityKind = Literal["binary", "tool", "mcp"]

InstallMethod = Literal[
    "apt", "npm", "pip", "brew", "script", "github_release", "direct_binary",
]

TrustPolicy = Literal["verified_fallback", "strict_verified", "best_effort"]

TRUST_POLICIES: tuple[str, ...] = ("strict_verified", "verified_fallback", "best_effort")


class InstallRecipe(BaseModel):
    """One concrete way to obtain a capability."""

    model_config = ConfigDict(frozen=True)

    id: str
    method: InstallMethod
    command: str                        # shell text, run via ``bash -lc``
    timeout_ms: int | None = None
    verified: bool = False              # hand-reviewed vs community-contributed
    verify_command: str | None = None   # post-install confirmation
    run_in_container: bool = False      # container-execution hint


class CapabilityDescriptor(BaseModel):
    """Static metadata for an installable dependency.

    ``id`` is canonicalised to lowercase.  ``binary`` defaults to the id
    when omitted (see ``binary_name``).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: CapabilityKind = "binary"
    binary: str | None = None
    aliases: tuple[str, ...] = ()
    description: str = ""
    install_recipes: tuple[InstallRecipe, ...] = ()

    @field_validator("id")
    @classmethod
    def _canonical_id(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("capability id must not be empty")
        return value

    @property
    def binary_name(self) -> str:
        """Executable that proves the capability is present."""
        return self.binary or self.id


class CapabilityState(BaseModel):
    """Cached availability of one binary."""

    id: str
    available: bool
    last_checked_at: float = Field(default_factory=time.monotonic)
    source: Literal["probe", "runtime"] = "probe"
    detail: str | None = None

    def is_fresh(self, ttl_s: float, now: float | None = None) -> bool:
        """Whether this entry is still inside its TTL window."""
        current = time.monotonic() if now is None else now
        return current - self.last_checked_at < ttl_s


class CommandCapabilityResolution(BaseModel):
    """Which capabilities a command string depends on."""

    executables: list[str] = Field(default_factory=list)
    known_capabilities: list[CapabilityDescriptor] = Field(default_factory=list)
    missing_capabilities: list[CapabilityDescriptor] = Field(default_factory=list)
    unknown_executables: list[str] = Field(default_factory=list)

    @property
    def missing_ids(self) -> list[str]:
        return [c.id for c in self.missing_capabilities]
