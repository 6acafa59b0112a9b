"""
Install result models — one attempt per recipe tried, aggregated
into a per-capability result and a per-command summary.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class InstallAttempt(BaseModel):
    """Outcome of running a single install recipe."""

    capability_id: str
    recipe_id: str
    ok: bool                    # run ok AND binary present AND verification ok
    duration_ms: int = 0
    output: str = ""
    verified: bool | None = None   # None when the recipe declares no verify_command


class InstallResult(BaseModel):
    """Aggregate result of ensuring one capability."""

    capability_id: str
    ok: bool
    attempts: list[InstallAttempt] = Field(default_factory=list)
    detail: str = ""
    cooldown_remaining_s: int | None = None

    @property
    def attempted(self) -> bool:
        return bool(self.attempts)


class EnsureCommandResult(BaseModel):
    """Result of ensuring every capability a command needs."""

    ok: bool
    installed: list[str] = Field(default_factory=list)
    failed: list[InstallResult] = Field(default_factory=list)
    missing_known: list[str] = Field(default_factory=list)
    unknown_executables: list[str] = Field(default_factory=list)
    skipped: bool = False       # orchestration disabled by flag
    detail: str = ""
