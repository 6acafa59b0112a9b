"""
Policy decision model — the verdict for one candidate command.

Decisions are stateless and re-derivable from the command text and
the evaluation options; nothing here is ever persisted.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

PolicyAction = Literal["allow", "rewrite", "deny"]


class PolicyDecision(BaseModel):
    """Outcome of evaluating a command against the execution policy."""

    action: PolicyAction
    reason: str
    command: str | None = None          # replacement text, rewrite only
    detail: str | None = None
    rewrites: list[str] = Field(default_factory=list)
    hard_violation: bool = False        # catastrophic pattern, never overridable

    @model_validator(mode="after")
    def _command_only_on_rewrite(self) -> PolicyDecision:
        if self.action == "rewrite" and not self.command:
            raise ValueError("rewrite decisions must carry the rewritten command")
        if self.action != "rewrite" and self.command is not None:
            raise ValueError("only rewrite decisions carry a replacement command")
        return self

    @property
    def denied(self) -> bool:
        return self.action == "deny"

    def effective_command(self, original: str) -> str | None:
        """The command text to execute, or None when denied."""
        if self.action == "deny":
            return None
        if self.action == "rewrite":
            return self.command
        return original

    @classmethod
    def allow(cls, reason: str = "Command allowed by policy.") -> PolicyDecision:
        return cls(action="allow", reason=reason)

    @classmethod
    def deny(cls, reason: str, **kwargs) -> PolicyDecision:
        return cls(action="deny", reason=reason, **kwargs)

    @classmethod
    def rewrite(cls, command: str, reason: str, **kwargs) -> PolicyDecision:
        return cls(action="rewrite", reason=reason, command=command, **kwargs)
