"""
Guarded shell adapter — run an agent-issued command after policy and
capability checks.

    policy → (deny: failed receipt, nothing runs)
    rewrite → run the rewritten text
    resolve + install missing capabilities (flag-gated)
    run on the host, or in a container when container execution is on
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from execsafe.adapters.base import Adapter, ExecutionContext
from execsafe.adapters.containers.runtime import execute_command_in_container
from execsafe.core.models.action import Receipt
from execsafe.core.services.capabilities.execution.subprocess_runner import (
    ShellRunner,
    run_shell,
)
from execsafe.core.services.capabilities.orchestration.services import PlatformServices

logger = logging.getLogger(__name__)


class GuardedShellAdapter(Adapter):
    """Execute shell commands behind the execution policy.

    Action params:
        command (str): The command to execute.
        timeout (int): Timeout in seconds (default: 300).
        cwd (str): Override working directory (default: context.cwd).
        install (bool): Auto-install missing capabilities (default: True).
    """

    def __init__(self, services: PlatformServices, runner: ShellRunner = run_shell):
        self._services = services
        self._runner = runner

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("bash") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command", "")
        if not isinstance(command, str) or not command.strip():
            return False, "Missing required param: 'command'"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        command = context.params.get("command", "")
        timeout = context.params.get("timeout", 300)
        cwd = str(Path(context.working_dir).expanduser().absolute())

        decision = self._services.evaluate(
            command, cwd=cwd, allowed_roots=context.allowed_roots,
        )
        if decision.denied:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Blocked by policy: {decision.reason}",
                metadata={
                    "command": command,
                    "policy": decision.model_dump(mode="json"),
                },
            )

        effective = decision.effective_command(command) or command
        metadata: dict = {"command": effective, "policy_action": decision.action}
        if decision.action == "rewrite":
            metadata["original_command"] = command
            metadata["rewrites"] = decision.rewrites

        if context.params.get("install", True):
            ensure = self._services.ensure_for_command(
                effective, trust_policy=context.trust_policy,
            )
            metadata["capabilities"] = ensure.model_dump(mode="json", exclude={"failed"})
            if not ensure.ok:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Missing capabilities could not be installed: {ensure.detail}",
                    metadata=metadata,
                )

        if context.dry_run:
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason=f"[dry-run] Would execute: {effective}",
                metadata=metadata,
            )

        runtime = self._services.sandbox.runtime()
        metadata["runtime"] = runtime
        logger.debug("Executing (%s): %s (cwd=%s)", runtime, effective, cwd)

        if runtime == "container":
            result = execute_command_in_container(
                effective, cwd=cwd, timeout_s=timeout, detector=self._services.sandbox.detector,
            )
        else:
            result = self._runner(effective, timeout_s=timeout, cwd=cwd)

        metadata["return_code"] = result.get("returncode", 0 if result.get("ok") else None)
        metadata["stderr"] = (result.get("stderr") or "").strip()
        output = (result.get("stdout") or "").strip()

        if result.get("ok"):
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=result.get("elapsed_ms", 0),
                metadata=metadata,
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=metadata["stderr"] or result.get("error") or "Command failed",
            output=output,
            duration_ms=result.get("elapsed_ms", 0),
            metadata=metadata,
        )
