"""
L5 Orchestration — Capability auto-install.

Drives one capability from "missing" to "verified present", trying the
recipes the trust policy allows in order:

    unknown       → failure (no descriptor)
    available     → success, nothing run, no event
    cooling down  → failure with remaining seconds
    no recipes    → failure naming the trust policy
    attempting    → capability_missing, then per recipe install_started,
                    run, re-probe, optional verify
    succeeded     → runtime state recorded, install_verified + install_succeeded
    exhausted     → cooldown starts, install_failed

Each recipe runs at most once per call.  Recipes for one capability are
strictly sequential; different capabilities may run in a bounded pool.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from execsafe.adapters.containers.runtime import execute_command_in_container
from execsafe.core.config.flags import PlatformFlags
from execsafe.core.models.capability import CapabilityDescriptor, InstallRecipe, TrustPolicy
from execsafe.core.models.events import CapabilityEvent, EventCallback
from execsafe.core.models.install import EnsureCommandResult, InstallAttempt, InstallResult
from execsafe.core.services.capabilities.data.constants import (
    DEFAULT_RECIPE_TIMEOUT_MS,
    DEFAULT_TRUST_POLICY,
    FAILURE_PREVIEW_CHARS,
    VERIFY_COMMAND_TIMEOUT_S,
)
from execsafe.core.services.capabilities.domain.cooldown import InstallCooldown
from execsafe.core.services.capabilities.domain.trust import filter_recipes
from execsafe.core.services.capabilities.execution.subprocess_runner import (
    ShellRunner,
    combined_output,
    run_shell,
)
from execsafe.core.services.capabilities.registry import CapabilityRegistry
from execsafe.core.services.lifecycle_events import deliver

logger = logging.getLogger(__name__)

EventSink = Callable[[CapabilityEvent, EventCallback | None], Any]
ContainerRunner = Callable[..., dict[str, Any]]


def should_run_install_in_container(recipe: InstallRecipe, flags: PlatformFlags) -> bool:
    """Whether ``recipe`` should run in a container under ``flags``."""
    return bool(
        recipe.run_in_container
        and flags.enabled
        and flags.container_execution
        and flags.containerize_installs
    )


class InstallOrchestrator:
    """Installs missing capabilities under a trust policy.

    Args:
        registry: Registry used for lookup, probing and state updates.
        runner: Host shell runner (default ``run_shell``).
        container_runner: Container runner (default
            ``execute_command_in_container``).
        cooldown: Failure cooldown tracker (default 10 min window).
        flags: Provider of current platform flags.
        emit: Event sink ``emit(event, on_event)``.  Defaults to
            delivering straight to ``on_event`` behind a fault barrier.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        runner: ShellRunner = run_shell,
        container_runner: ContainerRunner = execute_command_in_container,
        cooldown: InstallCooldown | None = None,
        flags: Callable[[], PlatformFlags] | None = None,
        emit: EventSink | None = None,
    ):
        self.registry = registry
        self._runner = runner
        self._container_runner = container_runner
        self._cooldown = cooldown or InstallCooldown()
        self._flags = flags or PlatformFlags
        self._emit = emit or (lambda event, on_event: deliver(event, on_event))
        self._locks_guard = threading.Lock()
        self._capability_locks: dict[str, threading.Lock] = {}

    # ── Public API ──────────────────────────────────────────────

    def ensure_capability_installed(
        self,
        capability_id: str,
        *,
        trust_policy: TrustPolicy = DEFAULT_TRUST_POLICY,  # type: ignore[assignment]
        on_event: EventCallback | None = None,
    ) -> InstallResult:
        """Make ``capability_id`` present, installing it if needed."""
        capability = self.registry.get(capability_id)
        if capability is None:
            return InstallResult(
                capability_id=capability_id,
                ok=False,
                detail=f"No capability descriptor found for {capability_id}",
            )

        with self._lock_for(capability.id):
            return self._ensure(capability, trust_policy, on_event)

    def ensure_command_capabilities(
        self,
        command: str,
        *,
        trust_policy: TrustPolicy = DEFAULT_TRUST_POLICY,  # type: ignore[assignment]
        on_event: EventCallback | None = None,
        max_workers: int = 1,
    ) -> EnsureCommandResult:
        """Install every known-but-missing capability ``command`` needs.

        Unknown executables are reported but never fail the result.
        """
        resolution = self.registry.resolve_command(command)
        missing = resolution.missing_capabilities

        def _one(capability: CapabilityDescriptor) -> InstallResult:
            return self.ensure_capability_installed(
                capability.id, trust_policy=trust_policy, on_event=on_event,
            )

        if max_workers > 1 and len(missing) > 1:
            with ThreadPoolExecutor(
                max_workers=min(max_workers, len(missing)),
                thread_name_prefix="execsafe-install",
            ) as pool:
                results = list(pool.map(_one, missing))
        else:
            results = [_one(c) for c in missing]

        installed = [r.capability_id for r in results if r.ok]
        failed = [r for r in results if not r.ok]

        if installed:
            logger.info("Installed capabilities: %s", ", ".join(installed))
        if failed:
            logger.warning(
                "Install failures: %s", ", ".join(r.capability_id for r in failed),
            )

        return EnsureCommandResult(
            ok=not failed,
            installed=installed,
            failed=failed,
            missing_known=resolution.missing_ids,
            unknown_executables=resolution.unknown_executables,
            detail="; ".join(r.detail for r in failed),
        )

    def should_run_install_in_container(self, recipe: InstallRecipe) -> bool:
        return should_run_install_in_container(recipe, self._flags())

    def cooldown_status(self) -> dict[str, float]:
        """Remaining cooldown seconds per capability."""
        return self._cooldown.status()

    def reset_cooldown(self, capability_id: str | None = None) -> None:
        self._cooldown.reset(capability_id)

    # ── State machine ───────────────────────────────────────────

    def _lock_for(self, capability_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._capability_locks.get(capability_id)
            if lock is None:
                lock = self._capability_locks[capability_id] = threading.Lock()
            return lock

    def _ensure(
        self,
        capability: CapabilityDescriptor,
        trust_policy: TrustPolicy,
        on_event: EventCallback | None,
    ) -> InstallResult:
        binary = capability.binary_name

        if self.registry.is_binary_available(binary):
            return InstallResult(
                capability_id=capability.id, ok=True, detail=f"{binary} already available",
            )

        remaining = self._cooldown.remaining(capability.id)
        if remaining > 0:
            wait_s = math.ceil(remaining)
            return InstallResult(
                capability_id=capability.id,
                ok=False,
                detail=f"Install cooldown active for {capability.id}. Retry in {wait_s}s.",
                cooldown_remaining_s=wait_s,
            )

        recipes = filter_recipes(capability, trust_policy)
        if not recipes:
            return InstallResult(
                capability_id=capability.id,
                ok=False,
                detail=f"No install recipes available under trust policy {trust_policy}.",
            )

        self._emit(CapabilityEvent(
            type="capability_missing",
            capability_id=capability.id,
            message=f"{capability.id} is missing. Attempting auto-install.",
            status="warning",
        ), on_event)

        attempts: list[InstallAttempt] = []
        for index, recipe in enumerate(recipes, start=1):
            self._emit(CapabilityEvent(
                type="install_started",
                capability_id=capability.id,
                recipe_id=recipe.id,
                step_index=index,
                total_steps=len(recipes),
                command=recipe.command,
                message=f"Installing {capability.id} via {recipe.method}:{recipe.id}",
                status="pending",
            ), on_event)

            attempt = self._attempt(capability, recipe)
            attempts.append(attempt)

            if attempt.ok:
                self.registry.set_binary_state(binary, True, f"installed:{recipe.id}")
                self._emit(CapabilityEvent(
                    type="install_verified",
                    capability_id=capability.id,
                    recipe_id=recipe.id,
                    duration_ms=attempt.duration_ms,
                    message=f"{binary} verified after {recipe.id}.",
                    status="success",
                ), on_event)
                self._emit(CapabilityEvent(
                    type="install_succeeded",
                    capability_id=capability.id,
                    recipe_id=recipe.id,
                    duration_ms=attempt.duration_ms,
                    message=f"{capability.id} installed successfully ({recipe.id}).",
                    status="success",
                ), on_event)
                logger.info("Installed %s via %s (%dms)", capability.id, recipe.id, attempt.duration_ms)
                return InstallResult(
                    capability_id=capability.id,
                    ok=True,
                    attempts=attempts,
                    detail=f"{capability.id} installed via {recipe.id}",
                )

            logger.info("Recipe %s for %s failed", recipe.id, capability.id)

        self._cooldown.start(capability.id)
        last_output = attempts[-1].output if attempts else ""
        detail = (
            f"Failed to auto-install {capability.id}. "
            f"Last output: {last_output[:FAILURE_PREVIEW_CHARS] or 'n/a'}"
        )
        self._emit(CapabilityEvent(
            type="install_failed",
            capability_id=capability.id,
            message=detail,
            detail=detail,
            status="error",
        ), on_event)
        logger.warning("Install exhausted for %s after %d recipe(s)", capability.id, len(attempts))
        return InstallResult(
            capability_id=capability.id, ok=False, attempts=attempts, detail=detail,
        )

    def _attempt(self, capability: CapabilityDescriptor, recipe: InstallRecipe) -> InstallAttempt:
        """Run one recipe, re-probe the binary, then verify if declared."""
        started = time.monotonic()
        result = self._run_recipe(recipe)
        output = combined_output(result) or "[no output]"

        present = self.registry.is_binary_available(capability.binary_name, refresh=True)

        verified: bool | None = None
        if result.get("ok") and present and recipe.verify_command:
            check = self._runner(recipe.verify_command, timeout_s=VERIFY_COMMAND_TIMEOUT_S)
            verified = bool(check.get("ok"))
            if not verified:
                output = f"{output}\n[verify failed] {combined_output(check)}".strip()

        ok = bool(result.get("ok")) and present and verified is not False
        if result.get("ok") and not present:
            output = f"{output}\n[{capability.binary_name} not found after install]"

        return InstallAttempt(
            capability_id=capability.id,
            recipe_id=recipe.id,
            ok=ok,
            duration_ms=int(result.get("elapsed_ms") or (time.monotonic() - started) * 1000),
            output=output,
            verified=verified,
        )

    def _run_recipe(self, recipe: InstallRecipe) -> dict[str, Any]:
        timeout_s = (recipe.timeout_ms or DEFAULT_RECIPE_TIMEOUT_MS) / 1000

        if self.should_run_install_in_container(recipe):
            result = self._container_runner(recipe.command, timeout_s=timeout_s)
            if not result.get("unavailable"):
                return result
            logger.warning(
                "Container runtime unavailable for %s, running on host: %s",
                recipe.id, result.get("error"),
            )
            host = self._runner(recipe.command, timeout_s=timeout_s)
            note = f"[container unavailable: {result.get('error')}; ran on host]"
            host["stdout"] = f"{note}\n{host.get('stdout') or ''}".strip()
            return host

        return self._runner(recipe.command, timeout_s=timeout_s)
