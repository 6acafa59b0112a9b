"""
L5 Orchestration — Platform services facade.

One ``PlatformServices`` per process owns every stateful piece: the
capability registry, install orchestrator, checkpoint manager, evidence
ledger, MCP runtime tracker, sandbox service and flag store.  Tool
adapters talk to this facade only.

Flow for one command::

    prepare_command(cmd)
        → evaluate (policy; deny stops here)
        → ensure_for_command (resolve + install, flag-gated)
    guarded_write(path)
        → checkpoint → caller mutates → dispose | restore
"""

from __future__ import annotations

import logging
import tempfile
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from pydantic import BaseModel

from execsafe.adapters.containers.runtime import (
    ContainerRuntimeDetector,
    ContainerRuntimeStatus,
    check_runtime,
    execute_command_in_container,
)
from execsafe.core.config.flags import FLAGS_FILE, FlagStore
from execsafe.core.config.loader import Settings
from execsafe.core.models.capability import CommandCapabilityResolution, TrustPolicy
from execsafe.core.models.checkpoint import FileCheckpoint
from execsafe.core.models.events import CapabilityEvent, EventCallback
from execsafe.core.models.install import EnsureCommandResult
from execsafe.core.models.mcp import MCPServerConfig
from execsafe.core.models.policy import PolicyDecision
from execsafe.core.persistence.evidence import DEFAULT_EVIDENCE_FILE, EvidenceLedger, EvidenceRecord
from execsafe.core.services.capabilities.detection.binary_probe import BinaryProbe
from execsafe.core.services.capabilities.domain.policy import (
    default_allowed_roots,
    evaluate_command_policy,
    is_within,
)
from execsafe.core.services.capabilities.domain.trust import resolve_trust_policy
from execsafe.core.services.capabilities.execution.checkpoint import (
    CheckpointError,
    CheckpointManager,
    RollbackError,
)
from execsafe.core.services.capabilities.execution.subprocess_runner import ShellRunner, run_shell
from execsafe.core.services.capabilities.mcp.discovery import load_configured_mcp_servers
from execsafe.core.services.capabilities.mcp.runtime import MCPRuntimeTracker
from execsafe.core.services.capabilities.orchestration.install import InstallOrchestrator
from execsafe.core.services.capabilities.registry import CapabilityRegistry
from execsafe.core.services.lifecycle_events import LifecycleEventEmitter

logger = logging.getLogger(__name__)


class CommandPreparation(BaseModel):
    """Policy decision plus install outcome for one command."""

    original: str
    decision: PolicyDecision
    ensure: EnsureCommandResult | None = None

    @property
    def allowed(self) -> bool:
        """Whether the command may run (policy allows, installs did not fail)."""
        if self.decision.denied:
            return False
        return self.ensure is None or self.ensure.ok

    @property
    def command(self) -> str | None:
        """The text to execute (rewritten when needed), None when denied."""
        return self.decision.effective_command(self.original)


class SandboxService:
    """Decides where commands run: a container or the host."""

    def __init__(self, flags: FlagStore, detector: ContainerRuntimeDetector):
        self._flags = flags
        self.detector = detector

    def runtime_status(self, force: bool = False) -> ContainerRuntimeStatus:
        return self.detector.detect(force=force)

    def runtime(self) -> str:
        """``container`` when container execution is on and available."""
        if not self._flags.is_enabled("container_execution"):
            return "host"
        return "container" if self.runtime_status().available else "host"


class PlatformServices:
    """Process-wide owner of capability and execution-safety state.

    Build with ``create_platform_services``; the constructor only wires
    already-built parts together.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        registry: CapabilityRegistry,
        installer: InstallOrchestrator,
        checkpoints: CheckpointManager,
        ledger: EvidenceLedger,
        flags: FlagStore,
        events: LifecycleEventEmitter,
        mcp: MCPRuntimeTracker,
        sandbox: SandboxService,
    ):
        self.settings = settings
        self.registry = registry
        self.installer = installer
        self.checkpoints = checkpoints
        self.ledger = ledger
        self.flags = flags
        self.events = events
        self.mcp = mcp
        self.sandbox = sandbox

    # ── Events & evidence ───────────────────────────────────────

    def emit(self, event: CapabilityEvent, on_event: EventCallback | None = None) -> None:
        """Deliver an event.  Never raises."""
        try:
            self.events.emit(event, on_event)
        except Exception as e:
            logger.warning("Event emission failed for %s: %s", event.type, e)

    def record_evidence(
        self,
        record: EvidenceRecord,
        on_event: EventCallback | None = None,
    ) -> bool:
        """Append to the evidence ledger.  Returns False if the write failed."""
        try:
            self.ledger.append(record)
        except OSError as e:
            logger.warning("Evidence ledger write failed: %s", e)
            return False
        self.emit(CapabilityEvent(
            type="task_evidence_summary",
            capability_id=record.capability_id,
            command=record.command,
            message=record.summary,
            metadata={"evidence_id": record.id, "source_refs": record.source_refs},
        ), on_event)
        return True

    # ── Policy & capabilities ───────────────────────────────────

    def allowed_roots(self) -> list[str]:
        if self.settings.allowed_roots is not None:
            return list(self.settings.allowed_roots)
        return default_allowed_roots()

    def evaluate(
        self,
        command: str,
        *,
        cwd: str | None = None,
        allowed_roots: Iterable[str] | None = None,
        on_event: EventCallback | None = None,
    ) -> PolicyDecision:
        """Run the policy engine.  Never gated by flags."""
        roots = list(allowed_roots) if allowed_roots is not None else self.allowed_roots()
        decision = evaluate_command_policy(command, cwd=cwd, allowed_roots=roots)

        if decision.action == "deny":
            self.emit(CapabilityEvent(
                type="policy_blocked",
                command=command,
                message=decision.reason,
                detail=decision.detail,
                status="error",
                metadata={"hard_violation": decision.hard_violation},
            ), on_event)
        elif decision.action == "rewrite":
            self.emit(CapabilityEvent(
                type="policy_rewrite",
                command=decision.command,
                message=decision.reason,
                detail=f"{command} → {decision.command}",
                status="warning",
                metadata={"rewrites": decision.rewrites, "original": command},
            ), on_event)
        return decision

    def resolve_command(self, command: str) -> CommandCapabilityResolution:
        return self.registry.resolve_command(command)

    def trust_policy(self, override: str | None = None) -> TrustPolicy:
        return resolve_trust_policy(
            self.settings.autonomy_mode, override or self.settings.trust_policy,
        )

    def ensure_for_command(
        self,
        command: str,
        *,
        trust_policy: str | None = None,
        on_event: EventCallback | None = None,
    ) -> EnsureCommandResult:
        """Install what ``command`` needs, unless orchestration is off."""
        if not self.flags.is_enabled("install_orchestrator"):
            return EnsureCommandResult(
                ok=True, skipped=True, detail="Install orchestration disabled.",
            )
        return self.installer.ensure_command_capabilities(
            command,
            trust_policy=self.trust_policy(trust_policy),
            on_event=on_event,
            max_workers=self.settings.max_install_workers,
        )

    def prepare_command(
        self,
        command: str,
        *,
        cwd: str | None = None,
        allowed_roots: Iterable[str] | None = None,
        trust_policy: str | None = None,
        on_event: EventCallback | None = None,
    ) -> CommandPreparation:
        """Policy, then installs for the (possibly rewritten) command.

        A denied command never reaches the installer.
        """
        decision = self.evaluate(
            command, cwd=cwd, allowed_roots=allowed_roots, on_event=on_event,
        )
        if decision.denied:
            return CommandPreparation(original=command, decision=decision)

        effective = decision.effective_command(command)
        ensure = self.ensure_for_command(effective, trust_policy=trust_policy, on_event=on_event)
        return CommandPreparation(original=command, decision=decision, ensure=ensure)

    # ── Checkpoints ─────────────────────────────────────────────

    def scratch_roots(self) -> list[str]:
        """Trees whose files are never checkpointed."""
        roots = (
            list(self.settings.scratch_roots)
            if self.settings.scratch_roots is not None
            else [tempfile.gettempdir()]
        )
        roots.append(str(self.checkpoints.root))
        return [str(Path(r).expanduser().absolute()) for r in roots]

    def checkpoint_file(
        self,
        path: Path | str,
        on_event: EventCallback | None = None,
    ) -> FileCheckpoint | None:
        """Checkpoint ``path`` before a mutation.

        Returns None when checkpoints are disabled or ``path`` lives in
        a scratch root.

        Raises:
            OSError: the backup could not be written.
        """
        if not self.flags.is_enabled("checkpoint_rollback"):
            return None

        target = str(Path(path).expanduser().absolute())
        if any(is_within(target, root) for root in self.scratch_roots()):
            logger.debug("Skipping checkpoint for scratch path %s", target)
            return None

        checkpoint = self.checkpoints.create(target)
        self.emit(CapabilityEvent(
            type="checkpoint_created",
            message=f"Checkpoint created for {target}",
            status="success",
            metadata={"checkpoint_id": checkpoint.id, "existed": checkpoint.existed},
        ), on_event)
        return checkpoint

    @contextmanager
    def guarded_write(
        self,
        path: Path | str,
        *,
        tolerate_missing_rollback: bool = False,
        on_event: EventCallback | None = None,
    ) -> Iterator[FileCheckpoint | None]:
        """Wrap a file mutation in checkpoint / restore.

        Usage::

            with services.guarded_write(path):
                path.write_text(new_content)

        Raises:
            CheckpointError: the backup failed (before any mutation),
                unless ``tolerate_missing_rollback``.
            RollbackError: the block failed and the restore failed too.
        """
        try:
            checkpoint = self.checkpoint_file(path, on_event=on_event)
        except OSError as e:
            if not tolerate_missing_rollback:
                raise CheckpointError(f"Cannot checkpoint {path}: {e}") from e
            logger.warning("Proceeding without checkpoint for %s: %s", path, e)
            checkpoint = None

        try:
            yield checkpoint
        except Exception as exc:
            if checkpoint is not None:
                result = self.checkpoints.restore(checkpoint)
                if not result.ok:
                    self.emit(CapabilityEvent(
                        type="rollback_failed",
                        message=f"Rollback failed for {checkpoint.file_path}",
                        detail=result.detail,
                        status="error",
                        metadata={"checkpoint_id": checkpoint.id},
                    ), on_event)
                    raise RollbackError(checkpoint, result.detail) from exc
                self.emit(CapabilityEvent(
                    type="rollback_applied",
                    message=f"Rolled back {checkpoint.file_path}",
                    detail=result.detail,
                    status="warning",
                    metadata={"checkpoint_id": checkpoint.id},
                ), on_event)
            raise
        else:
            if checkpoint is not None:
                self.checkpoints.dispose(checkpoint)

    # ── MCP ─────────────────────────────────────────────────────

    def mcp_servers(self) -> list[MCPServerConfig]:
        """Configured MCP servers (env, settings, file)."""
        return load_configured_mcp_servers(self.settings).servers

    def report_mcp_health(
        self,
        name: str,
        status: str,
        error: str | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        """Record a health check and emit ``mcp_server_health``."""
        if not self.flags.is_enabled("mcp_runtime_manager"):
            return
        state = self.mcp.update_health(name, status, error)  # type: ignore[arg-type]
        if state is None:
            return
        self.emit(CapabilityEvent(
            type="mcp_server_health",
            message=f"MCP server {name} is {state.status}",
            detail=state.last_error,
            status="success" if state.status == "healthy" else "warning",
            metadata={
                "server": name,
                "consecutive_failures": state.consecutive_failures,
                "restart_count": state.restart_count,
            },
        ), on_event)

    # ── Status ──────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        """Snapshot of flags, sandbox, cooldowns and MCP servers."""
        runtime = self.sandbox.runtime_status()
        return {
            "flags": self.flags.get().model_dump(mode="json"),
            "sandbox_runtime": self.sandbox.runtime(),
            "container_runtime": runtime.model_dump(mode="json", exclude={"checked_at"}),
            "install_cooldowns": self.installer.cooldown_status(),
            "capabilities": len(self.registry),
            "mcp_servers": [s.model_dump(mode="json") for s in self.mcp.list()],
        }


def create_platform_services(
    settings: Settings | None = None,
    *,
    probe: BinaryProbe | None = None,
    runner: ShellRunner | None = None,
    container_runner: Callable[..., dict[str, Any]] | None = None,
    container_checker: Callable[[str], ContainerRuntimeStatus] | None = None,
) -> PlatformServices:
    """Build the facade for this process.

    Probe, runners and container checker are injectable so tests never
    touch the host's package managers.
    """
    settings = settings or Settings()
    state_dir = settings.resolved_state_dir()

    flags = FlagStore(state_dir / FLAGS_FILE, overrides=settings.flags)
    events = LifecycleEventEmitter(enabled=lambda: flags.is_enabled("lifecycle_events"))

    registry = CapabilityRegistry(probe)
    registry.load_default_catalog()
    registry.register_many(settings.capabilities)

    detector = ContainerRuntimeDetector(container_checker or check_runtime)

    def _emit(event: CapabilityEvent, on_event: EventCallback | None) -> None:
        try:
            events.emit(event, on_event)
        except Exception as e:
            logger.warning("Event emission failed for %s: %s", event.type, e)

    installer = InstallOrchestrator(
        registry,
        runner=runner or run_shell,
        container_runner=container_runner or partial(execute_command_in_container, detector=detector),
        flags=flags.get,
        emit=_emit,
    )

    services = PlatformServices(
        settings,
        registry=registry,
        installer=installer,
        checkpoints=CheckpointManager(settings.checkpoint_root),
        ledger=EvidenceLedger(state_dir / DEFAULT_EVIDENCE_FILE),
        flags=flags,
        events=events,
        mcp=MCPRuntimeTracker(),
        sandbox=SandboxService(flags, detector),
    )

    if flags.is_enabled("mcp_runtime_manager"):
        for server in services.mcp_servers():
            services.mcp.register_server(server)

    logger.debug(
        "Platform services ready: %d capabilities, state in %s", len(registry), state_dir,
    )
    return services
