"""
File-mutation adapter — write, edit, append and delete files with
automatic rollback.

Every mutation runs inside ``PlatformServices.guarded_write``: the file
is checkpointed first, and if the mutation raises, the file is put
back the way it was before the receipt is returned.
"""

from __future__ import annotations

import logging
from pathlib import Path

from execsafe.adapters.base import Adapter, ExecutionContext
from execsafe.core.models.action import Receipt
from execsafe.core.services.capabilities.execution.checkpoint import (
    CheckpointError,
    RollbackError,
)
from execsafe.core.services.capabilities.orchestration.services import PlatformServices

logger = logging.getLogger(__name__)

MUTATING_OPS = frozenset({"write", "edit", "append", "delete"})


class EditError(Exception):
    """An edit's ``old`` text was not found, or matched ambiguously."""


class FileMutationAdapter(Adapter):
    """File operations with checkpoint / rollback.

    Action params:
        operation (str): One of 'read', 'write', 'edit', 'append', 'delete'.
        path (str): Target path (relative to working_dir or absolute).
        content (str): Content for 'write' and 'append'.
        old (str): Text to replace (for 'edit').
        new (str): Replacement text (for 'edit').
        replace_all (bool): Replace every occurrence of ``old`` (default: False).
    """

    def __init__(self, services: PlatformServices):
        self._services = services

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        valid_ops = MUTATING_OPS | {"read"}
        if operation not in valid_ops:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(valid_ops))}"

        if not context.params.get("path"):
            return False, "Missing required param: 'path'"

        if operation in ("write", "append") and "content" not in context.params:
            return False, f"Missing required param: 'content' for {operation} operation"

        if operation == "edit" and ("old" not in context.params or "new" not in context.params):
            return False, "Missing required params: 'old' and 'new' for edit operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.params["path"]).expanduser()
        if not target.is_absolute():
            target = Path(context.working_dir) / target
        meta = {"operation": operation, "path": str(target)}

        if operation == "read":
            return self._read(context, target)

        if context.dry_run:
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason=f"[dry-run] Would {operation} {target}",
                metadata=meta,
            )

        try:
            with self._services.guarded_write(target) as checkpoint:
                meta["checkpoint"] = checkpoint.id if checkpoint else None
                output = self._mutate(operation, target, context.params)
        except RollbackError as e:
            logger.error("File %s left modified: %s", target, e)
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=str(e),
                metadata={**meta, "rolled_back": False},
            )
        except CheckpointError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=str(e),
                metadata={**meta, "rolled_back": False},
            )
        except (OSError, EditError, UnicodeError) as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={**meta, "rolled_back": meta.get("checkpoint") is not None},
            )

        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=output,
            metadata=meta,
        )

    # ── Operations ──────────────────────────────────────────────

    def _read(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"File not found: {target}",
            )
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Filesystem error: {e}",
            )
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=content,
            metadata={"path": str(target), "size": len(content)},
        )

    @staticmethod
    def _mutate(operation: str, target: Path, params: dict) -> str:
        if operation == "write":
            content = params["content"]
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            return f"Written {len(content)} bytes to {target}"

        if operation == "append":
            content = params["content"]
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as f:
                f.write(content)
            return f"Appended {len(content)} bytes to {target}"

        if operation == "edit":
            old, new = params["old"], params["new"]
            text = target.read_text(encoding="utf-8")
            count = text.count(old) if old else 0
            if count == 0:
                raise EditError(f"Text to replace not found in {target}")
            if count > 1 and not params.get("replace_all", False):
                raise EditError(
                    f"Text to replace occurs {count} times in {target}; pass replace_all"
                )
            target.write_text(text.replace(old, new), encoding="utf-8")
            return f"Replaced {count} occurrence(s) in {target}"

        # delete
        target.unlink()
        return f"Deleted {target}"
