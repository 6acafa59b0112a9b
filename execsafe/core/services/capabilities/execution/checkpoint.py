"""
L4 Execution — File checkpoints for transactional writes.

``create`` snapshots a file before a mutation, ``restore`` puts it back
(or deletes it, if it did not exist), ``dispose`` drops the backup once
the mutation is known good.  Each checkpoint is restored at most once.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import uuid
from pathlib import Path

from execsafe.core.models.checkpoint import FileCheckpoint, RestoreResult

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_DIRNAME = "execsafe-checkpoints"


def default_checkpoint_root() -> Path:
    """``<system tempdir>/execsafe-checkpoints``."""
    return Path(tempfile.gettempdir()) / DEFAULT_CHECKPOINT_DIRNAME


class CheckpointError(Exception):
    """A pre-write backup could not be created; the write must not proceed."""


class RollbackError(Exception):
    """A checkpoint could not be restored after a failed write."""

    def __init__(self, checkpoint: FileCheckpoint, detail: str):
        super().__init__(f"Rollback of {checkpoint.file_path} failed: {detail}")
        self.checkpoint = checkpoint
        self.detail = detail


class CheckpointManager:
    """Creates, restores, and disposes file checkpoints under ``root``.

    Args:
        root: Directory that holds backup copies
            (default ``<tempdir>/execsafe-checkpoints``).
    """

    def __init__(self, root: Path | str | None = None):
        self.root = Path(root) if root else default_checkpoint_root()
        self._lock = threading.Lock()
        self._consumed: set[str] = set()

    def create(self, file_path: Path | str) -> FileCheckpoint:
        """Snapshot ``file_path`` as it is right now.

        A missing file yields ``existed=False`` and no backup.

        Raises:
            OSError: the file exists but could not be copied.
        """
        path = Path(file_path).expanduser().absolute()
        checkpoint_id = uuid.uuid4().hex

        if not path.exists():
            logger.debug("Checkpoint %s: %s does not exist", checkpoint_id, path)
            return FileCheckpoint(
                id=checkpoint_id, file_path=str(path), backup_path=None, existed=False,
            )

        self.root.mkdir(parents=True, exist_ok=True)
        backup = self.root / f"{checkpoint_id}.bak"
        shutil.copy2(path, backup)
        logger.debug("Checkpoint %s: %s → %s", checkpoint_id, path, backup)
        return FileCheckpoint(
            id=checkpoint_id, file_path=str(path), backup_path=str(backup), existed=True,
        )

    def restore(self, checkpoint: FileCheckpoint) -> RestoreResult:
        """Return the file to its checkpointed state.

        The backup is disposed afterwards.  A checkpoint that was
        already restored is refused without touching the file.
        """
        with self._lock:
            if checkpoint.consumed or checkpoint.id in self._consumed:
                return RestoreResult(ok=False, detail="Checkpoint already consumed.")
            self._consumed.add(checkpoint.id)
        checkpoint.mark_consumed()

        target = Path(checkpoint.file_path)
        try:
            if checkpoint.existed:
                if not checkpoint.backup_path or not Path(checkpoint.backup_path).is_file():
                    return RestoreResult(
                        ok=False, detail=f"Backup missing for {target}",
                    )
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(checkpoint.backup_path, target)
                detail = f"Restored {target}"
            else:
                target.unlink(missing_ok=True)
                detail = f"Removed {target} (did not exist before)"
        except OSError as e:
            logger.error("Restore of %s failed: %s", target, e)
            return RestoreResult(ok=False, detail=str(e))
        finally:
            self.dispose(checkpoint)

        logger.info("Rollback: %s", detail)
        return RestoreResult(ok=True, detail=detail)

    def dispose(self, checkpoint: FileCheckpoint) -> None:
        """Remove the backup copy.  Idempotent, never raises."""
        if not checkpoint.backup_path:
            return
        try:
            Path(checkpoint.backup_path).unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Dispose of %s failed: %s", checkpoint.backup_path, e)

    def usage(self) -> dict[str, int]:
        """Backup count and total bytes currently under ``root``."""
        if not self.root.is_dir():
            return {"backups": 0, "bytes": 0}
        files = [p for p in self.root.glob("*.bak") if p.is_file()]
        return {"backups": len(files), "bytes": sum(p.stat().st_size for p in files)}
