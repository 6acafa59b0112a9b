"""
Checkpoint models — a recoverable snapshot of one file's pre-write state.
"""

from __future__ import annotations

import time

from pydantic import BaseModel, Field, PrivateAttr


class FileCheckpoint(BaseModel):
    """Snapshot handle for a single file.

    Lives as a physical backup under the checkpoint root until it is
    disposed or consumed by a restore.  ``backup_path`` is None when the
    file did not exist, in which case restoring deletes the file.
    """

    id: str
    file_path: str
    backup_path: str | None = None
    existed: bool
    created_at: float = Field(default_factory=time.time)

    _consumed: bool = PrivateAttr(default=False)

    @property
    def consumed(self) -> bool:
        """Whether a restore has already used this checkpoint."""
        return self._consumed

    def mark_consumed(self) -> None:
        self._consumed = True


class RestoreResult(BaseModel):
    """Outcome of restoring a checkpoint."""

    ok: bool
    detail: str = ""
