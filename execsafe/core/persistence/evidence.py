"""
Evidence ledger — append-only record of what a task actually did.

Each record ties a command or tool call to the capability it used and
a short summary, with references to the sources it relied on.  Stored
as NDJSON; entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_EVIDENCE_FILE = "evidence.ndjson"


class EvidenceRecord(BaseModel):
    """A single evidence entry."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    ts: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    capability_id: str | None = None
    command: str | None = None
    tool_name: str | None = None
    summary: str
    source_refs: list[str] = Field(default_factory=list)


class EvidenceLedger:
    """Append-only NDJSON evidence writer.

    Each call to ``append()`` writes one JSON line.  The file and its
    parent directory are created on first write.
    """

    def __init__(self, path: Path):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: EvidenceRecord) -> None:
        """Append a record.

        Raises:
            OSError: the ledger could not be written.  Callers that must
                not fail route through a fault barrier.
        """
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        logger.debug("Evidence recorded: %s (%s)", record.id, record.tool_name or record.command)

    def read_all(self) -> list[EvidenceRecord]:
        """All records, oldest first.  Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        records: list[EvidenceRecord] = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(EvidenceRecord.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt evidence entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read evidence ledger: %s", e)
        return records

    def read_recent(self, n: int = 20) -> list[EvidenceRecord]:
        return self.read_all()[-n:]

    def entry_count(self) -> int:
        """Count entries without parsing them."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
