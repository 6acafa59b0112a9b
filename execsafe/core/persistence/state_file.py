"""
State file persistence — atomic JSON read/write.

Writes go to a temp file in the target directory and are renamed into
place, so a crash mid-write never leaves a truncated file behind.
Reads are forgiving: a missing or corrupt file yields ``None`` and the
caller starts fresh.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def read_json(path: Path) -> Any | None:
    """Load JSON from ``path``; None when missing or unreadable."""
    if not path.is_file():
        logger.debug("No state file at %s", path)
        return None

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s; starting fresh", path, e)
        return None
    except OSError as e:
        logger.warning("Cannot read state from %s: %s; starting fresh", path, e)
        return None


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as JSON to ``path`` (temp file, then rename).

    Raises:
        OSError: the directory or temp file could not be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
        logger.debug("State saved to %s", path)
    except Exception:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s", path)
        raise
