"""
Logging configuration — one setup call per process.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
what is configured here.  Levels resolve in precedence order:

    CLI flag  >  EXECSAFE_LOG_LEVEL  >  WARNING

Optional file output via EXECSAFE_LOG_FILE / EXECSAFE_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import os
import sys

# Console formats by verbosity.
_FMT_MINIMAL = "%(message)s"
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"

# File output always carries full detail.
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Loggers that stay at WARNING unless we are debugging.
_NOISY_LOGGERS = ("urllib3", "asyncio", "concurrent.futures")

ENV_LEVEL = "EXECSAFE_LOG_LEVEL"
ENV_FILE = "EXECSAFE_LOG_FILE"
ENV_FILE_LEVEL = "EXECSAFE_LOG_FILE_LEVEL"


def resolve_level(cli_level: str | None = None) -> str:
    """CLI level if given, else ``EXECSAFE_LOG_LEVEL``, else WARNING."""
    return cli_level or os.environ.get(ENV_LEVEL, "").strip() or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure logging for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path (default from ``EXECSAFE_LOG_FILE``).
        log_file_level: File level (default from ``EXECSAFE_LOG_FILE_LEVEL``,
            then ``level``).
        quiet_third_party: Hold noisy loggers at WARNING above DEBUG.
    """
    numeric_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_FILE) or None
    log_file_level = log_file_level or os.environ.get(ENV_FILE_LEVEL) or None

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_CONSOLE
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_CONSOLE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name → numeric constant (unknown names mean WARNING)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
