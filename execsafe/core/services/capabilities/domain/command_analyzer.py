"""
L1 Domain — Shell command analysis (pure).

Just enough shell tokenization to find command boundaries and the
leading executable of each segment.  This is NOT a shell parser:
no expansion, no here-docs, no nested grammar.

No I/O, no subprocess, no imports beyond stdlib.
"""

from __future__ import annotations

import posixpath
import re

from execsafe.core.services.capabilities.data.constants import SHELL_BUILTINS

_TOKEN_RE = re.compile(r"""(?:[^\s"']+|"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')+""")
_ENV_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


def split_command_segments(command: str) -> list[str]:
    """Split a command line into logically sequential segments.

    Splits on top-level ``;``, ``|``, ``&&``, ``||``, a lone background
    ``&`` and newlines.  Quotes and backslash escapes suppress
    splitting; a quote opened before an operator stays open across it
    until closed.  Redirections such as ``2>&1`` and ``&>file`` are not
    operators.

    Returns:
        Stripped, non-empty segments in order.
    """
    segments: list[str] = []
    current: list[str] = []
    single = False
    double = False
    escape = False

    def _flush() -> None:
        text = "".join(current).strip()
        if text:
            segments.append(text)
        current.clear()

    i = 0
    n = len(command)
    while i < n:
        ch = command[i]
        nxt = command[i + 1] if i + 1 < n else ""

        if escape:
            current.append(ch)
            escape = False
            i += 1
            continue

        # Backslash is literal inside single quotes.
        if ch == "\\" and not single:
            current.append(ch)
            escape = True
            i += 1
            continue

        if ch == "'" and not double:
            single = not single
            current.append(ch)
            i += 1
            continue

        if ch == '"' and not single:
            double = not double
            current.append(ch)
            i += 1
            continue

        if not single and not double:
            if (ch == "&" and nxt == "&") or (ch == "|" and nxt == "|"):
                _flush()
                i += 2
                continue
            if ch in (";", "|", "\n"):
                _flush()
                i += 1
                continue
            if ch == "&" and nxt != ">":
                prev = current[-1] if current else ""
                if prev not in (">", "<"):
                    _flush()
                    i += 1
                    continue

        current.append(ch)
        i += 1

    _flush()
    return segments


def _strip_outer_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    return token


def tokenize_segment(segment: str) -> list[str]:
    """Tokenize one segment on whitespace, keeping quoted runs together.

    Matching outer quotes are stripped from each token; inner quoting
    (``--name="a b"``) is left as written.
    """
    return [_strip_outer_quotes(t) for t in _TOKEN_RE.findall(segment)]


def is_env_assignment(token: str) -> bool:
    """Whether ``token`` is a ``KEY=value`` environment prefix."""
    return bool(_ENV_ASSIGNMENT_RE.match(token))


def _strip_subshell_prefix(token: str) -> str:
    return token.lstrip("(").strip()


def extract_executable(segment: str) -> str | None:
    """Return the leading executable name of a segment.

    Skips ``KEY=value`` prefixes and a leading ``(`` subshell marker.
    Returns None for an empty segment, for a shell builtin, and for a
    command or backtick substitution (a substitution is not an
    executable name).

    Example::

        >>> extract_executable("FOO=bar BAZ=1 rg -n test src")
        'rg'
    """
    tokens = tokenize_segment(segment)
    idx = 0
    while idx < len(tokens) and is_env_assignment(tokens[idx]):
        idx += 1
    if idx >= len(tokens):
        return None

    raw = _strip_subshell_prefix(tokens[idx])
    if not raw or raw.startswith("$(") or raw.startswith("`"):
        return None

    base = posixpath.basename(raw.rstrip("/")) if raw != "/" else raw
    if not base or base in SHELL_BUILTINS:
        return None
    return base


def collect_executables(command: str) -> list[str]:
    """Distinct leading executables across all segments, first-seen order."""
    out: list[str] = []
    seen: set[str] = set()
    for segment in split_command_segments(command):
        executable = extract_executable(segment)
        if not executable or executable in seen:
            continue
        seen.add(executable)
        out.append(executable)
    return out
