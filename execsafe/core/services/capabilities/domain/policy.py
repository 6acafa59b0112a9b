"""
L1 Domain — Command execution policy (pure).

Evaluates a full command string and returns a ``PolicyDecision``:

    1. blank command                     → deny
    2. catastrophic pattern              → deny (hard, always wins)
    3. destructive op on a protected path → deny
    4. unattended-install rewrites       → rewrite
    5. otherwise                         → allow

No filesystem access: paths are resolved lexically against ``cwd``.
Safe to call concurrently from any thread.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import tempfile
from dataclasses import dataclass
from typing import Callable, Iterable

from execsafe.core.models.policy import PolicyDecision
from execsafe.core.services.capabilities.data.constants import (
    DESTRUCTIVE_COMMANDS,
    PROTECTED_SYSTEM_ROOTS,
)
from execsafe.core.services.capabilities.domain.command_analyzer import (
    is_env_assignment,
    split_command_segments,
    tokenize_segment,
)

logger = logging.getLogger(__name__)

_RAW_DISK = r"/dev/(?:sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d+n\d+|mmcblk\d+|disk\d+)"

# Start of a command word, optionally behind sudo and its flags.
_CMD_START = r"(?:^|[;&|(\n]\s*)(?:sudo\s+(?:-\S+\s+)*)?"

CATASTROPHIC_PATTERNS: tuple[re.Pattern[str], ...] = (
    # rm -rf / (and -fr, -r -f, --no-preserve-root, /*) at end or before an operator
    re.compile(r"(^|[\s;&|(])rm\s+(-[a-z]*\s+)*-[a-z]*(rf|fr)[a-z]*\s+(--no-preserve-root\s+)?/\*?\s*($|[;&|)])", re.I),
    re.compile(r"(^|[\s;&|(])rm\s+-r\s+-f\s+/\*?\s*($|[;&|)])", re.I),
    re.compile(r"(^|[\s;&|(])rm\s+-f\s+-r\s+/\*?\s*($|[;&|)])", re.I),
    # fork bomb
    re.compile(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;"),
    # filesystem creation / raw disk writes
    re.compile(_CMD_START + r"mkfs(\.[a-z0-9]+)?\b", re.I),
    re.compile(r"\bdd\b[^;&|]*\bof=" + _RAW_DISK, re.I),
    re.compile(r">\s*" + _RAW_DISK + r"\b", re.I),
    # immediate power state changes
    re.compile(_CMD_START + r"shutdown\b[^;&|]*\b(now|\+0)\b", re.I),
    re.compile(_CMD_START + r"(reboot|poweroff|halt)\b", re.I),
    re.compile(_CMD_START + r"init\s+[06]\b", re.I),
)
"""Hard safety invariants.  A match denies regardless of cwd/allowed roots.

Textual only.  Invocations behind wrappers and inside ``sh -c`` bodies
are caught by ``is_catastrophic``.
"""

# ── Wrapper unwrapping ──────────────────────────────────────────

# Wrapper → option flags that consume the following token.
_WRAPPERS: dict[str, frozenset[str]] = {
    "sudo": frozenset({"-u", "-g", "-C", "-D", "-h", "-p", "-r", "-t", "-U"}),
    "doas": frozenset({"-u", "-C"}),
    "env": frozenset({"-u", "-C", "-S"}),
    "nice": frozenset({"-n"}),
    "ionice": frozenset({"-c", "-n", "-p"}),
    "nohup": frozenset(),
    "time": frozenset(),
    "command": frozenset(),
    "exec": frozenset({"-a"}),
    "stdbuf": frozenset(),
    "timeout": frozenset({"-s", "-k"}),
}


def _command_words(segment: str) -> list[str]:
    """Tokens of a segment starting at the real command.

    Drops env assignments, a leading ``(``, and launcher wrappers
    (``sudo``, ``env``, ``nice`` …) with their options, so
    ``sudo -u root rm -rf /etc`` yields ``["rm", "-rf", "/etc"]``.
    """
    tokens = tokenize_segment(segment)
    if tokens:
        tokens[0] = tokens[0].lstrip("(")
    idx = 0
    while idx < len(tokens):
        token = tokens[idx]
        if not token or is_env_assignment(token):
            idx += 1
            continue
        wrapper = posixpath.basename(token)
        if wrapper not in _WRAPPERS:
            break
        idx += 1
        takes_arg = _WRAPPERS[wrapper]
        while idx < len(tokens) and (tokens[idx].startswith("-") or is_env_assignment(tokens[idx])):
            if tokens[idx] == "--":
                idx += 1
                break
            if tokens[idx] in takes_arg:
                idx += 1
            idx += 1
        if wrapper == "timeout" and idx < len(tokens):
            idx += 1  # duration
    return tokens[idx:]


_SHELLS = frozenset({"sh", "bash", "zsh", "dash", "ksh"})
_MAX_SHELL_DEPTH = 3


def _shell_command_body(words: list[str]) -> str | None:
    """The script passed to ``bash -c`` / ``sh -lc`` …, if any."""
    if posixpath.basename(words[0]) not in _SHELLS:
        return None
    for idx, arg in enumerate(words[1:], start=1):
        if arg.startswith("--"):
            continue
        if not arg.startswith("-"):
            return None
        if "c" in arg[1:]:
            return words[idx + 1] if idx + 1 < len(words) else None
    return None


# ── Catastrophic invocations ────────────────────────────────────

_POWER_COMMANDS = frozenset({"reboot", "poweroff", "halt"})
_SYSTEMCTL_POWER_VERBS = frozenset({"reboot", "poweroff", "halt", "kexec"})


def _catastrophic_invocation(words: list[str]) -> bool:
    executable = posixpath.basename(words[0]).rstrip(")")
    args = words[1:]
    if executable == "mkfs" or executable.startswith("mkfs."):
        return True
    if executable in _POWER_COMMANDS:
        return True
    if executable == "shutdown":
        return any(arg in ("now", "+0") for arg in args)
    if executable == "systemctl":
        return any(arg in _SYSTEMCTL_POWER_VERBS for arg in args)
    if executable in ("init", "telinit"):
        return bool(args) and args[0] in ("0", "6")
    if executable == "rm":
        return "--no-preserve-root" in args
    return False


def is_catastrophic(command: str, _depth: int = 0) -> bool:
    """Whether ``command`` hits a hard safety invariant.

    Checks ``CATASTROPHIC_PATTERNS`` on the raw text, then each
    segment's real invocation after wrapper unwrapping, so
    ``doas reboot`` and ``systemctl poweroff`` are caught too.
    Scripts run through ``bash -c`` are checked the same way.
    """
    if any(pattern.search(command) for pattern in CATASTROPHIC_PATTERNS):
        return True
    for segment in split_command_segments(command):
        words = _command_words(segment)
        if not words:
            continue
        if _catastrophic_invocation(words):
            return True
        body = _shell_command_body(words)
        if body and _depth < _MAX_SHELL_DEPTH and is_catastrophic(body, _depth + 1):
            return True
    return False


# ── Path resolution ─────────────────────────────────────────────

_REDIRECT_ONLY_RE = re.compile(r"^\d*[<>]+&?\d*-?$")
_REDIRECT_PREFIX_RE = re.compile(r"^\d*[<>]+&?")


def _path_candidates(args: Iterable[str], executable: str) -> list[str]:
    """Non-flag arguments that may name a filesystem path."""
    out: list[str] = []
    after_dashdash = False
    for arg in args:
        if not arg:
            continue
        if arg == "--" and not after_dashdash:
            after_dashdash = True
            continue
        if arg.startswith("-") and not after_dashdash:
            continue
        if _REDIRECT_ONLY_RE.match(arg):
            continue
        if arg[0] in "<>" or (arg[0].isdigit() and _REDIRECT_PREFIX_RE.match(arg)):
            arg = _REDIRECT_PREFIX_RE.sub("", arg)
            if not arg:
                continue
        if executable == "dd" and "=" in arg:
            key, _, value = arg.partition("=")
            if key not in ("if", "of"):
                continue
            arg = value
        out.append(arg)
    return out


def resolve_path(token: str, cwd: str, home: str | None = None) -> str:
    """Lexically resolve a path token against ``cwd``.

    Expands ``~`` and ``$VAR``; does not follow symlinks or touch disk.
    """
    home = home or os.path.expanduser("~")
    expanded = os.path.expandvars(token)
    if expanded == "~" or expanded.startswith("~/"):
        expanded = home + expanded[1:]
    if not posixpath.isabs(expanded):
        expanded = posixpath.join(cwd, expanded)
    normalized = posixpath.normpath(expanded)
    # POSIX keeps a leading "//"; collapse it.
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def is_within(path: str, root: str) -> bool:
    """Segment-boundary containment: ``/etc2`` is not within ``/etc``."""
    root = posixpath.normpath(root)
    if root == "/":
        return path.startswith("/")
    return path == root or path.startswith(root + "/")


@dataclass(frozen=True)
class _UnsafeMutation:
    executable: str
    path: str


def find_unsafe_path_mutation(
    command: str,
    cwd: str,
    allowed_roots: Iterable[str],
    _depth: int = 0,
) -> _UnsafeMutation | None:
    """First destructive operation that targets a protected path, if any."""
    home = os.path.expanduser("~")
    allowed_roots = list(allowed_roots)
    allowed = [resolve_path(r, cwd, home) for r in allowed_roots if r]

    for segment in split_command_segments(command):
        words = _command_words(segment)
        if not words:
            continue
        body = _shell_command_body(words)
        if body and _depth < _MAX_SHELL_DEPTH:
            nested = find_unsafe_path_mutation(body, cwd, allowed_roots, _depth + 1)
            if nested:
                return nested
            continue
        executable = posixpath.basename(words[0])
        if executable not in DESTRUCTIVE_COMMANDS:
            continue

        for token in _path_candidates(words[1:], executable):
            resolved = resolve_path(token, cwd, home)
            if any(is_within(resolved, root) for root in allowed):
                continue
            if resolved == "/" or any(is_within(resolved, root) for root in PROTECTED_SYSTEM_ROOTS):
                return _UnsafeMutation(executable=executable, path=resolved)
    return None


# ── Rewrites ────────────────────────────────────────────────────
#
# Rewrites act on each invocation at the start of a segment, so
# ``cd /tmp && apt-get install jq`` is fixed where apt runs and a
# ``pip`` inside ``uv pip install`` is left alone.

_INVOCATION_START = (
    r"(?P<lead>(?:^|[;&|(\n])\s*)"
    r"(?P<env>(?:[A-Za-z_][A-Za-z0-9_]*=\S*\s+)*)"
    r"(?P<sudo>sudo\s+(?:-\S+\s+)*)?"
    r"(?P<env2>(?:[A-Za-z_][A-Za-z0-9_]*=\S*\s+)*)"
)
_APT_INSTALL_RE = re.compile(
    _INVOCATION_START + r"(?P<apt>apt(?:-get)?)(?P<verb>\s+install\b)(?P<rest>[^;&|\n)]*)"
)
_PIP_INSTALL_RE = re.compile(_INVOCATION_START + r"(?P<pip>pip3?)(?P<verb>\s+install\b)")
_SUDO_NONINTERACTIVE_RE = re.compile(r"(?<!\S)(?:--non-interactive|-[A-Za-z]*n[A-Za-z]*)(?!\S)")
_ASSUME_YES_RE = re.compile(r"(?<!\S)(?:--yes|--assume-yes|-[a-z]*y[a-z]*)(?!\S)")

_APT_PARTS = ("lead", "env", "sudo", "env2", "apt", "verb", "rest")


def _rebuild(match: re.Match[str], **changes: str) -> str:
    parts = {name: match.group(name) or "" for name in _APT_PARTS}
    parts.update(changes)
    return "".join(parts[name] for name in _APT_PARTS)


def _rewrite_sudo_apt(command: str) -> str:
    def _fix(m: re.Match[str]) -> str:
        sudo = m.group("sudo")
        if not sudo or _SUDO_NONINTERACTIVE_RE.search(sudo):
            return m.group(0)
        return _rebuild(m, sudo="sudo -n " + sudo[4:].lstrip(), apt="apt-get")

    return _APT_INSTALL_RE.sub(_fix, command)


def _rewrite_apt_frontend(command: str) -> str:
    def _fix(m: re.Match[str]) -> str:
        # sudo resets the environment, so only assignments after it count.
        visible = m.group("env2") if m.group("sudo") else m.group("env") + m.group("env2")
        if "DEBIAN_FRONTEND=" in visible:
            return m.group(0)
        return _rebuild(m, env2=m.group("env2") + "DEBIAN_FRONTEND=noninteractive ")

    return _APT_INSTALL_RE.sub(_fix, command)


def _rewrite_apt_assume_yes(command: str) -> str:
    def _fix(m: re.Match[str]) -> str:
        if _ASSUME_YES_RE.search(m.group("rest")):
            return m.group(0)
        return _rebuild(m, apt="apt-get", verb=" install -y")

    return _APT_INSTALL_RE.sub(_fix, command)


def _rewrite_pip_module(command: str) -> str:
    return _PIP_INSTALL_RE.sub(
        lambda m: m.group(0)[: m.start("pip") - m.start()] + "python3 -m pip" + m.group("verb"),
        command,
    )


REWRITES: tuple[tuple[str, Callable[[str], str]], ...] = (
    ("sudo_noninteractive", _rewrite_sudo_apt),
    ("apt_noninteractive_frontend", _rewrite_apt_frontend),
    ("apt_assume_yes", _rewrite_apt_assume_yes),
    ("pip_via_interpreter", _rewrite_pip_module),
)
"""Ordered, additive textual rewrites.  Each sees the previous output."""


def apply_rewrites(command: str) -> tuple[str, list[str]]:
    """Apply every rewrite in order.

    Returns:
        ``(rewritten_command, names_of_rewrites_that_changed_it)``.
    """
    applied: list[str] = []
    current = command
    for name, rewrite in REWRITES:
        updated = rewrite(current)
        if updated != current:
            applied.append(name)
            current = updated
    return current, applied


# ── Entry point ─────────────────────────────────────────────────


def default_allowed_roots() -> list[str]:
    """Home directory and the system temp dir."""
    return [os.path.expanduser("~"), tempfile.gettempdir()]


def evaluate_command_policy(
    command: str,
    *,
    cwd: str | None = None,
    allowed_roots: Iterable[str] | None = None,
) -> PolicyDecision:
    """Evaluate ``command`` and decide allow / rewrite / deny.

    Args:
        command: Raw command string as issued by the agent.
        cwd: Working directory the command would run in
            (default: home directory).
        allowed_roots: Trees where destructive operations are always
            permitted, even inside a protected system root
            (default: home directory and the system temp dir).

    Returns:
        A ``PolicyDecision``.  Catastrophic denies carry
        ``hard_violation=True``.
    """
    trimmed = (command or "").strip()
    if not trimmed:
        return PolicyDecision.deny("Empty command is not executable.")

    if is_catastrophic(trimmed):
        logger.warning("Blocked catastrophic command: %s", trimmed)
        return PolicyDecision.deny(
            "Command matches catastrophic denylist pattern.",
            detail="Hard safety invariant.",
            hard_violation=True,
        )

    effective_cwd = cwd or os.path.expanduser("~")
    roots = list(allowed_roots) if allowed_roots is not None else default_allowed_roots()
    unsafe = find_unsafe_path_mutation(trimmed, effective_cwd, roots)
    if unsafe:
        logger.warning(
            "Blocked %s on protected path %s (cwd=%s)", unsafe.executable, unsafe.path, effective_cwd,
        )
        return PolicyDecision.deny(
            f"Blocked destructive operation outside allowed roots: "
            f"{unsafe.executable} on protected path {unsafe.path}",
            detail=f"Allowed roots: {', '.join(roots) or '(none)'}",
        )

    rewritten, applied = apply_rewrites(trimmed)
    if applied:
        logger.info("Policy rewrite (%s): %s → %s", ", ".join(applied), trimmed, rewritten)
        return PolicyDecision.rewrite(
            rewritten,
            "Applied non-blocking command rewrite for unattended execution.",
            rewrites=applied,
        )

    return PolicyDecision.allow()
