"""
L0 Data — Module-level constants.

Pure data. No logic. No imports beyond stdlib.
"""

from __future__ import annotations

# Registry liveness cache.
BINARY_STATE_TTL_S: float = 30.0
BINARY_PROBE_TIMEOUT_S: float = 5.0

# Install orchestration.
INSTALL_FAILURE_COOLDOWN_S: float = 10 * 60.0
DEFAULT_RECIPE_TIMEOUT_MS: int = 180_000
VERIFY_COMMAND_TIMEOUT_S: float = 60.0
FAILURE_PREVIEW_CHARS: int = 280

# Captured output kept per attempt (tail).
OUTPUT_TAIL_CHARS: int = 2000

SHELL_BUILTINS: frozenset[str] = frozenset({
    "alias", "bg", "bind", "break", "builtin", "cd", "command", "compgen",
    "complete", "continue", "declare", "dirs", "disown", "echo", "enable",
    "eval", "exec", "exit", "export", "false", "fg", "getopts", "hash",
    "help", "history", "jobs", "kill", "let", "local", "logout", "popd",
    "printf", "pushd", "pwd", "read", "readonly", "return", "set", "shift",
    "source", "shopt", "test", "times", "trap", "true", "type", "ulimit",
    "umask", "unalias", "unset", "wait", ":", ".", "[", "[[",
})
"""Builtins never resolve to an installable executable."""

DESTRUCTIVE_COMMANDS: frozenset[str] = frozenset({
    "rm", "mv", "cp", "chmod", "chown", "dd", "truncate", "ln",
})

PROTECTED_SYSTEM_ROOTS: tuple[str, ...] = (
    "/etc", "/usr", "/var", "/bin", "/sbin",
    "/lib", "/lib32", "/lib64", "/libx32",
    "/boot", "/root", "/opt",
)
"""Mutations inside these trees are denied unless an allowed root covers them."""

AUTONOMY_TRUST_POLICY: dict[str, str] = {
    "safe": "strict_verified",
    "guided": "verified_fallback",
    "unrestricted": "best_effort",
}
DEFAULT_TRUST_POLICY = "verified_fallback"
