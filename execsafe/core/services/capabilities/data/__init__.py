"""
L0 Data — ``__init__.py`` re-exports all data constants.
"""

from execsafe.core.services.capabilities.data.catalog import (  # noqa: F401
    DEFAULT_CAPABILITIES,
)
from execsafe.core.services.capabilities.data.constants import (  # noqa: F401
    AUTONOMY_TRUST_POLICY,
    BINARY_PROBE_TIMEOUT_S,
    BINARY_STATE_TTL_S,
    DEFAULT_RECIPE_TIMEOUT_MS,
    DEFAULT_TRUST_POLICY,
    DESTRUCTIVE_COMMANDS,
    FAILURE_PREVIEW_CHARS,
    INSTALL_FAILURE_COOLDOWN_S,
    OUTPUT_TAIL_CHARS,
    PROTECTED_SYSTEM_ROOTS,
    SHELL_BUILTINS,
    VERIFY_COMMAND_TIMEOUT_S,
)
