"""
L1 Domain — ``__init__.py`` re-exports the pure domain functions.

No subprocess calls, no filesystem access, no network calls.
"""

from execsafe.core.services.capabilities.domain.command_analyzer import (  # noqa: F401
    collect_executables,
    extract_executable,
    is_env_assignment,
    split_command_segments,
    tokenize_segment,
)
from execsafe.core.services.capabilities.domain.cooldown import (  # noqa: F401
    InstallCooldown,
)
from execsafe.core.services.capabilities.domain.policy import (  # noqa: F401
    CATASTROPHIC_PATTERNS,
    REWRITES,
    apply_rewrites,
    default_allowed_roots,
    evaluate_command_policy,
    is_catastrophic,
    is_within,
    resolve_path,
)
from execsafe.core.services.capabilities.domain.trust import (  # noqa: F401
    filter_recipes,
    resolve_trust_policy,
)
