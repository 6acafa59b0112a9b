"""
L4 Execution — the only layer that spawns processes or touches files.
"""

from execsafe.core.services.capabilities.execution.checkpoint import (  # noqa: F401
    CheckpointError,
    CheckpointManager,
    RollbackError,
    default_checkpoint_root,
)
from execsafe.core.services.capabilities.execution.subprocess_runner import (  # noqa: F401
    ShellRunner,
    combined_output,
    run_shell,
)
