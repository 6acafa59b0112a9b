"""
Capability service — package re-exports.

Each symbol lives in its single-responsibility module inside the
appropriate layer (data → domain → detection → execution →
orchestration)::

    from execsafe.core.services.capabilities import create_platform_services
"""

# ── L0: Data ──
from execsafe.core.services.capabilities.data.catalog import (  # noqa: F401
    DEFAULT_CAPABILITIES,
)

# ── L1: Domain ──
from execsafe.core.services.capabilities.domain.command_analyzer import (  # noqa: F401
    collect_executables,
    extract_executable,
    split_command_segments,
)
from execsafe.core.services.capabilities.domain.cooldown import (  # noqa: F401
    InstallCooldown,
)
from execsafe.core.services.capabilities.domain.policy import (  # noqa: F401
    apply_rewrites,
    evaluate_command_policy,
)
from execsafe.core.services.capabilities.domain.trust import (  # noqa: F401
    filter_recipes,
    resolve_trust_policy,
)

# ── L3: Detection ──
from execsafe.core.services.capabilities.detection.binary_probe import (  # noqa: F401
    CoalescingProbe,
    probe_binary,
)
from execsafe.core.services.capabilities.registry import (  # noqa: F401
    CapabilityRegistry,
)

# ── L4: Execution ──
from execsafe.core.services.capabilities.execution.checkpoint import (  # noqa: F401
    CheckpointError,
    CheckpointManager,
    RollbackError,
)
from execsafe.core.services.capabilities.execution.subprocess_runner import (  # noqa: F401
    run_shell,
)

# ── MCP ──
from execsafe.core.services.capabilities.mcp.discovery import (  # noqa: F401
    load_configured_mcp_servers,
)
from execsafe.core.services.capabilities.mcp.runtime import (  # noqa: F401
    MCPRuntimeTracker,
)

# ── L5: Orchestration ──
from execsafe.core.services.capabilities.orchestration.install import (  # noqa: F401
    InstallOrchestrator,
)
from execsafe.core.services.capabilities.orchestration.services import (  # noqa: F401
    PlatformServices,
    create_platform_services,
)
