"""
L5 Orchestration — install orchestrator and the platform services facade.
"""

from execsafe.core.services.capabilities.orchestration.install import (  # noqa: F401
    InstallOrchestrator,
    should_run_install_in_container,
)
from execsafe.core.services.capabilities.orchestration.services import (  # noqa: F401
    CommandPreparation,
    PlatformServices,
    SandboxService,
    create_platform_services,
)
