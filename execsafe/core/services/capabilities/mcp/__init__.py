"""
MCP — server discovery and runtime health tracking.
"""

from execsafe.core.services.capabilities.mcp.discovery import (  # noqa: F401
    DiscoveryResult,
    load_configured_mcp_servers,
    parse_mcp_server_list,
)
from execsafe.core.services.capabilities.mcp.runtime import (  # noqa: F401
    MCPRuntimeTracker,
    server_namespace,
)
