# src/mcp_apps/__init__.py
"""mcp-apps: host bridge, state synchronization and tool invocation for MCP Apps.

The component side lives in :mod:`mcp_apps.component`, the MCP server side
in :mod:`mcp_apps.server` and the host that joins them in
:mod:`mcp_apps.host`.
"""

__version__ = "0.1.0"
