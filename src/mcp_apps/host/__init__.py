# mcp_apps/host/__init__.py
"""Host side: relays widget requests to the server and pushes globals back.

Serving widgets in a browser needs ``websockets`` and ``httpx``; the
in-process pieces (:class:`AppBridge`, :class:`LoopbackConnection`) do not
open any socket.
"""

from __future__ import annotations

from mcp_apps.host.bridge import AppBridge, coerce_display_mode
from mcp_apps.host.client import (
    InProcessServerClient,
    ServerClient,
    WebSocketServerClient,
)
from mcp_apps.host.loopback import LoopbackConnection
from mcp_apps.host.models import AppInfo, AppState, HostContext
from mcp_apps.host.state import WidgetStateStore

__all__ = [
    "AppBridge",
    "AppInfo",
    "AppState",
    "HostContext",
    "InProcessServerClient",
    "LoopbackConnection",
    "ServerClient",
    "WebSocketServerClient",
    "WidgetStateStore",
    "coerce_display_mode",
]
