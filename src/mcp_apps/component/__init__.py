# mcp_apps/component/__init__.py
"""Component side of the host bridge: globals, events and capability calls."""

from __future__ import annotations

from mcp_apps.component.bridge import HostBridge
from mcp_apps.component.channel import CapabilityChannel, PendingRequest, RequestState
from mcp_apps.component.events import EventBridge, Subscription
from mcp_apps.component.globals import UNSET, GlobalKey, GlobalStateStore
from mcp_apps.component.models import DisplayMode, GlobalsRecord, Theme, UserAgent

__all__ = [
    "UNSET",
    "CapabilityChannel",
    "DisplayMode",
    "EventBridge",
    "GlobalKey",
    "GlobalStateStore",
    "GlobalsRecord",
    "HostBridge",
    "PendingRequest",
    "RequestState",
    "Subscription",
    "Theme",
    "UserAgent",
]
