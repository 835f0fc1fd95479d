# mcp_apps/host/models.py
"""Pydantic models for the host side of a widget session."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from mcp_apps.component.models import DisplayMode, SafeArea, Theme, UserAgent
from mcp_apps.config.defaults import DEFAULT_LOCALE


class AppState(str, Enum):
    """Lifecycle states of a hosted widget."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class AppInfo(BaseModel):
    """Runtime information about a hosted widget instance."""

    tool_name: str = Field(description="Tool whose output template this is")
    resource_uri: str = Field(description="Template URI (ui:// or https://)")
    server_name: str = Field(description="MCP server providing the tool")
    widget_id: str = Field(description="Durable identity of this widget instance")
    state: AppState = AppState.PENDING
    port: int = Field(default=0, description="Local server port for this widget")
    html_content: str = Field(default="", description="Fetched template HTML")
    csp: dict[str, Any] | None = Field(
        default=None, description="openai/widgetCSP from the template metadata"
    )
    prefers_border: bool = False
    domain: str | None = None

    model_config = {"frozen": False}

    @property
    def url(self) -> str:
        """URL to open in the browser."""
        return f"http://localhost:{self.port}"


class HostContext(BaseModel):
    """Environment the host exposes to the widget as globals."""

    theme: Theme = Theme.LIGHT
    locale: str = DEFAULT_LOCALE
    user_agent: UserAgent = Field(default_factory=UserAgent)
    display_mode: DisplayMode = DisplayMode.INLINE
    available_display_modes: list[DisplayMode] = Field(
        default_factory=lambda: [
            DisplayMode.INLINE,
            DisplayMode.PIP,
            DisplayMode.FULLSCREEN,
        ]
    )
    max_height: float | None = None
    safe_area: SafeArea = Field(default_factory=SafeArea)

    model_config = {"frozen": False, "extra": "allow"}

    def to_globals(self) -> dict[str, Any]:
        """Environment part of the globals record, in wire form."""
        return {
            "theme": self.theme.value,
            "locale": self.locale,
            "userAgent": self.user_agent.model_dump(mode="json"),
            "displayMode": self.display_mode.value,
            "maxHeight": self.max_height,
            "safeArea": self.safe_area.model_dump(mode="json"),
        }
