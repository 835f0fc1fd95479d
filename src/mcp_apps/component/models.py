# mcp_apps/component/models.py
"""Pydantic models for the host-supplied globals."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class DisplayMode(str, Enum):
    """Presentation container negotiated with the host."""

    INLINE = "inline"
    PIP = "pip"
    FULLSCREEN = "fullscreen"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class DeviceInfo(BaseModel):
    type: DeviceType = DeviceType.UNKNOWN

    model_config = {"frozen": True, "extra": "allow"}


class Capabilities(BaseModel):
    hover: bool = True
    touch: bool = False

    model_config = {"frozen": True, "extra": "allow"}


class UserAgent(BaseModel):
    """Descriptor of the device the host is rendering on."""

    device: DeviceInfo = Field(default_factory=DeviceInfo)
    capabilities: Capabilities = Field(default_factory=Capabilities)

    model_config = {"frozen": True, "extra": "allow"}

    @property
    def is_mobile(self) -> bool:
        return self.device.type == DeviceType.MOBILE


class SafeAreaInsets(BaseModel):
    top: float = 0
    bottom: float = 0
    left: float = 0
    right: float = 0

    model_config = {"frozen": True}


class SafeArea(BaseModel):
    insets: SafeAreaInsets = Field(default_factory=SafeAreaInsets)

    model_config = {"frozen": True, "extra": "allow"}


class GlobalsRecord(BaseModel):
    """Typed, read-only view of the component's globals.

    Field names follow the host API so a snapshot validates directly.
    """

    theme: Theme = Theme.LIGHT
    userAgent: UserAgent = Field(default_factory=UserAgent)
    locale: str = "en-US"
    maxHeight: float | None = None
    displayMode: DisplayMode = DisplayMode.INLINE
    safeArea: SafeArea = Field(default_factory=SafeArea)
    toolInput: dict[str, Any] = Field(default_factory=dict)
    toolOutput: dict[str, Any] | None = None
    toolResponseMetadata: dict[str, Any] | None = None
    widgetState: dict[str, Any] | None = None

    model_config = {"frozen": True, "extra": "ignore"}
