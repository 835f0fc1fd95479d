# mcp_apps/server/__init__.py
"""Server side: tool and template declaration, auth gating, locale negotiation."""

from __future__ import annotations

from mcp_apps.server.app import AppServer, ServerSession
from mcp_apps.server.auth import (
    AccessToken,
    AuthContext,
    AuthPolicy,
    JWKSTokenVerifier,
    JWTTokenVerifier,
    TokenVerifier,
)
from mcp_apps.server.invocation import InvocationStage, ToolCall, ToolInvocation
from mcp_apps.server.locale import LocaleNegotiator, LocaleResolution, LocaleSource
from mcp_apps.server.models import (
    ComponentTemplateResource,
    SecurityScheme,
    ToolDescriptor,
    ToolResponse,
    WidgetCSP,
    versioned_uri,
)

__all__ = [
    "AccessToken",
    "AppServer",
    "AuthContext",
    "AuthPolicy",
    "ComponentTemplateResource",
    "InvocationStage",
    "JWKSTokenVerifier",
    "JWTTokenVerifier",
    "LocaleNegotiator",
    "LocaleResolution",
    "LocaleSource",
    "SecurityScheme",
    "ServerSession",
    "TokenVerifier",
    "ToolCall",
    "ToolDescriptor",
    "ToolInvocation",
    "ToolResponse",
    "WidgetCSP",
    "versioned_uri",
]
