"""Default configuration values - no more magic numbers!

All default values should be defined here, not hardcoded in the code.
"""

from __future__ import annotations


# ================================================================
# Timeout Defaults (in seconds)
# ================================================================

DEFAULT_CAPABILITY_TIMEOUT = 30.0
"""Deadline for a component -> host capability call (tool, display mode, ...)."""

DEFAULT_APP_TOOL_TIMEOUT = 60.0
"""Deadline for the host when proxying a widget tool call to the server."""

DEFAULT_APP_INIT_TIMEOUT = 30.0
"""Seconds the host page waits for the widget to report it is initialized."""

DEFAULT_HTTP_REQUEST_TIMEOUT = 30.0
"""Default timeout for HTTP requests (template fetch, OIDC discovery)."""


# ================================================================
# Size Advisories
# ================================================================

DEFAULT_WIDGET_STATE_ADVISORY_CHARS = 16_000
"""Serialized widget state above this size logs a warning (~4k tokens)."""

DEFAULT_STRUCTURED_CONTENT_ADVISORY_CHARS = 16_000
"""Serialized structuredContent above this size logs a warning."""

DEFAULT_PENDING_NOTIFICATION_LIMIT = 50
"""Host notifications queued while a widget is disconnected."""


# ================================================================
# Locale Defaults
# ================================================================

DEFAULT_LOCALE = "en"
"""Server default locale when negotiation finds no match."""

DEFAULT_SUPPORTED_LOCALES = ("en",)
"""Locales a server supports when none are configured."""


# ================================================================
# Server Defaults
# ================================================================

DEFAULT_SERVER_NAME = "mcp-apps"
"""Server name reported by ``initialize``."""

DEFAULT_SERVER_VERSION = "0.1.0"
"""Server version reported by ``initialize``."""

DEFAULT_PROTOCOL_VERSION = "2025-06-18"
"""MCP protocol revision spoken by the app server."""

DEFAULT_SERVER_HOST = "localhost"
"""Interface the websocket app server binds to."""

DEFAULT_SERVER_PORT = 8765
"""Port the websocket app server binds to."""

DEFAULT_MAX_CONCURRENT_CALLS_PER_SESSION = 0
"""Per-session tool call limit; 0 means calls run fully in parallel."""

DEFAULT_TOKEN_LEEWAY = 30
"""Clock skew (seconds) tolerated when checking token expiry."""


# ================================================================
# Host Defaults
# ================================================================

DEFAULT_APP_HOST_PORT_START = 9470
"""First port tried by the local widget host server."""

DEFAULT_APP_MAX_CONCURRENT = 10
"""Maximum number of widgets hosted at once."""

DEFAULT_APP_AUTO_OPEN_BROWSER = True
"""Open the user's browser when a widget is launched."""


# ================================================================
# Logging Defaults
# ================================================================

DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
"""Rotate the log file at this size."""

DEFAULT_LOG_BACKUP_COUNT = 3
"""Number of rotated log files kept."""


# ================================================================
# Protocol Constants
# ================================================================

APP_NAME = "mcp-apps"
"""Application name."""

SKYBRIDGE_MIME_TYPE = "text/html+skybridge"
"""MIME type of widget templates rendered by the host."""

HTML_MIME_TYPE = "text/html"
"""Plain HTML templates are accepted as well."""

WELL_KNOWN_PROTECTED_RESOURCE = "/.well-known/oauth-protected-resource"
"""Resource-server metadata path."""

WELL_KNOWN_OPENID_CONFIGURATION = "/.well-known/openid-configuration"
"""Authorization-server discovery path."""

MCP_ENDPOINT_PATH = "/mcp"
"""Websocket path of the JSON-RPC endpoint."""
