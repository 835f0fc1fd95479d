"""Protocol enums - method names, ``_meta`` keys and error kinds."""

from __future__ import annotations

from enum import Enum


class Method(str, Enum):
    """JSON-RPC methods spoken between component, host and server."""

    # Server
    INITIALIZE = "initialize"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"

    # Component -> host
    UI_MESSAGE = "ui/message"
    UI_OPEN_EXTERNAL = "ui/open-external"
    UI_REQUEST_DISPLAY_MODE = "ui/request-display-mode"
    UI_SET_WIDGET_STATE = "ui/set-widget-state"
    UI_INITIALIZED = "ui/notifications/initialized"
    UI_TEARDOWN = "ui/notifications/teardown"

    # Host -> component
    UI_SET_GLOBALS = "ui/notifications/set-globals"


class MetaKey(str, Enum):
    """Known ``_meta`` extension keys."""

    OUTPUT_TEMPLATE = "openai/outputTemplate"
    WIDGET_ACCESSIBLE = "openai/widgetAccessible"
    INVOKING = "openai/toolInvocation/invoking"
    INVOKED = "openai/toolInvocation/invoked"

    WIDGET_CSP = "openai/widgetCSP"
    WIDGET_DOMAIN = "openai/widgetDomain"
    WIDGET_PREFERS_BORDER = "openai/widgetPrefersBorder"
    WIDGET_DESCRIPTION = "openai/widgetDescription"

    LOCALE = "openai/locale"
    LEGACY_LOCALE = "webplus/i18n"
    LOCALE_UNAVAILABLE = "openai/locale/unavailable"

    WWW_AUTHENTICATE = "mcp/www_authenticate"
    ERROR_KIND = "mcp_apps/errorKind"


class ErrorKind(str, Enum):
    """Stable error categories surfaced to callers."""

    UNKNOWN_TOOL = "unknown_tool"
    NOT_ACCESSIBLE = "not_accessible"
    SCHEMA_VALIDATION = "schema_validation"
    UNAUTHORIZED = "unauthorized"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CLOSED = "closed"
    INVALID_REQUEST = "invalid_request"
    INTERNAL = "internal"


class JsonRpcCode(int, Enum):
    """JSON-RPC 2.0 error codes used by the bridge."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000
    UNAUTHORIZED = -32001
