# mcp_apps/errors.py
"""Exception taxonomy shared by the component, host and server layers.

Every error that crosses the wire carries a stable :class:`ErrorKind` and a
JSON-RPC code so clients can tell schema, auth and execution failures apart.
"""

from __future__ import annotations

from typing import Any

from mcp_apps.constants import ErrorKind, JsonRpcCode


class AppsError(Exception):
    """Base class for all mcp-apps errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    code: int = JsonRpcCode.SERVER_ERROR

    def __init__(self, message: str, *, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_error(self) -> dict[str, Any]:
        """Render as a JSON-RPC ``error`` object."""
        return {
            "code": int(self.code),
            "message": self.message,
            "data": {"kind": self.kind.value, **self.data},
        }


class ConfigurationError(AppsError):
    """A tool or resource was declared inconsistently."""


class TemplateImmutableError(ConfigurationError):
    """Different content was published under an already-live template URI."""


class UnknownToolError(AppsError):
    kind = ErrorKind.UNKNOWN_TOOL
    code = JsonRpcCode.INVALID_PARAMS


class SchemaValidationError(AppsError):
    """Tool arguments do not match the declared input schema."""

    kind = ErrorKind.SCHEMA_VALIDATION
    code = JsonRpcCode.INVALID_PARAMS


class Unauthorized(AppsError):
    """Missing, invalid or insufficient credentials for a tool call.

    ``www_authenticate`` is the challenge a client uses to re-run the
    OAuth flow.
    """

    kind = ErrorKind.UNAUTHORIZED
    code = JsonRpcCode.UNAUTHORIZED

    def __init__(
        self,
        message: str,
        *,
        www_authenticate: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, data=data)
        self.www_authenticate = www_authenticate


class ResourceNotFound(AppsError):
    kind = ErrorKind.INVALID_REQUEST
    code = JsonRpcCode.INVALID_PARAMS

    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}", data={"uri": uri})
        self.uri = uri


class ToolExecutionError(AppsError):
    """The tool handler raised while executing."""

    kind = ErrorKind.EXECUTION


class RemoteToolError(AppsError):
    """A component-initiated tool call was rejected.

    ``kind`` tells whether the tool was unknown, not component-accessible,
    or failed remotely (schema, auth or execution).
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.EXECUTION,
        code: int = JsonRpcCode.SERVER_ERROR,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, data=data)
        self.kind = kind
        self.code = code


class BridgeError(AppsError):
    """A capability call failed on the host side."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.INTERNAL,
        code: int = JsonRpcCode.SERVER_ERROR,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, data=data)
        self.kind = kind
        self.code = code


class BridgeTimeoutError(AppsError, TimeoutError):
    """No host response arrived within the call's deadline."""

    kind = ErrorKind.TIMEOUT


class BridgeClosedError(AppsError):
    """The bridge was closed while the call was in flight."""

    kind = ErrorKind.CLOSED


class RequestAlreadyResolved(AppsError):
    """A pending request was resolved a second time."""

    kind = ErrorKind.INVALID_REQUEST
    code = JsonRpcCode.INVALID_REQUEST


class UnsupportedLocale(AppsError):
    """Advisory: no supported locale matches the requested tag."""

    def __init__(self, requested: str) -> None:
        super().__init__(f"Locale {requested!r} is not supported")
        self.requested = requested


def error_from_payload(error: dict[str, Any]) -> tuple[ErrorKind, int, str]:
    """Extract ``(kind, code, message)`` from a JSON-RPC error object."""
    data = error.get("data") if isinstance(error.get("data"), dict) else {}
    try:
        kind = ErrorKind(data.get("kind", ErrorKind.INTERNAL.value))
    except ValueError:
        kind = ErrorKind.INTERNAL
    code = error.get("code", JsonRpcCode.SERVER_ERROR)
    return kind, int(code), str(error.get("message", "Unknown error"))
