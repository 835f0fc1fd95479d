# mcp_apps/server/invocation.py
"""Server-side execution of a single ``tools/call``.

Each call moves through ``received -> auth_check -> execute -> respond``
and ends in ``completed`` or ``failed``.  Argument validation happens before
authorization so malformed calls are rejected without touching the
token verifier; the handler never sees an unauthorized call.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from jsonschema.validators import validator_for
from pydantic import ValidationError

from mcp_apps.config.defaults import DEFAULT_STRUCTURED_CONTENT_ADVISORY_CHARS
from mcp_apps.errors import (
    AppsError,
    SchemaValidationError,
    ToolExecutionError,
    UnknownToolError,
)
from mcp_apps.server.auth import AuthContext, AuthPolicy
from mcp_apps.server.models import ToolResponse
from mcp_apps.server.registry import RegisteredTool, ToolRegistry

log = logging.getLogger(__name__)


class InvocationStage(str, Enum):
    RECEIVED = "received"
    AUTH_CHECK = "auth_check"
    EXECUTE = "execute"
    RESPOND = "respond"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ToolCall:
    """What a tool handler receives."""

    name: str
    arguments: dict[str, Any]
    auth: AuthContext = field(default_factory=AuthContext)
    locale: str | None = None
    session_id: str | None = None


@dataclass
class InvocationRecord:
    """Trace of one call through the stages, kept for logging and tests."""

    name: str
    stage: InvocationStage = InvocationStage.RECEIVED
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None
    error: AppsError | None = None

    def advance(self, stage: InvocationStage) -> None:
        log.debug("tools/call %s: %s -> %s", self.name, self.stage.value, stage.value)
        self.stage = stage

    def finish(self, error: AppsError | None = None) -> None:
        self.error = error
        self.finished_at = time.monotonic()
        self.advance(InvocationStage.FAILED if error else InvocationStage.COMPLETED)

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


def validate_arguments(tool: RegisteredTool, arguments: dict[str, Any]) -> None:
    """Check *arguments* against the tool's declared input schema.

    Raises:
        SchemaValidationError: with one entry per violation in ``data.errors``.
    """
    schema = tool.descriptor.input_schema
    validator = validator_for(schema)(schema)
    errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.path))
    if not errors:
        return
    details = [
        {"path": "/".join(str(p) for p in error.path), "message": error.message}
        for error in errors
    ]
    raise SchemaValidationError(
        f"Invalid arguments for {tool.name}: {errors[0].message}",
        data={"tool": tool.name, "errors": details},
    )


def coerce_response(name: str, result: Any) -> ToolResponse:
    """Accept a :class:`ToolResponse`, a wire-shaped dict or plain text."""
    if isinstance(result, ToolResponse):
        return result
    try:
        if isinstance(result, str):
            return ToolResponse.text(result)
        if isinstance(result, dict):
            return ToolResponse(
                content=result.get("content") or [],
                structured_content=result.get("structuredContent"),
                meta=result.get("_meta"),
                is_error=bool(result.get("isError", False)),
            )
    except ValidationError as e:
        raise ToolExecutionError(f"Tool {name} returned an invalid response: {e}") from e
    raise ToolExecutionError(
        f"Tool {name} returned unsupported type {type(result).__name__}"
    )


class ToolInvocation:
    """Runs tool calls against a registry under an auth policy."""

    def __init__(
        self,
        registry: ToolRegistry,
        policy: AuthPolicy,
        *,
        structured_advisory_chars: int = DEFAULT_STRUCTURED_CONTENT_ADVISORY_CHARS,
    ) -> None:
        self.registry = registry
        self.policy = policy
        self.structured_advisory_chars = structured_advisory_chars

    async def run(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        authorization: str | None = None,
        locale: str | None = None,
        session_id: str | None = None,
    ) -> ToolResponse:
        """Execute one call end to end.

        Raises:
            UnknownToolError: *name* is not registered.
            SchemaValidationError: arguments do not match the input schema.
            Unauthorized: the tool's schemes are not satisfied.
            ToolExecutionError: the handler raised or returned garbage.
        """
        record = InvocationRecord(name=name)
        try:
            response = await self._run(
                record, name, arguments or {}, authorization, locale, session_id
            )
        except AppsError as e:
            record.finish(e)
            log.info("tools/call %s failed (%s): %s", name, e.kind.value, e.message)
            raise
        record.finish()
        log.debug("tools/call %s completed in %.3fs", name, record.duration or 0.0)
        return response

    async def _run(
        self,
        record: InvocationRecord,
        name: str,
        arguments: dict[str, Any],
        authorization: str | None,
        locale: str | None,
        session_id: str | None,
    ) -> ToolResponse:
        tool = self.registry.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}", data={"tool": name})
        validate_arguments(tool, arguments)

        record.advance(InvocationStage.AUTH_CHECK)
        auth = await self.policy.check(tool.descriptor.security_schemes, authorization)

        record.advance(InvocationStage.EXECUTE)
        call = ToolCall(
            name=name,
            arguments=arguments,
            auth=auth,
            locale=locale,
            session_id=session_id,
        )
        try:
            result = tool.handler(call)
            if inspect.isawaitable(result):
                result = await result
        except AppsError:
            raise
        except Exception as e:
            log.exception("Tool %s raised", name)
            raise ToolExecutionError(f"Tool {name} failed: {e}", data={"tool": name}) from e

        record.advance(InvocationStage.RESPOND)
        response = coerce_response(name, result)
        if response.structured_size > self.structured_advisory_chars:
            log.warning(
                "Tool %s returned %d chars of structuredContent; the model reads it "
                "verbatim, keep it under %d",
                name,
                response.structured_size,
                self.structured_advisory_chars,
            )
        return response
