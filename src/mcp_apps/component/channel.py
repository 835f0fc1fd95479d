# mcp_apps/component/channel.py
"""Outbound request/response channel from the component to its host.

Every capability call becomes a :class:`PendingRequest` keyed by a
correlation id.  The request settles exactly once: with the matching
response, with a remote error, or with a timeout.  Responses that arrive
after a request settled are discarded.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from mcp_apps.component.models import DisplayMode
from mcp_apps.config.defaults import (
    DEFAULT_CAPABILITY_TIMEOUT,
    DEFAULT_WIDGET_STATE_ADVISORY_CHARS,
)
from mcp_apps.constants import ErrorKind, JsonRpcCode, MetaKey, Method
from mcp_apps.errors import (
    BridgeClosedError,
    BridgeError,
    BridgeTimeoutError,
    RemoteToolError,
    RequestAlreadyResolved,
    error_from_payload,
)

log = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can carry a serialized JSON-RPC message to the host."""

    async def send(self, message: str) -> None: ...


class RequestState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    TIMED_OUT = "timed-out"


@dataclass
class PendingRequest:
    """An outbound call awaiting its single resolution."""

    id: str
    method: str
    params: dict[str, Any]
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)
    state: RequestState = RequestState.PENDING
    resolved_at: float | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is RequestState.PENDING

    def to_message(self) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }

    def fulfill(self, result: Any) -> None:
        self._settle(RequestState.FULFILLED, result=result)

    def reject(self, error: BaseException) -> None:
        self._settle(RequestState.REJECTED, error=error)

    def time_out(self, error: BaseException | None = None) -> None:
        self._settle(
            RequestState.TIMED_OUT,
            error=error or BridgeTimeoutError(f"{self.method} timed out"),
        )

    def _settle(
        self,
        state: RequestState,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        if self.state is not RequestState.PENDING:
            raise RequestAlreadyResolved(
                f"Request {self.id} ({self.method}) already {self.state.value}"
            )
        self.state = state
        self.resolved_at = time.monotonic()
        # wait_for may already have cancelled the future on timeout
        if self.future.done():
            return
        if error is None:
            self.future.set_result(result)
        else:
            self.future.set_exception(error)


class CapabilityChannel:
    """Async capability calls from the component to the host."""

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        accessible_tools: Iterable[str] = (),
        timeout: float = DEFAULT_CAPABILITY_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._accessible_tools: set[str] = set(accessible_tools)
        self.timeout = timeout
        self._pending: dict[str, PendingRequest] = {}
        self._ids = itertools.count(1)
        self._prefix = uuid.uuid4().hex[:8]
        self._persist_lock = asyncio.Lock()
        self._closed = False

    # ------------------------------------------------------------------ #
    #  Wiring                                                             #
    # ------------------------------------------------------------------ #

    def attach(self, transport: Transport) -> None:
        """Attach (or replace) the transport used for outbound calls."""
        self._transport = transport

    @property
    def accessible_tools(self) -> frozenset[str]:
        return frozenset(self._accessible_tools)

    def allow_tools(self, names: Iterable[str]) -> None:
        """Mark tools as component-accessible (from their descriptors)."""
        self._accessible_tools.update(names)

    def can_invoke(self, name: str) -> bool:
        return name in self._accessible_tools

    @property
    def pending(self) -> dict[str, PendingRequest]:
        """In-flight requests keyed by correlation id."""
        return dict(self._pending)

    # ------------------------------------------------------------------ #
    #  Capability calls                                                   #
    # ------------------------------------------------------------------ #

    async def invoke_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Call a server tool through the host.

        Tools that are not marked component-accessible fail here, without
        a round trip.
        """
        if not self.can_invoke(name):
            raise RemoteToolError(
                f"Tool {name!r} is not accessible from the component",
                kind=ErrorKind.NOT_ACCESSIBLE,
                code=JsonRpcCode.INVALID_PARAMS,
            )

        result = await self.request(
            Method.TOOLS_CALL,
            {"name": name, "arguments": arguments or {}},
            timeout=timeout,
        )
        if not isinstance(result, dict):
            raise RemoteToolError(f"Malformed result from {name!r}")
        if result.get("isError"):
            meta = result.get("_meta") or {}
            try:
                kind = ErrorKind(meta.get(MetaKey.ERROR_KIND.value))
            except ValueError:
                kind = ErrorKind.EXECUTION
            raise RemoteToolError(
                _first_text(result) or f"Tool {name!r} failed",
                kind=kind,
                data={"result": result},
            )
        return result

    async def request_display_mode(
        self, mode: DisplayMode | str, *, timeout: float | None = None
    ) -> DisplayMode:
        """Ask for *mode*; the host answers with the mode it granted."""
        requested = DisplayMode(mode)
        result = await self.request(
            Method.UI_REQUEST_DISPLAY_MODE, {"mode": requested.value}, timeout=timeout
        )
        granted = (result or {}).get("mode", requested.value)
        try:
            return DisplayMode(granted)
        except ValueError:
            raise BridgeError(
                f"Host granted unknown display mode {granted!r}",
                kind=ErrorKind.INVALID_REQUEST,
                code=JsonRpcCode.INVALID_PARAMS,
                data={"mode": granted},
            ) from None

    async def send_follow_up(
        self, prompt: str, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Post a follow-up message into the conversation."""
        result = await self.request(
            Method.UI_MESSAGE, {"prompt": prompt}, timeout=timeout
        )
        return result or {}

    async def persist_widget_state(
        self, state: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Replace the durable widget state on the host.

        Calls are serialized so that they resolve in send order and the
        host always ends up with the most recently sent state.
        """
        size = len(json.dumps(state, default=str))
        if size > DEFAULT_WIDGET_STATE_ADVISORY_CHARS:
            log.warning(
                "Widget state is %d chars (advised maximum %d); keep it small",
                size,
                DEFAULT_WIDGET_STATE_ADVISORY_CHARS,
            )
        async with self._persist_lock:
            result = await self.request(
                Method.UI_SET_WIDGET_STATE, {"state": state}, timeout=timeout
            )
        return result or {}

    async def open_external(
        self, href: str, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Ask the host to open *href* outside the sandbox."""
        result = await self.request(
            Method.UI_OPEN_EXTERNAL, {"href": href}, timeout=timeout
        )
        return result or {}

    # ------------------------------------------------------------------ #
    #  Request/response plumbing                                          #
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: Method | str,
        params: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its single resolution."""
        if self._closed:
            raise BridgeClosedError("Capability channel is closed")
        if self._transport is None:
            raise BridgeClosedError("No transport attached to the capability channel")

        method_name = method.value if isinstance(method, Method) else method
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            id=f"{self._prefix}-{next(self._ids)}",
            method=method_name,
            params=params,
            future=loop.create_future(),
        )
        self._pending[pending.id] = pending
        deadline = timeout if timeout is not None else self.timeout

        try:
            await self._transport.send(json.dumps(pending.to_message()))
            return await asyncio.wait_for(pending.future, deadline)
        except asyncio.TimeoutError:
            if pending.is_pending:
                pending.time_out()
            log.warning(
                "%s (%s) timed out after %ss", method_name, pending.id, deadline
            )
            raise BridgeTimeoutError(
                f"{method_name} timed out after {deadline}s"
            ) from None
        except asyncio.CancelledError:
            if pending.is_pending:
                pending.reject(BridgeClosedError(f"{method_name} was cancelled"))
            raise
        except (OSError, ConnectionError) as e:
            if pending.is_pending:
                pending.reject(BridgeError(str(e)))
            raise BridgeError(f"Could not send {method_name}: {e}") from e
        finally:
            self._pending.pop(pending.id, None)

    async def notify(self, method: Method | str, params: dict[str, Any] | None = None) -> None:
        """Send a notification (no response expected)."""
        if self._transport is None or self._closed:
            return
        method_name = method.value if isinstance(method, Method) else method
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method_name}
        if params:
            message["params"] = params
        await self._transport.send(json.dumps(message))

    def handle_response(self, message: dict[str, Any]) -> bool:
        """Settle the request matching *message*.

        Returns False when the id is unknown or already settled; such
        responses are discarded.
        """
        msg_id = message.get("id")
        pending = self._pending.pop(str(msg_id), None) if msg_id is not None else None
        if pending is None or not pending.is_pending:
            log.debug("Discarding response for settled or unknown request %r", msg_id)
            return False

        error = message.get("error")
        if isinstance(error, dict):
            kind, code, text = error_from_payload(error)
            exc_cls = RemoteToolError if pending.method == Method.TOOLS_CALL else BridgeError
            pending.reject(
                exc_cls(text, kind=kind, code=code, data=error.get("data") or {})
            )
        else:
            pending.fulfill(message.get("result"))
        return True

    def close(self) -> None:
        """Reject every in-flight request and refuse new ones."""
        self._closed = True
        for pending in list(self._pending.values()):
            if pending.is_pending:
                pending.reject(BridgeClosedError(f"{pending.method} aborted: bridge closed"))
        self._pending.clear()

    @property
    def closed(self) -> bool:
        return self._closed


def _first_text(result: dict[str, Any]) -> str:
    for block in result.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            return str(block.get("text", ""))
    return ""
