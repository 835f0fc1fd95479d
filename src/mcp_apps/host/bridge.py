# mcp_apps/host/bridge.py
"""Host-side protocol handler for one widget instance.

Receives JSON-RPC requests from the widget (over the host page websocket
or an in-process loopback), enforces host policy, relays tool calls to the
MCP server and pushes ``ui/notifications/set-globals`` back down.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Any
from urllib.parse import urlparse

from mcp_apps.component.models import DisplayMode
from mcp_apps.config.defaults import (
    DEFAULT_APP_TOOL_TIMEOUT,
    DEFAULT_PENDING_NOTIFICATION_LIMIT,
)
from mcp_apps.constants import ErrorKind, JsonRpcCode, Method, MetaKey
from mcp_apps.errors import AppsError
from mcp_apps.host.client import ServerClient
from mcp_apps.host.models import AppInfo, AppState, HostContext
from mcp_apps.host.state import WidgetStateStore
from mcp_apps.server.models import VALID_TOOL_NAME

log = logging.getLogger(__name__)

_EXTERNAL_SCHEMES = ("http", "https")


def coerce_display_mode(requested: DisplayMode, context: HostContext) -> DisplayMode:
    """Mode the host actually grants for *requested*.

    Mobile hosts have no picture-in-picture and promote it to fullscreen;
    anything the host does not offer falls back to inline.
    """
    granted = requested
    if granted is DisplayMode.PIP and context.user_agent.is_mobile:
        granted = DisplayMode.FULLSCREEN
    if granted not in context.available_display_modes:
        granted = DisplayMode.INLINE
    return granted


def _error(msg_id: Any, code: int, message: str, kind: ErrorKind) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": {
                "code": int(code),
                "message": message,
                "data": {"kind": kind.value},
            },
        }
    )


def _result(msg_id: Any, result: dict[str, Any]) -> str:
    return json.dumps({"jsonrpc": "2.0", "id": msg_id, "result": result})


class AppBridge:
    """Bridges widget requests to host policy and MCP server tool calls."""

    def __init__(
        self,
        app_info: AppInfo,
        client: ServerClient,
        *,
        context: HostContext | None = None,
        state_store: WidgetStateStore | None = None,
        tool_timeout: float = DEFAULT_APP_TOOL_TIMEOUT,
    ) -> None:
        self.app_info = app_info
        self.client = client
        self.context = context or HostContext()
        self.state_store = state_store or WidgetStateStore()
        self.tool_timeout = tool_timeout
        self.follow_ups: list[str] = []
        self.opened_urls: list[str] = []
        self._ws: Any = None
        self._pending_notifications: deque[str] = deque(
            maxlen=DEFAULT_PENDING_NOTIFICATION_LIMIT
        )
        self._initial_globals: dict[str, Any] = {}
        self._accessible_tools: set[str] | None = None

    # ------------------------------------------------------------------ #
    #  Connection lifecycle                                               #
    # ------------------------------------------------------------------ #

    def set_ws(self, ws: Any) -> None:
        """Attach the active connection, closing any previous one."""
        old = self._ws
        self._ws = ws
        self.app_info.state = AppState.INITIALIZING
        if old is not None and old is not ws:
            asyncio.ensure_future(old.close())
        log.info(
            "Connection set for widget %s (state -> INITIALIZING)",
            self.app_info.widget_id,
        )

    async def drain_pending(self) -> None:
        """Send notifications that queued while disconnected."""
        while self._pending_notifications and self._ws:
            msg = self._pending_notifications.popleft()
            try:
                await self._ws.send(msg)
            except (OSError, ConnectionError):
                self._pending_notifications.appendleft(msg)
                break

    @property
    def pending_notifications(self) -> int:
        return len(self._pending_notifications)

    def set_initial_tool_result(
        self, result: dict[str, Any], arguments: dict[str, Any] | None = None
    ) -> None:
        """Deliver *result* once the widget reports it is initialized."""
        self._initial_globals = {
            "toolInput": arguments or {},
            **self._tool_output_globals(result),
        }

    # ------------------------------------------------------------------ #
    #  Inbound: widget -> host                                            #
    # ------------------------------------------------------------------ #

    async def handle_message(self, raw: str) -> str | None:
        """Handle one JSON-RPC message from the widget.

        Returns the response string, or ``None`` for notifications.
        """
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Invalid JSON from widget: %s", raw[:200])
            return None

        method = msg.get("method")
        msg_id = msg.get("id")
        params = msg.get("params") or {}

        if method == Method.TOOLS_CALL.value:
            return await self._handle_tool_call(msg_id, params)
        if method == Method.RESOURCES_READ.value:
            return await self._handle_resource_read(msg_id, params)
        if method == Method.UI_MESSAGE.value:
            return self._handle_follow_up(msg_id, params)
        if method == Method.UI_OPEN_EXTERNAL.value:
            return self._handle_open_external(msg_id, params)
        if method == Method.UI_REQUEST_DISPLAY_MODE.value:
            return self._handle_display_mode(msg_id, params)
        if method == Method.UI_SET_WIDGET_STATE.value:
            return self._handle_widget_state(msg_id, params)

        if method == Method.UI_INITIALIZED.value:
            self.app_info.state = AppState.READY
            log.info("Widget %s initialized", self.app_info.widget_id)
            await self.push_globals(self._initial_snapshot())
            return None

        if method == Method.UI_TEARDOWN.value:
            self.app_info.state = AppState.CLOSED
            log.info("Widget %s teardown", self.app_info.widget_id)
            return None

        if msg_id is None:
            return None

        return _error(
            msg_id,
            JsonRpcCode.METHOD_NOT_FOUND,
            f"Unknown method: {method}",
            ErrorKind.INVALID_REQUEST,
        )

    def _initial_snapshot(self) -> dict[str, Any]:
        snapshot = {**self.context.to_globals(), **self._initial_globals}
        self._initial_globals = {}
        state = self.state_store.get(self.app_info.widget_id)
        if state is not None:
            snapshot["widgetState"] = state
        return snapshot

    # ------------------------------------------------------------------ #
    #  Handler: tools/call                                                #
    # ------------------------------------------------------------------ #

    async def _is_accessible(self, name: str) -> bool:
        if self._accessible_tools is None:
            tools = await self.client.list_tools()
            self._accessible_tools = {
                t["name"]
                for t in tools
                if (t.get("_meta") or {}).get(MetaKey.WIDGET_ACCESSIBLE.value)
            }
        return name in self._accessible_tools

    async def _handle_tool_call(self, msg_id: Any, params: dict[str, Any]) -> str:
        """Relay a widget-initiated tool call to the MCP server."""
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}

        if not tool_name or not VALID_TOOL_NAME.match(tool_name):
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                f"Invalid tool name: {tool_name!r}",
                ErrorKind.INVALID_REQUEST,
            )

        try:
            accessible = await self._is_accessible(tool_name)
        except AppsError as e:
            log.error(
                "Could not list tools for widget %s: %s", self.app_info.widget_id, e
            )
            return _error(msg_id, e.code, e.message, e.kind)
        if not accessible:
            log.warning(
                "Widget %s called %s, which is not widget-accessible",
                self.app_info.widget_id,
                tool_name,
            )
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                f"Tool {tool_name!r} is not accessible from the widget",
                ErrorKind.NOT_ACCESSIBLE,
            )

        log.debug(
            "Widget %s calling %s with %s", self.app_info.widget_id, tool_name, arguments
        )
        try:
            response = await asyncio.wait_for(
                self.client.call_tool(tool_name, arguments), timeout=self.tool_timeout
            )
        except asyncio.TimeoutError:
            log.error("Tool call timed out after %ss: %s", self.tool_timeout, tool_name)
            return _error(
                msg_id,
                JsonRpcCode.SERVER_ERROR,
                f"Tool call timed out after {self.tool_timeout}s",
                ErrorKind.TIMEOUT,
            )
        except AppsError as e:
            log.error("Tool call failed: %s", e)
            return _error(msg_id, e.code, e.message, e.kind)

        if "error" in response:
            return json.dumps({"jsonrpc": "2.0", "id": msg_id, "error": response["error"]})
        return _result(msg_id, response.get("result") or {})

    # ------------------------------------------------------------------ #
    #  Handler: resources/read                                            #
    # ------------------------------------------------------------------ #

    async def _handle_resource_read(self, msg_id: Any, params: dict[str, Any]) -> str:
        try:
            result = await self.client.read_resource(params.get("uri", ""))
        except AppsError as e:
            log.error("Resource read failed: %s", e)
            return _error(msg_id, e.code, e.message, e.kind)
        return _result(msg_id, result)

    # ------------------------------------------------------------------ #
    #  Handlers: host capabilities                                        #
    # ------------------------------------------------------------------ #

    def _handle_follow_up(self, msg_id: Any, params: dict[str, Any]) -> str:
        """Record a follow-up message for the conversation."""
        prompt = params.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                "Follow-up prompt must be a non-empty string",
                ErrorKind.INVALID_REQUEST,
            )
        self.follow_ups.append(prompt)
        log.info("Widget %s sent follow-up: %s", self.app_info.widget_id, prompt)
        return _result(msg_id, {})

    def _handle_open_external(self, msg_id: Any, params: dict[str, Any]) -> str:
        href = params.get("href", "")
        parsed = urlparse(href) if isinstance(href, str) else None
        if parsed is None or parsed.scheme not in _EXTERNAL_SCHEMES or not parsed.netloc:
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                f"Refusing to open {href!r}: only http and https links are allowed",
                ErrorKind.INVALID_REQUEST,
            )
        self.opened_urls.append(href)
        log.info("Widget %s opened %s", self.app_info.widget_id, href)
        return _result(msg_id, {})

    def _handle_display_mode(self, msg_id: Any, params: dict[str, Any]) -> str:
        try:
            requested = DisplayMode(params.get("mode"))
        except ValueError:
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                f"Unknown display mode: {params.get('mode')!r}",
                ErrorKind.INVALID_REQUEST,
            )
        granted = coerce_display_mode(requested, self.context)
        if granted is not requested:
            log.info(
                "Widget %s asked for %s, granted %s",
                self.app_info.widget_id,
                requested.value,
                granted.value,
            )
        self.context.display_mode = granted
        return _result(msg_id, {"mode": granted.value})

    def _handle_widget_state(self, msg_id: Any, params: dict[str, Any]) -> str:
        state = params.get("state")
        if not isinstance(state, dict):
            return _error(
                msg_id,
                JsonRpcCode.INVALID_PARAMS,
                "Widget state must be an object",
                ErrorKind.INVALID_REQUEST,
            )
        self.state_store.put(self.app_info.widget_id, state)
        return _result(msg_id, {})

    # ------------------------------------------------------------------ #
    #  Outbound: host -> widget                                           #
    # ------------------------------------------------------------------ #

    async def push_globals(self, delta: dict[str, Any]) -> None:
        """Send a partial globals update, queueing it while disconnected."""
        if not delta:
            return
        notification = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": Method.UI_SET_GLOBALS.value,
                "params": {"globals": delta},
            },
            default=str,
        )

        if not self._ws:
            self._pending_notifications.append(notification)
            log.debug("Queued set-globals notification (not connected)")
            return

        try:
            await self._ws.send(notification)
        except (OSError, ConnectionError) as e:
            self._pending_notifications.append(notification)
            log.warning("Failed to push globals, queued: %s", e)

    async def push_tool_result(self, result: dict[str, Any]) -> None:
        """Hydrate the widget with a new tool result."""
        await self.push_globals(self._tool_output_globals(result))

    async def push_tool_input(self, arguments: dict[str, Any]) -> None:
        await self.push_globals({"toolInput": arguments})

    async def update_context(self, **changes: Any) -> None:
        """Change host environment fields and tell the widget."""
        updated = HostContext.model_validate({**self.context.model_dump(), **changes})
        before = self.context.to_globals()
        after = updated.to_globals()
        self.context = updated
        await self.push_globals({k: v for k, v in after.items() if before.get(k) != v})

    @staticmethod
    def _tool_output_globals(result: dict[str, Any]) -> dict[str, Any]:
        delta: dict[str, Any] = {}
        if "structuredContent" in result:
            delta["toolOutput"] = result["structuredContent"]
        if "_meta" in result:
            delta["toolResponseMetadata"] = result["_meta"]
        return delta
