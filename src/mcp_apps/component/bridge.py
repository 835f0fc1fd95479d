# mcp_apps/component/bridge.py
"""Component-side host bridge.

A :class:`HostBridge` is created when a widget mounts and handed to the UI
root explicitly.  It owns the globals store, the event fan-out and the
capability channel, and it is the only way the component talks to its
host.  Closing it (unmount) discards the store and rejects in-flight calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from mcp_apps.component.channel import CapabilityChannel, Transport
from mcp_apps.component.events import Callback, EventBridge, Subscription
from mcp_apps.component.globals import UNSET, GlobalKey, GlobalStateStore
from mcp_apps.component.models import DisplayMode, GlobalsRecord
from mcp_apps.config.defaults import DEFAULT_CAPABILITY_TIMEOUT
from mcp_apps.constants import Method
from mcp_apps.errors import AppsError

log = logging.getLogger(__name__)


class HostBridge:
    """The narrow API a sandboxed component uses to reach its host."""

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        initial_globals: Mapping[str, Any] | None = None,
        accessible_tools: Iterable[str] = (),
        timeout: float = DEFAULT_CAPABILITY_TIMEOUT,
    ) -> None:
        self.store = GlobalStateStore(initial_globals)
        self.events = EventBridge()
        self.channel = CapabilityChannel(
            transport, accessible_tools=accessible_tools, timeout=timeout
        )
        self._mounted = True

    # ------------------------------------------------------------------ #
    #  Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    def attach(self, transport: Transport) -> None:
        self.channel.attach(transport)

    async def notify_initialized(self) -> None:
        """Tell the host the component is ready to receive globals."""
        await self.channel.notify(Method.UI_INITIALIZED)

    async def close(self) -> None:
        """Unmount: reject pending calls and drop subscriptions."""
        if not self._mounted:
            return
        self._mounted = False
        await self.channel.notify(Method.UI_TEARDOWN)
        self.channel.close()
        self.events.clear()

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def __aenter__(self) -> HostBridge:
        await self.notify_initialized()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    #  Read-only globals                                                  #
    # ------------------------------------------------------------------ #

    @property
    def theme(self) -> Any:
        return self.store.get(GlobalKey.THEME)

    @property
    def user_agent(self) -> Any:
        return self.store.get(GlobalKey.USER_AGENT)

    @property
    def locale(self) -> Any:
        return self.store.get(GlobalKey.LOCALE)

    @property
    def max_height(self) -> Any:
        return self.store.get(GlobalKey.MAX_HEIGHT)

    @property
    def display_mode(self) -> Any:
        return self.store.get(GlobalKey.DISPLAY_MODE)

    @property
    def safe_area(self) -> Any:
        return self.store.get(GlobalKey.SAFE_AREA)

    @property
    def tool_input(self) -> Any:
        return self.store.get(GlobalKey.TOOL_INPUT)

    @property
    def tool_output(self) -> Any:
        return self.store.get(GlobalKey.TOOL_OUTPUT)

    @property
    def tool_response_metadata(self) -> Any:
        return self.store.get(GlobalKey.TOOL_RESPONSE_METADATA)

    @property
    def widget_state(self) -> Any:
        return self.store.get(GlobalKey.WIDGET_STATE)

    def globals(self) -> GlobalsRecord:
        return self.store.record()

    def subscribe(self, key: GlobalKey | str, callback: Callback) -> Subscription:
        return self.events.subscribe(key, callback)

    # ------------------------------------------------------------------ #
    #  Inbound: host -> component                                         #
    # ------------------------------------------------------------------ #

    async def handle_message(self, raw: str | Mapping[str, Any]) -> None:
        """Handle a message from the host (response or notification)."""
        if isinstance(raw, str):
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("Invalid JSON from host: %s", raw[:200])
                return
        else:
            msg = dict(raw)

        if not isinstance(msg, dict):
            log.warning("Ignoring non-object message from host")
            return

        method = msg.get("method")
        if method == Method.UI_SET_GLOBALS:
            params = msg.get("params") or {}
            self.apply_globals(params.get("globals") or {})
            return

        if method is None and "id" in msg:
            self.channel.handle_response(msg)
            return

        log.debug("Ignoring host message %r", method)

    def apply_globals(self, delta: Mapping[str, Any]) -> tuple[GlobalKey, ...]:
        """Merge a delta and notify subscribers of the keys it touched."""
        if not self._mounted:
            log.debug("Dropping globals delta after unmount")
            return ()
        applied = self.store.apply_delta(delta)
        if applied:
            self.events.publish(applied, self.store)
        return applied

    # ------------------------------------------------------------------ #
    #  Outbound: component -> host                                        #
    # ------------------------------------------------------------------ #

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Invoke a widget-accessible tool and fold its result into globals.

        On failure the previous ``toolOutput`` is left untouched so the UI
        can keep rendering the last good structured content.
        """
        result = await self.channel.invoke_tool(name, arguments)
        self.apply_globals(
            {
                GlobalKey.TOOL_OUTPUT.value: result.get("structuredContent", UNSET),
                GlobalKey.TOOL_RESPONSE_METADATA.value: result.get("_meta", UNSET),
            }
        )
        return result

    async def request_display_mode(self, mode: DisplayMode | str) -> DisplayMode:
        """Request a display mode and record the one actually granted."""
        granted = await self.channel.request_display_mode(mode)
        self.apply_globals({GlobalKey.DISPLAY_MODE.value: granted.value})
        if granted != DisplayMode(mode):
            log.info("Requested display mode %s, host granted %s", mode, granted.value)
        return granted

    async def send_follow_up_message(self, prompt: str) -> bool:
        """Post a follow-up; failures are logged, never raised."""
        try:
            await self.channel.send_follow_up(prompt)
        except AppsError as e:
            log.warning("Follow-up message not delivered: %s", e)
            return False
        return True

    async def set_widget_state(self, state: dict[str, Any]) -> None:
        """Replace widget state locally and persist it on the host."""
        self.apply_globals({GlobalKey.WIDGET_STATE.value: state})
        await self.channel.persist_widget_state(state)

    async def open_external(self, href: str) -> None:
        await self.channel.open_external(href)
