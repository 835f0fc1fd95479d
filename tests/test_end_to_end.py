# tests/test_end_to_end.py
"""Component <-> host <-> server, wired together in one event loop."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio

from mcp_apps.component.bridge import HostBridge
from mcp_apps.component.globals import GlobalKey
from mcp_apps.component.models import DeviceInfo, DeviceType, DisplayMode, UserAgent
from mcp_apps.constants import ErrorKind, MetaKey
from mcp_apps.demo import PIZZA_TEMPLATE_URI
from mcp_apps.errors import BridgeTimeoutError, RemoteToolError
from mcp_apps.host.bridge import AppBridge
from mcp_apps.host.client import InProcessServerClient
from mcp_apps.host.loopback import LoopbackConnection
from mcp_apps.host.models import AppInfo, AppState, HostContext
from mcp_apps.host.state import WidgetStateStore
from mcp_apps.server.app import AppServer

WIDGET_ACCESSIBLE = ("refresh_pizza_list", "save_favorite")


# ── Harness ──────────────────────────────────────────────────────────────


class Mounted:
    """One mounted widget: component bridge, host bridge and their link."""

    def __init__(
        self, component: HostBridge, host: AppBridge, conn: LoopbackConnection
    ) -> None:
        self.component = component
        self.host = host
        self.conn = conn

    async def settle(self) -> None:
        await self.conn.drain()
        await self.component.events.drain()


MountFactory = Callable[..., Awaitable[Mounted]]


@pytest_asyncio.fixture
async def mount(demo_server: AppServer) -> AsyncIterator[MountFactory]:
    opened: list[tuple[Mounted, InProcessServerClient]] = []

    async def _mount(
        *,
        state_store: WidgetStateStore | None = None,
        context: HostContext | None = None,
        authorization: str | None = None,
        locale: str | None = None,
        accessible_tools: tuple[str, ...] = WIDGET_ACCESSIBLE,
        timeout: float = 2.0,
        initial_result: dict[str, Any] | None = None,
    ) -> Mounted:
        client = InProcessServerClient(
            demo_server, authorization=authorization, locale=locale
        )
        await client.initialize()
        info = AppInfo(
            tool_name="show_pizza_list",
            resource_uri=PIZZA_TEMPLATE_URI,
            server_name=demo_server.name,
            widget_id="pizza-widget-1",
        )
        host = AppBridge(info, client, context=context, state_store=state_store)
        if initial_result is not None:
            host.set_initial_tool_result(initial_result, {"city": "Chicago"})
        component = HostBridge(accessible_tools=accessible_tools, timeout=timeout)
        conn = LoopbackConnection(component, host)
        await conn.connect()
        await component.notify_initialized()
        mounted = Mounted(component, host, conn)
        await mounted.settle()
        opened.append((mounted, client))
        return mounted

    yield _mount

    for mounted, client in opened:
        await mounted.conn.close()
        await client.close()


# ── Tests ────────────────────────────────────────────────────────────────


class TestHydration:
    @pytest.mark.asyncio
    async def test_initial_tool_result_delivered(self, mount, demo_server):
        client = InProcessServerClient(demo_server)
        response = await client.call_tool("show_pizza_list", {"city": "Chicago"})
        await client.close()

        m = await mount(initial_result=response["result"])

        assert m.host.app_info.state is AppState.READY
        assert m.component.tool_input == {"city": "Chicago"}
        assert m.component.tool_output["city"] == "Chicago"
        assert "lou-malnatis" in m.component.tool_response_metadata["placeDetails"]
        assert m.component.theme == "light"

    @pytest.mark.asyncio
    async def test_host_context_change_reaches_subscribers(self, mount):
        m = await mount()
        themes: list[Any] = []
        m.component.subscribe(GlobalKey.THEME, themes.append)

        await m.host.update_context(theme="dark")
        await m.settle()

        assert themes == ["dark"]
        assert m.component.globals().theme.value == "dark"


class TestWidgetToolCalls:
    @pytest.mark.asyncio
    async def test_refresh_updates_tool_output(self, mount):
        m = await mount()
        outputs: list[Any] = []
        m.component.subscribe(GlobalKey.TOOL_OUTPUT, outputs.append)

        result = await m.component.call_tool("refresh_pizza_list", {"city": "New York"})
        await m.settle()

        assert result["structuredContent"]["city"] == "New York"
        assert len(outputs) == 1
        assert [p["id"] for p in outputs[0]["places"]] == ["joes", "lucali"]
        details = m.component.tool_response_metadata["placeDetails"]
        assert details["lucali"]["address"] == "575 Henry St"

    @pytest.mark.asyncio
    async def test_refresh_austin_tracks_pending_request(self, mount):
        m = await mount()
        outputs: list[Any] = []
        m.component.subscribe(GlobalKey.TOOL_OUTPUT, outputs.append)

        call = asyncio.ensure_future(
            m.component.call_tool("refresh_pizza_list", {"city": "Austin"})
        )
        await asyncio.sleep(0)
        pending = list(m.component.channel.pending.values())
        assert len(pending) == 1
        assert pending[0].method == "tools/call"

        await call
        assert [p["id"] for p in outputs[-1]["places"]] == ["via-313", "home-slice"]
        assert m.component.channel.pending == {}

    @pytest.mark.asyncio
    async def test_schema_error_keeps_previous_output(self, mount):
        m = await mount()
        await m.component.call_tool("refresh_pizza_list", {"city": "Chicago"})
        before = m.component.tool_output

        with pytest.raises(RemoteToolError) as exc_info:
            await m.component.call_tool("refresh_pizza_list", {"city": ""})

        assert exc_info.value.kind is ErrorKind.SCHEMA_VALIDATION
        assert m.component.tool_output == before

    @pytest.mark.asyncio
    async def test_not_widget_accessible_rejected_by_host(self, mount):
        # The component believes the tool is callable; the host knows better
        m = await mount(accessible_tools=(*WIDGET_ACCESSIBLE, "show_pizza_list"))

        with pytest.raises(RemoteToolError) as exc_info:
            await m.component.call_tool("show_pizza_list", {"city": "Chicago"})

        assert exc_info.value.kind is ErrorKind.NOT_ACCESSIBLE
        assert m.component.tool_output is None

    @pytest.mark.asyncio
    async def test_not_accessible_fails_without_round_trip(self, mount):
        m = await mount(accessible_tools=())
        sent = len(m.conn.to_host)

        with pytest.raises(RemoteToolError) as exc_info:
            await m.component.call_tool("refresh_pizza_list", {"city": "Chicago"})

        assert exc_info.value.kind is ErrorKind.NOT_ACCESSIBLE
        assert len(m.conn.to_host) == sent

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_is_discarded(self, mount):
        m = await mount(timeout=0.2)
        await m.component.call_tool("refresh_pizza_list", {"city": "Chicago"})
        before = m.component.tool_output

        m.conn.hold_responses = True
        with pytest.raises(BridgeTimeoutError):
            await m.component.call_tool("refresh_pizza_list", {"city": "New York"})
        await m.conn.drain()
        assert m.conn.held == 1

        await m.conn.release()
        await m.settle()

        assert m.component.tool_output == before
        assert m.component.channel.pending == {}


class TestAuth:
    @pytest.mark.asyncio
    async def test_save_favorite_requires_token(self, mount):
        m = await mount()

        with pytest.raises(RemoteToolError) as exc_info:
            await m.component.call_tool("save_favorite", {"place_id": "joes"})

        error = exc_info.value
        assert error.kind is ErrorKind.UNAUTHORIZED
        meta = error.data["result"]["_meta"]
        assert meta[MetaKey.WWW_AUTHENTICATE.value].startswith("Bearer")
        assert "resource_metadata=" in meta[MetaKey.WWW_AUTHENTICATE.value]

    @pytest.mark.asyncio
    async def test_save_favorite_with_token(self, mount, make_token):
        m = await mount(authorization=f"Bearer {make_token(sub='alice')}")

        result = await m.component.call_tool("save_favorite", {"place_id": "joes"})

        assert result["structuredContent"] == {"favorite": "joes", "user": "alice"}
        assert m.component.tool_output == {"favorite": "joes", "user": "alice"}

    @pytest.mark.asyncio
    async def test_save_favorite_wrong_scope(self, mount, make_token):
        m = await mount(authorization=f"Bearer {make_token(scope='pizza.read')}")

        with pytest.raises(RemoteToolError) as exc_info:
            await m.component.call_tool("save_favorite", {"place_id": "joes"})

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        challenge = exc_info.value.data["result"]["_meta"][MetaKey.WWW_AUTHENTICATE.value]
        assert "insufficient_scope" in challenge


class TestHostCapabilities:
    @pytest.mark.asyncio
    async def test_pip_on_mobile_granted_fullscreen(self, mount):
        context = HostContext(user_agent=UserAgent(device=DeviceInfo(type=DeviceType.MOBILE)))
        m = await mount(context=context)

        granted = await m.component.request_display_mode("pip")
        await m.settle()

        assert granted is DisplayMode.FULLSCREEN
        assert m.component.display_mode == "fullscreen"
        assert m.host.context.display_mode is DisplayMode.FULLSCREEN

    @pytest.mark.asyncio
    async def test_pip_on_desktop(self, mount):
        m = await mount()
        assert await m.component.request_display_mode(DisplayMode.PIP) is DisplayMode.PIP

    @pytest.mark.asyncio
    async def test_follow_up_recorded(self, mount):
        m = await mount()
        assert await m.component.send_follow_up_message("Which one is open late?")
        assert m.host.follow_ups == ["Which one is open late?"]

    @pytest.mark.asyncio
    async def test_empty_follow_up_reported_not_raised(self, mount):
        m = await mount()
        assert await m.component.send_follow_up_message("   ") is False
        assert m.host.follow_ups == []

    @pytest.mark.asyncio
    async def test_open_external(self, mount):
        m = await mount()
        await m.component.open_external("https://www.lucali.com")
        assert m.host.opened_urls == ["https://www.lucali.com"]


class TestWidgetState:
    @pytest.mark.asyncio
    async def test_last_sent_state_wins(self, mount):
        store = WidgetStateStore()
        m = await mount(state_store=store)

        await asyncio.gather(
            m.component.set_widget_state({"favorite": "tonys"}),
            m.component.set_widget_state({"favorite": "golden-boy"}),
        )

        assert store.get("pizza-widget-1") == {"favorite": "golden-boy"}
        assert m.component.widget_state == {"favorite": "golden-boy"}
        assert store.writes("pizza-widget-1") == 2

    @pytest.mark.asyncio
    async def test_resending_state_is_idempotent(self, mount):
        store = WidgetStateStore()
        m = await mount(state_store=store)

        await m.component.set_widget_state({"favorite": "joes"})
        await m.component.set_widget_state({"favorite": "joes"})

        assert store.get("pizza-widget-1") == {"favorite": "joes"}

    @pytest.mark.asyncio
    async def test_state_restored_on_remount(self, mount):
        store = WidgetStateStore()
        first = await mount(state_store=store)
        await first.component.set_widget_state({"favorite": "lucali"})
        await first.component.close()
        await first.settle()
        assert first.host.app_info.state is AppState.CLOSED

        second = await mount(state_store=store)

        assert second.component.widget_state == {"favorite": "lucali"}


class TestLocale:
    @pytest.mark.asyncio
    async def test_regional_tag_resolves_to_base(self, mount):
        m = await mount(locale="es-419")

        await m.component.call_tool("refresh_pizza_list", {"city": "Chicago"})

        meta = m.component.tool_response_metadata
        assert meta[MetaKey.LOCALE.value] == "es"
        assert MetaKey.LOCALE_UNAVAILABLE.value not in meta

    @pytest.mark.asyncio
    async def test_unsupported_locale_flagged(self, mount):
        m = await mount(locale="ja-JP")

        await m.component.call_tool("refresh_pizza_list", {"city": "Chicago"})

        meta = m.component.tool_response_metadata
        assert meta[MetaKey.LOCALE.value] == "en"
        assert meta[MetaKey.LOCALE_UNAVAILABLE.value] is True
