# tests/server/test_transport.py
"""Tests for the websocket transport, end to end over a real socket."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from mcp_apps.constants import ErrorKind
from mcp_apps.errors import BridgeError, Unauthorized
from mcp_apps.host.client import WebSocketServerClient
from mcp_apps.server.transport import _first_language, serve_app_server


@pytest_asyncio.fixture
async def running(demo_server):
    ws_server = await serve_app_server(demo_server, "127.0.0.1", 0)
    port = next(iter(ws_server.sockets)).getsockname()[1]
    yield demo_server, port
    ws_server.close()
    await ws_server.wait_closed()


class TestWebSocket:
    @pytest.mark.asyncio
    async def test_initialize_and_call(self, running):
        _, port = running
        async with WebSocketServerClient(
            f"ws://127.0.0.1:{port}/mcp", locale="es-419"
        ) as client:
            tools = await client.list_tools()
            response = await client.call_tool("refresh_pizza_list", {"city": "New York"})

        names = {t["name"] for t in tools}
        assert "save_favorite" in names
        result = response["result"]
        assert len(result["structuredContent"]["places"]) == 2
        assert result["_meta"]["openai/locale"] == "es"

    @pytest.mark.asyncio
    async def test_session_closed_on_disconnect(self, running):
        server, port = running
        client = WebSocketServerClient(f"ws://127.0.0.1:{port}/mcp")
        await client.connect()
        await client.initialize()
        assert len(server.sessions) == 1
        await client.close()
        for _ in range(50):
            if not server.sessions:
                break
            await asyncio.sleep(0.01)
        assert server.sessions == []

    @pytest.mark.asyncio
    async def test_bearer_token_reaches_tools(self, running, make_token):
        _, port = running
        async with WebSocketServerClient(
            f"ws://127.0.0.1:{port}/mcp",
            authorization=f"Bearer {make_token(sub='dana')}",
        ) as client:
            response = await client.call_tool("save_favorite", {"place_id": "lucali"})
        assert response["result"]["structuredContent"]["user"] == "dana"

    @pytest.mark.asyncio
    async def test_invalid_token_rejected_at_handshake(self, running, make_token):
        _, port = running
        client = WebSocketServerClient(
            f"ws://127.0.0.1:{port}/mcp",
            authorization=f"Bearer {make_token(exp_in=-600)}",
        )
        with pytest.raises(Unauthorized) as exc_info:
            await client.connect()
        assert 'error="invalid_token"' in exc_info.value.www_authenticate

    @pytest.mark.asyncio
    async def test_error_result_helpers_raise(self, running):
        _, port = running
        async with WebSocketServerClient(f"ws://127.0.0.1:{port}/mcp") as client:
            with pytest.raises(BridgeError) as exc_info:
                await client.read_resource("ui://widget/missing.html")
        assert exc_info.value.kind is ErrorKind.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        client = WebSocketServerClient("ws://127.0.0.1:1/mcp")
        with pytest.raises(BridgeError):
            await client.connect()


class TestHttp:
    @pytest.mark.asyncio
    async def test_protected_resource_metadata(self, running):
        _, port = running
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.get(
                f"http://127.0.0.1:{port}/.well-known/oauth-protected-resource"
            )
        assert resp.status_code == 200
        doc = resp.json()
        assert doc["scopes_supported"] == ["pizza.write"]
        assert doc["bearer_methods_supported"] == ["header"]

    @pytest.mark.asyncio
    async def test_unknown_path(self, running):
        _, port = running
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.get(f"http://127.0.0.1:{port}/nope")
        assert resp.status_code == 404


class TestFirstLanguage:
    def test_parses_header(self):
        assert _first_language("es-419,es;q=0.9,en;q=0.8") == "es-419"
        assert _first_language("fr;q=0.5") == "fr"

    def test_empty(self):
        assert _first_language(None) is None
        assert _first_language("*") is None
