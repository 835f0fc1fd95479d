# tests/host/test_server_client.py
"""Tests for the ServerClient request helpers."""

from __future__ import annotations

import pytest

from mcp_apps.errors import BridgeError
from mcp_apps.host.client import ServerClient


class CannedClient(ServerClient):
    def __init__(self, response: dict):
        self.response = response
        self.sent: list[tuple[str, dict | None]] = []

    async def request(self, method, params=None):
        self.sent.append((getattr(method, "value", method), params))
        return self.response


class TestServerClient:
    def test_base_is_abstract(self):
        with pytest.raises(TypeError):
            ServerClient()

    def test_subclass_without_request_is_abstract(self):
        class Incomplete(ServerClient):
            pass

        with pytest.raises(TypeError):
            Incomplete()

    @pytest.mark.asyncio
    async def test_list_tools_uses_request(self):
        client = CannedClient({"id": 1, "result": {"tools": [{"name": "refresh"}]}})

        tools = await client.list_tools()

        assert tools == [{"name": "refresh"}]
        assert client.sent == [("tools/list", None)]

    @pytest.mark.asyncio
    async def test_error_response_raises(self):
        client = CannedClient(
            {"id": 1, "error": {"code": -32601, "message": "Method not found"}}
        )

        with pytest.raises(BridgeError, match="Method not found"):
            await client.list_resources()
