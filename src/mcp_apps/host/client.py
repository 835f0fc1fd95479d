# mcp_apps/host/client.py
"""The host's handle on an MCP Apps server.

Two implementations share the request helpers: an in-process client that
talks to an :class:`AppServer` directly, and a websocket client for a
server started with ``serve_app_server``.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import InvalidStatus

from mcp_apps.config.defaults import DEFAULT_APP_TOOL_TIMEOUT, DEFAULT_PROTOCOL_VERSION
from mcp_apps.constants import Method, MetaKey
from mcp_apps.errors import (
    BridgeClosedError,
    BridgeError,
    BridgeTimeoutError,
    Unauthorized,
    error_from_payload,
)
from mcp_apps.server.app import AppServer

log = logging.getLogger(__name__)


class ServerClient(ABC):
    """Request helpers over a single ``request`` primitive.

    ``request`` returns the whole JSON-RPC response (``result`` or
    ``error``) so callers can relay server errors unchanged.
    """

    locale: str | None = None

    @abstractmethod
    async def request(
        self, method: Method | str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send one JSON-RPC request and return the full response."""

    async def _result(
        self, method: Method | str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self.request(method, params)
        error = response.get("error")
        if isinstance(error, dict):
            kind, code, message = error_from_payload(error)
            raise BridgeError(message, kind=kind, code=code, data=error.get("data"))
        result: dict[str, Any] = response.get("result") or {}
        return result

    async def initialize(self) -> dict[str, Any]:
        params: dict[str, Any] = {"protocolVersion": DEFAULT_PROTOCOL_VERSION}
        if self.locale:
            params["_meta"] = {MetaKey.LOCALE.value: self.locale}
        return await self._result(Method.INITIALIZE, params)

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self._result(Method.TOOLS_LIST)
        return list(result.get("tools", []))

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Call *name*; returns the raw response so errors can be relayed."""
        return await self.request(
            Method.TOOLS_CALL, {"name": name, "arguments": arguments or {}}
        )

    async def list_resources(self) -> list[dict[str, Any]]:
        result = await self._result(Method.RESOURCES_LIST)
        return list(result.get("resources", []))

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return await self._result(Method.RESOURCES_READ, {"uri": uri})

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> ServerClient:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()


class InProcessServerClient(ServerClient):
    """Talks to an :class:`AppServer` in the same event loop."""

    def __init__(
        self,
        server: AppServer,
        *,
        authorization: str | None = None,
        locale: str | None = None,
    ) -> None:
        self.server = server
        self.authorization = authorization
        self.locale = locale
        self.session = server.open_session(locale)
        self._ids = itertools.count(1)

    async def request(
        self, method: Method | str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        method_name = method.value if isinstance(method, Method) else method
        message = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method_name,
            "params": params or {},
        }
        response = await self.server.dispatch(
            message, self.session, authorization=self.authorization
        )
        return response or {}

    async def close(self) -> None:
        self.server.close_session(self.session)


class WebSocketServerClient(ServerClient):
    """Talks to a remote server over its ``/mcp`` websocket endpoint."""

    def __init__(
        self,
        url: str,
        *,
        authorization: str | None = None,
        locale: str | None = None,
        timeout: float = DEFAULT_APP_TOOL_TIMEOUT,
    ) -> None:
        self.url = url
        self.authorization = authorization
        self.locale = locale
        self.timeout = timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        headers: dict[str, str] = {}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if self.locale:
            headers["Accept-Language"] = self.locale
        try:
            self._ws = await connect(self.url, additional_headers=headers)
        except InvalidStatus as e:
            if e.response.status_code == 401:
                raise Unauthorized(
                    "Server rejected the bearer token",
                    www_authenticate=e.response.headers.get("WWW-Authenticate"),
                ) from e
            raise BridgeError(f"Could not connect to {self.url}: {e}") from e
        except OSError as e:
            raise BridgeError(f"Could not connect to {self.url}: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())
        log.info("Connected to %s", self.url)

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    log.warning("Invalid JSON from server: %s", str(raw)[:200])
                    continue
                future = self._pending.pop(str(message.get("id")), None)
                if future is None or future.done():
                    log.debug("Discarding response for unknown id %r", message.get("id"))
                    continue
                future.set_result(message)
        except websockets.ConnectionClosed:
            pass
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BridgeClosedError("Server connection closed"))
            self._pending.clear()

    async def request(
        self, method: Method | str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if self._ws is None:
            await self.connect()
        assert self._ws is not None

        method_name = method.value if isinstance(method, Method) else method
        msg_id = str(next(self._ids))
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await self._ws.send(
                json.dumps(
                    {
                        "jsonrpc": "2.0",
                        "id": msg_id,
                        "method": method_name,
                        "params": params or {},
                    }
                )
            )
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            raise BridgeTimeoutError(
                f"{method_name} timed out after {self.timeout}s"
            ) from None
        except websockets.ConnectionClosed as e:
            raise BridgeClosedError(f"Server connection closed: {e}") from e
        finally:
            self._pending.pop(msg_id, None)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        self._ws = None
        self._reader = None

    async def __aenter__(self) -> WebSocketServerClient:
        await self.connect()
        await self.initialize()
        return self
