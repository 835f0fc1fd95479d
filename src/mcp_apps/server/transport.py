# mcp_apps/server/transport.py
"""WebSocket transport for :class:`AppServer`.

One port serves the JSON-RPC websocket endpoint and the OAuth protected
resource document.  Each connection gets its own session; each incoming
request runs as its own task so slow tools do not block the connection.
"""

from __future__ import annotations

import asyncio
import http
import json
import logging
from typing import Any

import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.asyncio.server import serve as ws_serve
from websockets.http11 import Request, Response

from mcp_apps.config.defaults import (
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    MCP_ENDPOINT_PATH,
    WELL_KNOWN_PROTECTED_RESOURCE,
)
from mcp_apps.errors import Unauthorized
from mcp_apps.server.app import AppServer

logger = logging.getLogger(__name__)


def _json_response(status: http.HTTPStatus, payload: Any, **headers: str) -> Response:
    body = json.dumps(payload).encode("utf-8")
    return Response(
        status,
        status.phrase,
        websockets.Headers(
            {
                "Content-Type": "application/json",
                "Content-Length": str(len(body)),
                **headers,
            }
        ),
        body,
    )


def _first_language(header: str | None) -> str | None:
    """First tag of an ``Accept-Language`` header."""
    if not header:
        return None
    tag = header.split(",", 1)[0].split(";", 1)[0].strip()
    return tag if tag and tag != "*" else None


async def serve_app_server(
    server: AppServer,
    host: str = DEFAULT_SERVER_HOST,
    port: int = DEFAULT_SERVER_PORT,
) -> Server:
    """Start serving *server*; the caller owns the returned websockets server."""

    async def process_request(
        connection: ServerConnection, request: Request
    ) -> Response | None:
        path = request.path.split("?", 1)[0]

        if path == WELL_KNOWN_PROTECTED_RESOURCE:
            return _json_response(http.HTTPStatus.OK, server.protected_resource_metadata())

        if path != MCP_ENDPOINT_PATH:
            body = b"Not Found"
            return Response(
                http.HTTPStatus.NOT_FOUND,
                "Not Found",
                websockets.Headers({"Content-Length": str(len(body))}),
                body,
            )

        # A presented token must be valid; a missing one is judged per tool
        authorization = request.headers.get("Authorization")
        if authorization:
            try:
                await server.policy.authenticate(authorization)
            except Unauthorized as e:
                logger.info("Rejected handshake: %s", e.message)
                return _json_response(
                    http.HTTPStatus.UNAUTHORIZED,
                    {"error": "invalid_token", "error_description": e.message},
                    **{"WWW-Authenticate": e.www_authenticate or "Bearer"},
                )
        return None

    async def ws_handler(ws: ServerConnection) -> None:
        headers = ws.request.headers if ws.request is not None else websockets.Headers()
        authorization = headers.get("Authorization")
        session = server.open_session(_first_language(headers.get("Accept-Language")))
        tasks: set[asyncio.Task[None]] = set()

        async def answer(raw: str) -> None:
            reply = await server.handle_message(raw, session, authorization=authorization)
            if reply is not None:
                try:
                    await ws.send(reply)
                except websockets.ConnectionClosed:
                    logger.debug("Connection closed before reply for session %s", session.id)

        logger.info("Client connected (session %s)", session.id)
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                task = asyncio.create_task(answer(message))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        except websockets.ConnectionClosed:
            pass
        finally:
            for task in list(tasks):
                task.cancel()
            server.close_session(session)
            logger.info("Client disconnected (session %s)", session.id)

    ws_server = await ws_serve(ws_handler, host, port, process_request=process_request)
    logger.info(
        "%s serving on ws://%s:%d%s", server.name, host, port, MCP_ENDPOINT_PATH
    )
    return ws_server
