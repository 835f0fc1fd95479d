# mcp_apps/host/host.py
"""Local widget host server.

Serves the host page, the widget HTML and a websocket endpoint that
connects the browser to an :class:`AppBridge`.

Uses the ``websockets`` library for both HTTP and WebSocket serving
on a single port.
"""

from __future__ import annotations

import asyncio
import base64
import html as html_mod
import http
import logging
import re
import uuid
import webbrowser
from typing import Any

import httpx
import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.asyncio.server import serve as ws_serve
from websockets.http11 import Request, Response

from mcp_apps.config.defaults import (
    DEFAULT_APP_AUTO_OPEN_BROWSER,
    DEFAULT_APP_HOST_PORT_START,
    DEFAULT_APP_INIT_TIMEOUT,
    DEFAULT_APP_MAX_CONCURRENT,
    DEFAULT_CAPABILITY_TIMEOUT,
    DEFAULT_HTTP_REQUEST_TIMEOUT,
)
from mcp_apps.config.env_vars import EnvVar, get_env_bool
from mcp_apps.constants import MetaKey
from mcp_apps.host.bridge import AppBridge
from mcp_apps.host.client import ServerClient
from mcp_apps.host.host_page import HOST_PAGE_TEMPLATE, WIDGET_SHIM_TEMPLATE
from mcp_apps.host.models import AppInfo, AppState, HostContext
from mcp_apps.host.state import WidgetStateStore

logger = logging.getLogger(__name__)

# Strict regex for CSP source values: reject anything that could break out
# of an HTML attribute or inject additional directives.
_SAFE_CSP_SOURCE = re.compile(r"^[a-zA-Z0-9\-.:/*]+$")


def build_csp(csp: dict[str, Any] | None) -> str:
    """Content-Security-Policy for a widget from its ``openai/widgetCSP``."""
    parts = [
        "default-src 'none'",
        "script-src 'unsafe-inline'",
        "style-src 'unsafe-inline'",
    ]
    csp = csp or {}
    connect = [s for s in csp.get("connect_domains", []) if _SAFE_CSP_SOURCE.match(s)]
    if connect:
        parts.append("connect-src " + " ".join(connect))
    resource_domains = [
        s for s in csp.get("resource_domains", []) if _SAFE_CSP_SOURCE.match(s)
    ]
    if resource_domains:
        domains = " ".join(resource_domains)
        parts.append(f"img-src {domains} data:")
        parts.append(f"font-src {domains}")
    return "; ".join(parts)


def inject_shim(app_html: str, *, timeout: float = DEFAULT_CAPABILITY_TIMEOUT) -> str:
    """Put the ``window.openai`` shim ahead of the widget's own scripts."""
    shim = WIDGET_SHIM_TEMPLATE.format(timeout=timeout)
    if "</head>" in app_html:
        return app_html.replace("</head>", shim + "</head>", 1)
    if "<body" in app_html:
        return app_html.replace("<body", shim + "<body", 1)
    return shim + app_html


class AppHostServer:
    """Local web server for hosting widgets in the user's browser."""

    def __init__(
        self,
        client: ServerClient,
        *,
        context: HostContext | None = None,
        state_store: WidgetStateStore | None = None,
    ) -> None:
        self.client = client
        self.context = context or HostContext()
        self.state_store = state_store or WidgetStateStore()
        self._apps: dict[str, AppInfo] = {}
        self._bridges: dict[str, AppBridge] = {}
        self._servers: dict[str, Server] = {}
        self._next_port = DEFAULT_APP_HOST_PORT_START

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    async def launch_app(
        self,
        tool_name: str,
        resource_uri: str,
        server_name: str,
        tool_result: dict[str, Any] | None = None,
        tool_input: dict[str, Any] | None = None,
        *,
        widget_id: str | None = None,
        open_browser: bool = True,
    ) -> AppInfo:
        """Launch a widget in the browser.

        1. Fetch the template HTML from the MCP server
        2. Start a local HTTP + WebSocket server
        3. Open the user's default browser
        4. Push the initial tool result once the widget reports ready
        """
        if tool_name in self._apps:
            logger.info("Closing previous instance of widget for %s", tool_name)
            await self.close_app(tool_name)

        if len(self._apps) >= DEFAULT_APP_MAX_CONCURRENT:
            raise RuntimeError(
                f"Maximum concurrent widgets ({DEFAULT_APP_MAX_CONCURRENT}) reached"
            )

        if resource_uri.startswith(("http://", "https://")):
            html_content, resource = await self._fetch_http_resource(resource_uri)
        else:
            resource = await self.client.read_resource(resource_uri)
            html_content = self._extract_html(resource)

        if not html_content:
            raise RuntimeError(
                f"Could not fetch template {resource_uri} from {server_name}"
            )

        meta = self._extract_meta(resource)
        port = await self._find_available_port()
        app_info = AppInfo(
            tool_name=tool_name,
            resource_uri=resource_uri,
            server_name=server_name,
            widget_id=widget_id or uuid.uuid4().hex,
            state=AppState.PENDING,
            port=port,
            html_content=html_content,
            csp=meta.get(MetaKey.WIDGET_CSP.value),
            prefers_border=bool(meta.get(MetaKey.WIDGET_PREFERS_BORDER.value)),
            domain=meta.get(MetaKey.WIDGET_DOMAIN.value),
        )
        self._apps[tool_name] = app_info

        bridge = AppBridge(
            app_info,
            self.client,
            context=self.context.model_copy(deep=True),
            state_store=self.state_store,
        )
        if tool_result is not None:
            bridge.set_initial_tool_result(tool_result, tool_input)
        self._bridges[tool_name] = bridge

        await self._start_server(app_info, bridge)

        if open_browser and get_env_bool(
            EnvVar.AUTO_OPEN_BROWSER, DEFAULT_APP_AUTO_OPEN_BROWSER
        ):
            try:
                webbrowser.open(app_info.url)
                logger.info("Opened widget for %s at %s", tool_name, app_info.url)
            except webbrowser.Error as e:
                logger.warning(
                    "Could not open browser for %s at %s: %s",
                    tool_name,
                    app_info.url,
                    e,
                )

        return app_info

    async def close_app(self, tool_name: str) -> None:
        """Close a specific widget and its server."""
        app = self._apps.pop(tool_name, None)
        if app is not None:
            app.state = AppState.CLOSED
        self._bridges.pop(tool_name, None)
        server = self._servers.pop(tool_name, None)
        if server is not None:
            server.close()
            await server.wait_closed()

    async def close_all(self) -> None:
        """Shut down all widget servers."""
        for tool_name in list(self._apps):
            await self.close_app(tool_name)
        self._next_port = DEFAULT_APP_HOST_PORT_START

    def get_running_apps(self) -> list[AppInfo]:
        return [a for a in self._apps.values() if a.state != AppState.CLOSED]

    def get_bridge(self, tool_name: str) -> AppBridge | None:
        return self._bridges.get(tool_name)

    # ------------------------------------------------------------------ #
    #  Server setup                                                       #
    # ------------------------------------------------------------------ #

    def render_host_page(self, app_info: AppInfo) -> str:
        csp_str = build_csp(app_info.csp)
        return HOST_PAGE_TEMPLATE.format(
            tool_name=html_mod.escape(app_info.tool_name, quote=True),
            port=app_info.port,
            csp_attr=f'csp="{csp_str}"',
            container_class="bordered" if app_info.prefers_border else "",
            init_timeout=DEFAULT_APP_INIT_TIMEOUT,
        )

    async def _start_server(self, app_info: AppInfo, bridge: AppBridge) -> None:
        """Start a websockets server for this widget."""
        host_page_bytes = self.render_host_page(app_info).encode("utf-8")
        app_html_bytes = inject_shim(app_info.html_content).encode("utf-8")
        csp_header = build_csp(app_info.csp)

        def _html(body: bytes, **extra: str) -> Response:
            return Response(
                http.HTTPStatus.OK,
                "OK",
                websockets.Headers(
                    {
                        "Content-Type": "text/html; charset=utf-8",
                        "Content-Length": str(len(body)),
                        **extra,
                    }
                ),
                body,
            )

        def process_request(
            connection: ServerConnection, request: Request
        ) -> Response | None:
            path = request.path.split("?", 1)[0]

            if path in ("/", ""):
                return _html(host_page_bytes)
            if path == "/app":
                return _html(app_html_bytes, **{"Content-Security-Policy": csp_header})
            if path != "/ws":
                body = b"Not Found"
                return Response(
                    http.HTTPStatus.NOT_FOUND,
                    "Not Found",
                    websockets.Headers({"Content-Length": str(len(body))}),
                    body,
                )
            return None

        async def ws_handler(ws: ServerConnection) -> None:
            bridge.set_ws(ws)
            logger.info("WebSocket connected for widget %s", app_info.widget_id)
            await bridge.drain_pending()

            try:
                async for message in ws:
                    if isinstance(message, str):
                        response = await bridge.handle_message(message)
                        if response:
                            await ws.send(response)
            except websockets.ConnectionClosed:
                pass

            logger.info("WebSocket closed for widget %s", app_info.widget_id)

        server = await ws_serve(
            ws_handler,
            "localhost",
            app_info.port,
            process_request=process_request,
        )
        self._servers[app_info.tool_name] = server
        logger.info(
            "Widget server started for %s on port %d", app_info.tool_name, app_info.port
        )

    # ------------------------------------------------------------------ #
    #  Helpers                                                            #
    # ------------------------------------------------------------------ #

    async def _find_available_port(self) -> int:
        """Find an available port starting from _next_port."""
        port = self._next_port
        max_attempts = 20
        for _ in range(max_attempts):
            try:
                server = await asyncio.start_server(
                    lambda r, w: None, "localhost", port
                )
                server.close()
                await server.wait_closed()
                self._next_port = port + 1
                return port
            except OSError:
                port += 1
        raise RuntimeError(
            f"Could not find available port after {max_attempts} attempts"
        )

    @staticmethod
    async def _fetch_http_resource(url: str) -> tuple[str, dict[str, Any]]:
        """Fetch template HTML directly from an HTTP/HTTPS URL."""
        async with httpx.AsyncClient(
            follow_redirects=True, timeout=DEFAULT_HTTP_REQUEST_TIMEOUT
        ) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            html = resp.text
            resource = {
                "contents": [
                    {
                        "uri": url,
                        "mimeType": resp.headers.get("content-type", "text/html"),
                        "text": html,
                    }
                ]
            }
            return html, resource

    @staticmethod
    def _first_contents(resource: dict[str, Any]) -> dict[str, Any]:
        contents = resource.get("contents", [])
        if isinstance(contents, list) and contents and isinstance(contents[0], dict):
            return contents[0]
        return {}

    @staticmethod
    def _extract_html(resource: dict[str, Any]) -> str:
        """Extract HTML from a resources/read result."""
        first = AppHostServer._first_contents(resource)
        text = first.get("text")
        if text:
            return str(text)
        blob = first.get("blob")
        if blob:
            return base64.b64decode(blob).decode("utf-8")
        return ""

    @staticmethod
    def _extract_meta(resource: dict[str, Any]) -> dict[str, Any]:
        meta = AppHostServer._first_contents(resource).get("_meta")
        return meta if isinstance(meta, dict) else {}
