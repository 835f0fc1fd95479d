# mcp_apps/server/app.py
"""JSON-RPC dispatcher for an MCP Apps server.

:class:`AppServer` holds the template and tool registries, negotiates a
locale per session and answers ``initialize``, ``ping``, ``tools/*`` and
``resources/*``.  It is transport-agnostic: the websocket transport and
the in-process host client both feed it decoded messages.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from mcp_apps.config.defaults import (
    DEFAULT_PROTOCOL_VERSION,
    DEFAULT_SERVER_NAME,
    DEFAULT_SERVER_VERSION,
    SKYBRIDGE_MIME_TYPE,
    WELL_KNOWN_PROTECTED_RESOURCE,
)
from mcp_apps.config.settings import AppsSettings
from mcp_apps.constants import JsonRpcCode, Method, MetaKey
from mcp_apps.errors import (
    AppsError,
    ResourceNotFound,
    ToolExecutionError,
    Unauthorized,
)
from mcp_apps.server.auth import (
    AuthPolicy,
    TokenVerifier,
    protected_resource_metadata,
    verifier_from_settings,
)
from mcp_apps.server.invocation import ToolInvocation
from mcp_apps.server.locale import LocaleNegotiator, LocaleResolution, requested_locale
from mcp_apps.server.models import (
    ComponentTemplateResource,
    ResourceMeta,
    SecurityScheme,
    ToolDescriptor,
    ToolStatusStrings,
    WidgetCSP,
)
from mcp_apps.server.registry import (
    RegisteredTool,
    ResourceRegistry,
    ToolHandler,
    ToolRegistry,
)

log = logging.getLogger(__name__)


@dataclass
class ServerSession:
    """Per-connection state: negotiated locale and call limiter."""

    id: str
    locale: LocaleResolution
    semaphore: asyncio.Semaphore | None = None
    initialized: bool = False
    created_at: float = field(default_factory=time.time)


class AppServer:
    """An MCP server that declares widget templates and tools."""

    def __init__(
        self,
        name: str = DEFAULT_SERVER_NAME,
        *,
        version: str = DEFAULT_SERVER_VERSION,
        settings: AppsSettings | None = None,
        verifier: TokenVerifier | None = None,
        default_schemes: Sequence[SecurityScheme] | None = None,
        authorization_servers: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.version = version
        self.settings = settings or AppsSettings.load()
        self.resources = ResourceRegistry()
        self.tools = ToolRegistry(self.resources)
        self.negotiator = LocaleNegotiator(
            self.settings.supported_locales, default=self.settings.default_locale
        )
        if verifier is None:
            verifier = verifier_from_settings(self.settings)
        self.authorization_servers = list(authorization_servers) or (
            [self.settings.auth_issuer] if self.settings.auth_issuer else []
        )
        self.policy = AuthPolicy(
            verifier,
            default_schemes=default_schemes,
            resource_metadata_url=self.settings.public_url.rstrip("/")
            + WELL_KNOWN_PROTECTED_RESOURCE,
        )
        self.invocation = ToolInvocation(self.tools, self.policy)
        self._sessions: dict[str, ServerSession] = {}

    # ------------------------------------------------------------------ #
    #  Declaration                                                        #
    # ------------------------------------------------------------------ #

    def publish_template(
        self,
        uri: str,
        html: str,
        *,
        name: str | None = None,
        description: str | None = None,
        csp: WidgetCSP | Mapping[str, Any] | None = None,
        domain: str | None = None,
        prefers_border: bool | None = None,
        mime_type: str = SKYBRIDGE_MIME_TYPE,
    ) -> ComponentTemplateResource:
        """Publish a widget template under *uri*."""
        meta = ResourceMeta(
            widget_csp=WidgetCSP.model_validate(csp) if csp is not None else None,
            widget_domain=domain,
            widget_prefers_border=prefers_border,
            widget_description=description,
        )
        resource = ComponentTemplateResource(
            uri=uri,
            name=name or uri.rsplit("/", 1)[-1],
            html=html,
            mime_type=mime_type,
            description=description,
            meta=meta,
        )
        return self.resources.publish(resource)

    def resource(
        self, uri: str, **kwargs: Any
    ) -> Callable[[Callable[[], str]], Callable[[], str]]:
        """Decorator form of :meth:`publish_template`; the function returns the HTML."""

        def decorator(fn: Callable[[], str]) -> Callable[[], str]:
            kwargs.setdefault("name", fn.__name__)
            kwargs.setdefault("description", inspect.getdoc(fn))
            self.publish_template(uri, fn(), **kwargs)
            return fn

        return decorator

    def add_tool(self, descriptor: ToolDescriptor, handler: ToolHandler) -> RegisteredTool:
        return self.tools.register(descriptor, handler)

    def tool(
        self,
        name: str | None = None,
        *,
        title: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        security_schemes: Sequence[SecurityScheme] = (),
        output_template: str | None = None,
        widget_accessible: bool = False,
        invoking: str | None = None,
        invoked: str | None = None,
        localized_status: Mapping[str, Mapping[str, str]] | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Register the decorated function as a tool handler."""

        def decorator(fn: ToolHandler) -> ToolHandler:
            descriptor = ToolDescriptor(
                name=name or fn.__name__,
                title=title,
                description=description or inspect.getdoc(fn),
                input_schema=input_schema or {"type": "object", "properties": {}},
                security_schemes=list(security_schemes),
                output_template=output_template,
                widget_accessible=widget_accessible,
                status=ToolStatusStrings(invoking=invoking, invoked=invoked),
                localized_status={
                    tag: ToolStatusStrings.model_validate(dict(strings))
                    for tag, strings in (localized_status or {}).items()
                },
                extra_meta=dict(meta or {}),
            )
            self.add_tool(descriptor, fn)
            return fn

        return decorator

    # ------------------------------------------------------------------ #
    #  Sessions                                                           #
    # ------------------------------------------------------------------ #

    def open_session(self, locale: str | None = None) -> ServerSession:
        limit = self.settings.max_concurrent_calls
        session = ServerSession(
            id=uuid.uuid4().hex,
            locale=self.negotiator.resolve(locale),
            semaphore=asyncio.Semaphore(limit) if limit > 0 else None,
        )
        self._sessions[session.id] = session
        log.debug("Opened session %s (locale %s)", session.id, session.locale.resolved)
        return session

    def close_session(self, session: ServerSession) -> None:
        self._sessions.pop(session.id, None)
        log.debug("Closed session %s", session.id)

    @property
    def sessions(self) -> list[ServerSession]:
        return list(self._sessions.values())

    def protected_resource_metadata(self) -> dict[str, Any]:
        scopes = {
            scope
            for tool in self.tools.list()
            for scheme in tool.descriptor.security_schemes
            for scope in scheme.scopes
        }
        return protected_resource_metadata(
            self.settings.public_url,
            authorization_servers=self.authorization_servers,
            scopes_supported=scopes,
        )

    # ------------------------------------------------------------------ #
    #  Dispatch                                                           #
    # ------------------------------------------------------------------ #

    async def handle_message(
        self, raw: str, session: ServerSession, *, authorization: str | None = None
    ) -> str | None:
        """Decode one JSON-RPC message and return the encoded reply, if any."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("Unparseable message: %s", e)
            return json.dumps(
                _error_response(None, JsonRpcCode.PARSE_ERROR, f"Parse error: {e}")
            )
        if not isinstance(message, dict):
            return json.dumps(
                _error_response(None, JsonRpcCode.INVALID_REQUEST, "Expected an object")
            )
        response = await self.dispatch(message, session, authorization=authorization)
        return json.dumps(response) if response is not None else None

    async def dispatch(
        self,
        message: dict[str, Any],
        session: ServerSession,
        *,
        authorization: str | None = None,
    ) -> dict[str, Any] | None:
        """Answer a decoded request; notifications return ``None``."""
        msg_id = message.get("id")
        method = message.get("method", "")
        params = message.get("params") or {}

        if msg_id is None:
            log.debug("Notification %s", method)
            return None

        # A per-request locale supersedes the session's for this request only,
        # and becomes the session default for the requests that follow
        locale = session.locale
        tag = requested_locale(params.get("_meta"))
        if tag and method != Method.INITIALIZE.value:
            locale = self.negotiator.resolve(tag)
            session.locale = locale

        try:
            if method == Method.INITIALIZE.value:
                result = self._initialize(params, session)
                locale = session.locale
            elif method == Method.PING.value:
                result = {}
            elif method == Method.TOOLS_LIST.value:
                result = self._list_tools(locale)
            elif method == Method.TOOLS_CALL.value:
                result = await self._call_tool(params, session, locale, authorization)
            elif method == Method.RESOURCES_LIST.value:
                result = {"resources": [r.to_listing() for r in self.resources.list()]}
            elif method == Method.RESOURCES_READ.value:
                result = self._read_resource(params)
            else:
                return _error_response(
                    msg_id, JsonRpcCode.METHOD_NOT_FOUND, f"Unknown method: {method}"
                )
        except AppsError as e:
            return {"jsonrpc": "2.0", "id": msg_id, "error": e.to_error()}
        except Exception as e:
            log.exception("Error handling %s", method)
            return _error_response(msg_id, JsonRpcCode.INTERNAL_ERROR, str(e))

        result["_meta"] = {**(result.get("_meta") or {}), **locale.to_meta()}
        return {"jsonrpc": "2.0", "id": msg_id, "result": result}

    def _initialize(self, params: dict[str, Any], session: ServerSession) -> dict[str, Any]:
        tag = requested_locale(params.get("_meta")) or params.get("locale")
        session.locale = self.negotiator.resolve(tag)
        session.initialized = True
        log.info(
            "Session %s initialized (locale %s -> %s)",
            session.id,
            tag,
            session.locale.resolved,
        )
        return {
            "protocolVersion": params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION),
            "serverInfo": {"name": self.name, "version": self.version},
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"listChanged": False, "subscribe": False},
            },
        }

    def _list_tools(self, locale: LocaleResolution) -> dict[str, Any]:
        return {
            "tools": [t.descriptor.to_wire(locale.resolved) for t in self.tools.list()]
        }

    def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        uri = params.get("uri", "")
        resource = self.resources.get(uri)
        if resource is None:
            raise ResourceNotFound(uri)
        return {"contents": [resource.to_contents()]}

    async def _call_tool(
        self,
        params: dict[str, Any],
        session: ServerSession,
        locale: LocaleResolution,
        authorization: str | None,
    ) -> dict[str, Any]:
        name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if session.semaphore is None:
            return await self._invoke(name, arguments, session, locale, authorization)
        async with session.semaphore:
            return await self._invoke(name, arguments, session, locale, authorization)

    async def _invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        session: ServerSession,
        locale: LocaleResolution,
        authorization: str | None,
    ) -> dict[str, Any]:
        try:
            response = await self.invocation.run(
                name,
                arguments,
                authorization=authorization,
                locale=locale.resolved,
                session_id=session.id,
            )
        except (Unauthorized, ToolExecutionError) as e:
            return _error_result(e)
        return response.to_wire()


def _error_result(error: AppsError) -> dict[str, Any]:
    """Render a call failure as an ``isError`` tool result."""
    meta: dict[str, Any] = {MetaKey.ERROR_KIND.value: error.kind.value}
    if isinstance(error, Unauthorized) and error.www_authenticate:
        meta[MetaKey.WWW_AUTHENTICATE.value] = error.www_authenticate
    return {
        "content": [{"type": "text", "text": error.message}],
        "isError": True,
        "_meta": meta,
    }


def _error_response(msg_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": msg_id,
        "error": {"code": int(code), "message": message},
    }
