# mcp_apps/server/models.py
"""Pydantic models for tool and template declarations and tool responses.

The loosely-typed ``_meta`` bags of the wire format are modelled as typed
fields for the keys we know, with ``extra="allow"`` keeping any other key
for forward compatibility.
"""

from __future__ import annotations

import hashlib
import json
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from mcp_apps.config.defaults import HTML_MIME_TYPE, SKYBRIDGE_MIME_TYPE
from mcp_apps.constants import MetaKey
from mcp_apps.errors import UnsupportedLocale
from mcp_apps.server.locale import LocaleNegotiator

# MCP tool names: A-Z, a-z, 0-9, underscore, hyphen, dot, slash
VALID_TOOL_NAME = re.compile(r"^[a-zA-Z0-9_\-./]+$")

_META_CONFIG = {"populate_by_name": True, "extra": "allow"}


# ──────────────────────────────────────────────────────────────────────────────
# Security schemes
# ──────────────────────────────────────────────────────────────────────────────
class SecuritySchemeType(str, Enum):
    NOAUTH = "noauth"
    OAUTH2 = "oauth2"


class SecurityScheme(BaseModel):
    """One declared authentication requirement of a tool."""

    type: SecuritySchemeType
    scopes: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def noauth(cls) -> SecurityScheme:
        return cls(type=SecuritySchemeType.NOAUTH)

    @classmethod
    def oauth2(cls, *scopes: str) -> SecurityScheme:
        return cls(type=SecuritySchemeType.OAUTH2, scopes=list(scopes))

    def to_wire(self) -> dict[str, Any]:
        if self.type is SecuritySchemeType.NOAUTH:
            return {"type": self.type.value}
        return {"type": self.type.value, "scopes": list(self.scopes)}


# ──────────────────────────────────────────────────────────────────────────────
# _meta models
# ──────────────────────────────────────────────────────────────────────────────
class WidgetCSP(BaseModel):
    connect_domains: list[str] = Field(default_factory=list)
    resource_domains: list[str] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "allow"}


class ToolMeta(BaseModel):
    """Typed view of a tool descriptor's ``_meta``."""

    output_template: str | None = Field(default=None, alias=MetaKey.OUTPUT_TEMPLATE.value)
    widget_accessible: bool | None = Field(
        default=None, alias=MetaKey.WIDGET_ACCESSIBLE.value
    )
    invoking: str | None = Field(default=None, alias=MetaKey.INVOKING.value)
    invoked: str | None = Field(default=None, alias=MetaKey.INVOKED.value)

    model_config = _META_CONFIG

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ResourceMeta(BaseModel):
    """Typed view of a template resource's ``_meta``."""

    widget_csp: WidgetCSP | None = Field(default=None, alias=MetaKey.WIDGET_CSP.value)
    widget_domain: str | None = Field(default=None, alias=MetaKey.WIDGET_DOMAIN.value)
    widget_prefers_border: bool | None = Field(
        default=None, alias=MetaKey.WIDGET_PREFERS_BORDER.value
    )
    widget_description: str | None = Field(
        default=None, alias=MetaKey.WIDGET_DESCRIPTION.value
    )

    model_config = _META_CONFIG

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ──────────────────────────────────────────────────────────────────────────────
# Template resources
# ──────────────────────────────────────────────────────────────────────────────
class ComponentTemplateResource(BaseModel):
    """A URI-addressed widget bundle (markup, inline script, CSP)."""

    uri: str
    name: str
    html: str
    mime_type: str = SKYBRIDGE_MIME_TYPE
    description: str | None = None
    meta: ResourceMeta = Field(default_factory=ResourceMeta)

    model_config = {"frozen": True}

    @field_validator("mime_type")
    @classmethod
    def _check_mime_type(cls, value: str) -> str:
        if value not in (SKYBRIDGE_MIME_TYPE, HTML_MIME_TYPE):
            raise ValueError(
                f"Template mime type must be {SKYBRIDGE_MIME_TYPE} or {HTML_MIME_TYPE}"
            )
        return value

    @property
    def version(self) -> str:
        """Content hash identifying this exact bundle."""
        return hashlib.sha256(self.html.encode("utf-8")).hexdigest()[:12]

    def to_listing(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "uri": self.uri,
            "name": self.name,
            "mimeType": self.mime_type,
        }
        if self.description:
            entry["description"] = self.description
        meta = self.meta.to_wire()
        if meta:
            entry["_meta"] = meta
        return entry

    def to_contents(self) -> dict[str, Any]:
        contents: dict[str, Any] = {
            "uri": self.uri,
            "mimeType": self.mime_type,
            "text": self.html,
        }
        meta = self.meta.to_wire()
        if meta:
            contents["_meta"] = meta
        return contents


def versioned_uri(uri: str, html: str) -> str:
    """Cache-busted URI for *html*: ``ui://widget/map.html`` -> ``ui://widget/map.<hash>.html``."""
    digest = hashlib.sha256(html.encode("utf-8")).hexdigest()[:8]
    head, sep, tail = uri.rpartition("/")
    stem, dot, ext = tail.rpartition(".")
    if not dot:
        return f"{uri}.{digest}"
    return f"{head}{sep}{stem}.{digest}.{ext}"


# ──────────────────────────────────────────────────────────────────────────────
# Tool descriptors
# ──────────────────────────────────────────────────────────────────────────────
class ToolStatusStrings(BaseModel):
    invoking: str | None = None
    invoked: str | None = None

    model_config = {"frozen": True}


class ToolDescriptor(BaseModel):
    """Declaration of a tool as advertised by ``tools/list``."""

    name: str
    title: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    security_schemes: list[SecurityScheme] = Field(default_factory=list)
    output_template: str | None = None
    widget_accessible: bool = False
    status: ToolStatusStrings = Field(default_factory=ToolStatusStrings)
    localized_status: dict[str, ToolStatusStrings] = Field(default_factory=dict)
    extra_meta: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not VALID_TOOL_NAME.match(value):
            raise ValueError(f"Invalid tool name: {value!r}")
        return value

    @property
    def inherits_security(self) -> bool:
        """No declared schemes: the server default policy applies."""
        return not self.security_schemes

    def status_for(self, locale: str | None) -> ToolStatusStrings:
        """Status strings in *locale*, falling back to the base strings."""
        if not locale or not self.localized_status:
            return self.status
        tags = list(self.localized_status)
        try:
            tag, _ = LocaleNegotiator(tags, default=tags[0]).match(locale)
        except UnsupportedLocale:
            return self.status
        return self.localized_status[tag]

    def meta(self, locale: str | None = None) -> ToolMeta:
        status = self.status_for(locale)
        return ToolMeta.model_validate(
            {
                **self.extra_meta,
                MetaKey.OUTPUT_TEMPLATE.value: self.output_template,
                MetaKey.WIDGET_ACCESSIBLE.value: self.widget_accessible,
                MetaKey.INVOKING.value: status.invoking,
                MetaKey.INVOKED.value: status.invoked,
            }
        )

    def to_wire(self, locale: str | None = None) -> dict[str, Any]:
        entry: dict[str, Any] = {"name": self.name}
        if self.title:
            entry["title"] = self.title
        if self.description:
            entry["description"] = self.description
        entry["inputSchema"] = self.input_schema
        if self.security_schemes:
            entry["securitySchemes"] = [s.to_wire() for s in self.security_schemes]
        entry["_meta"] = self.meta(locale).to_wire()
        return entry


# ──────────────────────────────────────────────────────────────────────────────
# Tool responses
# ──────────────────────────────────────────────────────────────────────────────
class ToolResponse(BaseModel):
    """Three independently-visible channels of a tool result.

    ``content`` is narrative for the model, ``structured_content`` hydrates
    the widget (and is read by the model, so keep it small), ``meta`` is
    delivered to the widget only.
    """

    content: list[dict[str, Any]] = Field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None
    is_error: bool = False

    @model_validator(mode="after")
    def _require_payload(self) -> ToolResponse:
        if not self.content and not self.structured_content:
            raise ValueError(
                "A tool response needs content or structuredContent (or both)"
            )
        return self

    @classmethod
    def text(
        cls,
        text: str,
        *,
        structured_content: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
        is_error: bool = False,
    ) -> ToolResponse:
        return cls(
            content=[{"type": "text", "text": text}],
            structured_content=structured_content,
            meta=meta,
            is_error=is_error,
        )

    @property
    def structured_size(self) -> int:
        if not self.structured_content:
            return 0
        return len(json.dumps(self.structured_content, default=str))

    def to_wire(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": self.content}
        if self.structured_content is not None:
            result["structuredContent"] = self.structured_content
        if self.meta:
            result["_meta"] = dict(self.meta)
        if self.is_error:
            result["isError"] = True
        return result
