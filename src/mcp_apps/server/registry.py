# mcp_apps/server/registry.py
"""Registries of published templates and declared tools."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from mcp_apps.errors import ConfigurationError, TemplateImmutableError
from mcp_apps.server.models import ComponentTemplateResource, ToolDescriptor

if TYPE_CHECKING:
    from mcp_apps.server.invocation import ToolCall
    from mcp_apps.server.models import ToolResponse

log = logging.getLogger(__name__)

HandlerResult = Union["ToolResponse", dict[str, Any], str]
ToolHandler = Callable[["ToolCall"], Union[HandlerResult, Awaitable[HandlerResult]]]


class ResourceRegistry:
    """Published widget templates, addressed by URI.

    A URI is immutable once published: new content needs a new URI.
    """

    def __init__(self) -> None:
        self._resources: dict[str, ComponentTemplateResource] = {}

    def publish(self, resource: ComponentTemplateResource) -> ComponentTemplateResource:
        existing = self._resources.get(resource.uri)
        if existing is not None:
            if existing.version != resource.version:
                raise TemplateImmutableError(
                    f"Template {resource.uri} is already published with different "
                    f"content; publish it under a new URI",
                    data={"uri": resource.uri, "version": existing.version},
                )
            log.debug("Template %s re-published with identical content", resource.uri)
            return existing
        self._resources[resource.uri] = resource
        log.info("Published template %s (version %s)", resource.uri, resource.version)
        return resource

    def get(self, uri: str) -> ComponentTemplateResource | None:
        return self._resources.get(uri)

    def __contains__(self, uri: object) -> bool:
        return uri in self._resources

    def list(self) -> list[ComponentTemplateResource]:
        return list(self._resources.values())


@dataclass(frozen=True)
class RegisteredTool:
    descriptor: ToolDescriptor
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.descriptor.name


class ToolRegistry:
    """Declared tools, unique by name."""

    def __init__(self, resources: ResourceRegistry) -> None:
        self._resources = resources
        self._tools: dict[str, RegisteredTool] = {}

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> RegisteredTool:
        if descriptor.name in self._tools:
            raise ConfigurationError(f"Tool {descriptor.name!r} is already registered")

        if descriptor.output_template and descriptor.output_template not in self._resources:
            raise ConfigurationError(
                f"Tool {descriptor.name!r} references unpublished template "
                f"{descriptor.output_template}",
                data={"uri": descriptor.output_template},
            )

        try:
            validator_for(descriptor.input_schema).check_schema(descriptor.input_schema)
        except SchemaError as e:
            raise ConfigurationError(
                f"Tool {descriptor.name!r} has an invalid input schema: {e.message}"
            ) from e

        tool = RegisteredTool(descriptor=descriptor, handler=handler)
        self._tools[descriptor.name] = tool
        log.debug("Registered tool %s", descriptor.name)
        return tool

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def list(self) -> list[RegisteredTool]:
        return list(self._tools.values())
