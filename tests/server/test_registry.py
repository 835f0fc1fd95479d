# tests/server/test_registry.py
"""Tests for the template and tool registries."""

from __future__ import annotations

import pytest

from mcp_apps.errors import ConfigurationError, TemplateImmutableError
from mcp_apps.server.models import ComponentTemplateResource, ToolDescriptor
from mcp_apps.server.registry import ResourceRegistry, ToolRegistry


def _template(html: str = "<div/>") -> ComponentTemplateResource:
    return ComponentTemplateResource(uri="ui://widget/a.html", name="a", html=html)


def _handler(call):
    return "ok"


class TestResourceRegistry:
    def test_publish_and_get(self):
        registry = ResourceRegistry()
        published = registry.publish(_template())
        assert registry.get("ui://widget/a.html") is published
        assert "ui://widget/a.html" in registry
        assert registry.list() == [published]

    def test_identical_republish_is_noop(self):
        registry = ResourceRegistry()
        first = registry.publish(_template())
        assert registry.publish(_template()) is first
        assert len(registry.list()) == 1

    def test_changed_content_rejected(self):
        registry = ResourceRegistry()
        registry.publish(_template())
        with pytest.raises(TemplateImmutableError) as exc_info:
            registry.publish(_template("<div>v2</div>"))
        assert exc_info.value.data["uri"] == "ui://widget/a.html"

    def test_missing(self):
        assert ResourceRegistry().get("ui://nope") is None


class TestToolRegistry:
    def test_register(self):
        registry = ToolRegistry(ResourceRegistry())
        tool = registry.register(ToolDescriptor(name="a"), _handler)
        assert tool.name == "a"
        assert registry.get("a") is tool
        assert "a" in registry

    def test_duplicate_name(self):
        registry = ToolRegistry(ResourceRegistry())
        registry.register(ToolDescriptor(name="a"), _handler)
        with pytest.raises(ConfigurationError, match="already registered"):
            registry.register(ToolDescriptor(name="a"), _handler)

    def test_unpublished_template(self):
        registry = ToolRegistry(ResourceRegistry())
        with pytest.raises(ConfigurationError, match="unpublished template"):
            registry.register(
                ToolDescriptor(name="a", output_template="ui://widget/missing.html"),
                _handler,
            )

    def test_published_template(self):
        resources = ResourceRegistry()
        resources.publish(_template())
        registry = ToolRegistry(resources)
        tool = registry.register(
            ToolDescriptor(name="a", output_template="ui://widget/a.html"), _handler
        )
        assert tool.descriptor.output_template == "ui://widget/a.html"

    def test_invalid_schema(self):
        registry = ToolRegistry(ResourceRegistry())
        with pytest.raises(ConfigurationError, match="invalid input schema"):
            registry.register(
                ToolDescriptor(name="a", input_schema={"type": "not-a-type"}), _handler
            )

    def test_list_preserves_order(self):
        registry = ToolRegistry(ResourceRegistry())
        for name in ("c", "a", "b"):
            registry.register(ToolDescriptor(name=name), _handler)
        assert [t.name for t in registry.list()] == ["c", "a", "b"]
