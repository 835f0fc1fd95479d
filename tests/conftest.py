"""Common test fixtures for mcp-apps tests."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from authlib.jose import jwt

from mcp_apps.config.settings import AppsSettings
from mcp_apps.demo import create_demo_server
from mcp_apps.server.app import AppServer

ISSUER = "https://auth.example.com"
AUDIENCE = "http://localhost:8765"
SECRET = "test-signing-secret-0123456789abcdef"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep MCP_APPS_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("MCP_APPS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """Undo setup_logging() side effects so caplog keeps working."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    root_level = root.level
    names = ("mcp_apps", "httpx", "httpcore", "websockets", "asyncio")
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(root_level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


@pytest.fixture
def settings() -> AppsSettings:
    return AppsSettings(
        supported_locales=["en", "es"],
        default_locale="en",
        capability_timeout=2.0,
        auth_issuer=ISSUER,
        auth_audience=AUDIENCE,
        auth_secret=SECRET,
    )


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Sign an HS256 access token for the test issuer."""

    def _make(
        *,
        sub: str = "user-123",
        scope: str = "pizza.write",
        exp_in: int = 300,
        **claims: Any,
    ) -> str:
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "aud": AUDIENCE,
            "sub": sub,
            "scope": scope,
            "iat": int(time.time()),
            "exp": int(time.time()) + exp_in,
        }
        payload.update(claims)
        return jwt.encode({"alg": "HS256"}, payload, SECRET).decode("ascii")

    return _make


@pytest.fixture
def demo_server(settings: AppsSettings) -> AppServer:
    return create_demo_server(settings)
