# mcp_apps/config/settings.py
"""Resolved runtime settings.

Priority (highest to lowest):
1. Explicit overrides (CLI options, test fixtures)
2. Environment variables
3. Defaults
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from mcp_apps.config.defaults import (
    DEFAULT_APP_TOOL_TIMEOUT,
    DEFAULT_CAPABILITY_TIMEOUT,
    DEFAULT_LOCALE,
    DEFAULT_MAX_CONCURRENT_CALLS_PER_SESSION,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    DEFAULT_SUPPORTED_LOCALES,
)
from mcp_apps.config.env_vars import (
    EnvVar,
    get_env,
    get_env_float,
    get_env_int,
    get_env_list,
)

logger = logging.getLogger(__name__)


class AppsSettings(BaseModel):
    """Settings shared by the server, host and component layers."""

    capability_timeout: float = Field(default=DEFAULT_CAPABILITY_TIMEOUT, gt=0)
    app_tool_timeout: float = Field(default=DEFAULT_APP_TOOL_TIMEOUT, gt=0)

    default_locale: str = DEFAULT_LOCALE
    supported_locales: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_LOCALES)
    )

    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT
    resource_url: str | None = None
    max_concurrent_calls: int = Field(
        default=DEFAULT_MAX_CONCURRENT_CALLS_PER_SESSION, ge=0
    )

    auth_issuer: str | None = None
    auth_audience: str | None = None
    auth_secret: str | None = Field(default=None, repr=False)
    auth_jwks_url: str | None = None

    model_config = {"frozen": True}

    @property
    def public_url(self) -> str:
        """Base URL clients use to reach the server."""
        return self.resource_url or f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> dict[str, Any]:
        """Collect the values that are set in the environment."""
        values: dict[str, Any] = {
            "capability_timeout": get_env_float(EnvVar.CAPABILITY_TIMEOUT),
            "app_tool_timeout": get_env_float(EnvVar.APP_TOOL_TIMEOUT),
            "default_locale": get_env(EnvVar.DEFAULT_LOCALE),
            "supported_locales": get_env_list(EnvVar.SUPPORTED_LOCALES) or None,
            "host": get_env(EnvVar.SERVER_HOST),
            "port": get_env_int(EnvVar.SERVER_PORT),
            "resource_url": get_env(EnvVar.RESOURCE_URL),
            "max_concurrent_calls": get_env_int(EnvVar.MAX_CONCURRENT_CALLS),
            "auth_issuer": get_env(EnvVar.AUTH_ISSUER),
            "auth_audience": get_env(EnvVar.AUTH_AUDIENCE),
            "auth_secret": get_env(EnvVar.AUTH_SECRET),
            "auth_jwks_url": get_env(EnvVar.AUTH_JWKS_URL),
        }
        return {k: v for k, v in values.items() if v is not None}

    @classmethod
    def load(cls, **overrides: Any) -> "AppsSettings":
        """Resolve settings from overrides, then environment, then defaults."""
        values = cls.from_env()
        values.update({k: v for k, v in overrides.items() if v is not None})
        settings = cls.model_validate(values)
        # The default locale is always negotiable
        if settings.default_locale not in settings.supported_locales:
            settings = settings.model_copy(
                update={
                    "supported_locales": [
                        *settings.supported_locales,
                        settings.default_locale,
                    ]
                }
            )
        logger.debug("Loaded settings: %r", settings)
        return settings
