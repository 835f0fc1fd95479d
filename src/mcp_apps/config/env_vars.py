"""Environment variable names - centralized, type-safe, no magic strings!

All environment variable access should go through this module.
"""

from __future__ import annotations

import os
from enum import Enum


class EnvVar(str, Enum):
    """All environment variable names used by mcp-apps."""

    # ================================================================
    # Timeout Configuration
    # ================================================================
    CAPABILITY_TIMEOUT = "MCP_APPS_CAPABILITY_TIMEOUT"
    APP_TOOL_TIMEOUT = "MCP_APPS_TOOL_TIMEOUT"

    # ================================================================
    # Locale Configuration
    # ================================================================
    DEFAULT_LOCALE = "MCP_APPS_DEFAULT_LOCALE"
    SUPPORTED_LOCALES = "MCP_APPS_SUPPORTED_LOCALES"

    # ================================================================
    # Server Configuration
    # ================================================================
    SERVER_HOST = "MCP_APPS_HOST"
    SERVER_PORT = "MCP_APPS_PORT"
    RESOURCE_URL = "MCP_APPS_RESOURCE_URL"
    MAX_CONCURRENT_CALLS = "MCP_APPS_MAX_CONCURRENT_CALLS"

    # ================================================================
    # Auth Configuration
    # ================================================================
    AUTH_ISSUER = "MCP_APPS_AUTH_ISSUER"
    AUTH_AUDIENCE = "MCP_APPS_AUTH_AUDIENCE"
    AUTH_SECRET = "MCP_APPS_AUTH_SECRET"
    AUTH_JWKS_URL = "MCP_APPS_AUTH_JWKS_URL"

    # ================================================================
    # Host Configuration
    # ================================================================
    AUTO_OPEN_BROWSER = "MCP_APPS_AUTO_OPEN_BROWSER"

    # ================================================================
    # Logging
    # ================================================================
    LOG_LEVEL = "MCP_APPS_LOG_LEVEL"
    LOG_FILE = "MCP_APPS_LOG_FILE"


# ================================================================
# Type-Safe Helper Functions
# ================================================================


def get_env(var: EnvVar, default: str | None = None) -> str | None:
    """Get environment variable value (type-safe).

    Example:
        >>> timeout = get_env(EnvVar.CAPABILITY_TIMEOUT, "30")
    """
    return os.getenv(var.value, default)


def set_env(var: EnvVar, value: str) -> None:
    """Set environment variable (type-safe)."""
    os.environ[var.value] = value


def unset_env(var: EnvVar) -> None:
    """Unset environment variable if it exists."""
    os.environ.pop(var.value, None)


def is_set(var: EnvVar) -> bool:
    """Check if environment variable is set (even if empty string)."""
    return var.value in os.environ


def get_env_int(var: EnvVar, default: int | None = None) -> int | None:
    """Get environment variable as integer, or *default* when unset or invalid."""
    value = get_env(var)
    if value is None:
        return default

    try:
        return int(value)
    except ValueError:
        return default


def get_env_float(var: EnvVar, default: float | None = None) -> float | None:
    """Get environment variable as float, or *default* when unset or invalid.

    Example:
        >>> timeout = get_env_float(EnvVar.CAPABILITY_TIMEOUT, 30.0)
    """
    value = get_env(var)
    if value is None:
        return default

    try:
        return float(value)
    except ValueError:
        return default


def get_env_bool(var: EnvVar, default: bool = False) -> bool:
    """Get environment variable as boolean ("1", "true", "yes", "on")."""
    value = get_env(var)
    if value is None:
        return default

    return value.lower() in ("1", "true", "yes", "on")


def get_env_list(
    var: EnvVar, separator: str = ",", default: list[str] | None = None
) -> list[str]:
    """Get environment variable as list of strings.

    Example:
        >>> get_env_list(EnvVar.SUPPORTED_LOCALES, default=["en"])
        # "en, es, fr" -> ["en", "es", "fr"]
    """
    value = get_env(var)
    if value is None:
        return default or []

    return [item.strip() for item in value.split(separator) if item.strip()]
