"""
Configuration for mcp-apps.

Defaults, environment variables, resolved settings and logging setup.
"""

from mcp_apps.config.env_vars import EnvVar, get_env, get_env_float, get_env_list
from mcp_apps.config.logging import get_logger, setup_logging
from mcp_apps.config.settings import AppsSettings

__all__ = [
    "AppsSettings",
    "EnvVar",
    "get_env",
    "get_env_float",
    "get_env_list",
    "get_logger",
    "setup_logging",
]
