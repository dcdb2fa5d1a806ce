"""Unified configuration management for the agent.

Single source of truth for runtime configuration: environment variables,
.env files and defaults, validated by Pydantic.
"""

from sidebar_agent.config.env_loader import Environment, get_environment
from sidebar_agent.config.settings import AppConfig, get_settings, load_app_config

# Singleton instance
settings = get_settings()

__all__ = [
    "settings",
    "AppConfig",
    "get_settings",
    "load_app_config",
    "Environment",
    "get_environment",
]
