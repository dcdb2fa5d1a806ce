"""Bootstrap configuration helpers (pre-settings).

The logger needs a level and a directory before the settings singleton can
be imported. Keep this module free of telemetry imports.
"""

from __future__ import annotations

import os
from pathlib import Path

from sidebar_agent.config.validators import resolve_path, validate_log_level

DEFAULT_LOG_DIR = "telemetry/logs"


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """Get logging level from environment without importing settings.

    Args:
        default: Default log level if not set or invalid.

    Returns:
        Uppercased, validated log level string.
    """
    value = os.getenv("APP_LOG_LEVEL", default)
    try:
        return validate_log_level(value)
    except ValueError:
        return validate_log_level(default)


def get_bootstrap_log_dir() -> Path:
    """Get the log directory from AGENT_LOG_DIR without importing settings.

    Returns:
        Absolute path of the log directory.
    """
    return resolve_path(os.getenv("AGENT_LOG_DIR", DEFAULT_LOG_DIR))
