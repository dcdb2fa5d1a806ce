"""Environment detection and .env file loading.

Values from .env files never override variables already present in the
process environment, so a deployment can always pin a setting explicitly.
"""

import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from sidebar_agent.telemetry import get_logger

log = get_logger(__name__)


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


_ENVIRONMENT_ALIASES = {
    "production": Environment.PRODUCTION,
    "prod": Environment.PRODUCTION,
    "staging": Environment.STAGING,
    "stage": Environment.STAGING,
    "test": Environment.TEST,
    "testing": Environment.TEST,
}


def get_environment() -> Environment:
    """Detect the current environment from the APP_ENV variable.

    Read straight from the process environment because it decides which
    .env files get loaded before the settings object exists.

    Returns:
        Environment enum value, DEVELOPMENT when unset or unrecognised.
    """
    app_env = os.getenv("APP_ENV", "").strip().lower()
    return _ENVIRONMENT_ALIASES.get(app_env, Environment.DEVELOPMENT)


def env_file_candidates(project_root: Path, environment: Environment) -> list[Path]:
    """List .env files from highest to lowest priority.

    Args:
        project_root: Directory holding the .env files.
        environment: Environment whose specific files are included.

    Returns:
        Candidate paths; missing files are filtered out by the caller.
    """
    env_name = environment.value
    return [
        project_root / f".env.{env_name}.local",
        project_root / f".env.{env_name}",
        project_root / ".env.local",
        project_root / ".env",
    ]


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load .env files so that more specific files win.

    Files are read highest priority first with ``override=False``: the
    first file to define a key keeps it, and real environment variables
    beat every file.

    Args:
        project_root: Directory holding the .env files. If None, the
            repository root (three levels above this package) is used.

    Returns:
        Names of the files that were loaded, highest priority first.
    """
    if project_root is None:
        project_root = Path(__file__).parent.parent.parent.parent

    environment = get_environment()
    loaded_files: list[str] = []
    for env_file in env_file_candidates(project_root, environment):
        if env_file.exists():
            load_dotenv(env_file, override=False)
            loaded_files.append(env_file.name)

    if loaded_files:
        log.info(
            "env_files_loaded",
            environment=environment.value,
            files=loaded_files,
            project_root=str(project_root),
        )
    else:
        log.debug(
            "no_env_files_found",
            environment=environment.value,
            project_root=str(project_root),
        )
    return loaded_files
