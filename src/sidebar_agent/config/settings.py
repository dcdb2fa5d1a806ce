"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path
from typing import Annotated

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from sidebar_agent.config.env_loader import Environment, get_environment, load_env_files
from sidebar_agent.config.validators import (
    normalize_domain,
    parse_string_list,
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_unit_interval,
)

log = structlog.get_logger(__name__)

DEFAULT_RESTRICTED_URL_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "chrome-search://",
    "chrome-untrusted://",
    "edge://",
    "about:",
    "devtools://",
    "view-source:",
    "https://chrome.google.com/webstore",
    "https://chromewebstore.google.com",
)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Values come from AGENT_-prefixed environment variables (after .env files
    are loaded by env_loader) and fall back to the defaults below.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded by env_loader so that their priority order is explicit
        env_prefix="AGENT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, alias="APP_DEBUG", description="Debug mode flag")

    # Application
    project_name: str = Field(default="Agent Sidebar", description="Project name")
    version: str = Field(default="0.1.0", description="Application version")

    # Telemetry
    log_dir: Path = Field(default=Path("telemetry/logs"), description="Log directory path")
    log_level: str = Field(
        default="INFO",
        alias="APP_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="json", alias="APP_LOG_FORMAT", description="Log format (json or console)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    # Completion endpoint (OpenRouter, OpenAI-compatible chat/completions)
    openrouter_api_key: str | None = Field(
        default=None, description="Bearer key for the completion endpoint"
    )
    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="Base URL for the completion API"
    )
    llm_model: str = Field(
        default="anthropic/claude-3.7-sonnet", description="Model identifier sent with each call"
    )
    llm_timeout_seconds: int = Field(default=120, ge=1, description="Read timeout per call")
    llm_streaming_enabled: bool = Field(
        default=True, description="Try a streaming completion before the non-streaming call"
    )
    llm_parallel_tool_calls: bool = Field(
        default=True, description="Allow the model to request several tool calls per turn"
    )

    # Orchestrator
    orchestrator_max_turns: int = Field(
        default=10, ge=1, description="Maximum model turns per run before forced finalization"
    )
    orchestrator_seed_page_context: bool = Field(
        default=True,
        description="Record a read_page result before the first user message of a session",
    )
    stream_delta_interval_ms: int = Field(
        default=80, ge=0, description="Coalescing interval for stream-delta events"
    )
    event_queue_size: int = Field(
        default=256, ge=1, description="Capacity of a run's progress event channel"
    )
    event_publish_timeout_seconds: float = Field(
        default=5.0, gt=0, description="How long a publish may wait on a full channel"
    )

    # Conversation history compaction
    history_max_messages: int = Field(
        default=40, ge=1, description="Messages retained per session at persist time"
    )
    history_tool_content_limit: int = Field(
        default=4000, ge=64, description="Maximum characters of one tool message"
    )
    history_content_limit: int = Field(
        default=16000, ge=64, description="Maximum characters of any message"
    )

    # Collaborators
    confirmation_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Wait for a user decision before denying"
    )
    automation_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Wait for a page-automation response"
    )
    tab_match_threshold: float = Field(
        default=0.55, description="Minimum similarity for a fuzzy tab match"
    )
    tab_match_early_exit: float = Field(
        default=0.9, description="Similarity at which fuzzy tab search stops early"
    )

    @field_validator("tab_match_threshold", "tab_match_early_exit")
    @classmethod
    def validate_thresholds(cls, v: float) -> float:
        """Validate similarity thresholds."""
        return validate_unit_interval(v)

    # Network fetch policy
    fetch_allowlist: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Domains reachable by mcp.fetch.get (empty = all domains allowed)",
    )
    fetch_max_body_chars: int = Field(
        default=500_000, ge=1, description="Characters of a fetched body returned to the model"
    )
    restricted_url_prefixes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_RESTRICTED_URL_PREFIXES),
        description="URL prefixes of internal pages that tools must never target",
    )

    @field_validator("fetch_allowlist", mode="before")
    @classmethod
    def parse_allowlist(cls, v: str | list[str] | None) -> list[str]:
        """Parse the allowlist from a JSON array, comma-separated text or list."""
        return [normalize_domain(item) for item in parse_string_list(v)]

    @field_validator("restricted_url_prefixes", mode="before")
    @classmethod
    def parse_restricted_prefixes(cls, v: str | list[str] | None) -> list[str]:
        """Parse restricted prefixes from a JSON array, comma-separated text or list."""
        return [item.lower() for item in parse_string_list(v)]

    # Service Configuration
    service_host: str = Field(default="127.0.0.1", description="Service host address")
    service_port: int = Field(default=9000, description="Service port number")


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates AppConfig instance (reads from environment variables)
    3. Validates all values using Pydantic

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = AppConfig()
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise

    log.info(
        "app_config_loaded",
        environment=config.environment.value,
        debug=config.debug,
        log_level=config.log_level,
        llm_model=config.llm_model,
        api_key_configured=bool(config.openrouter_api_key),
    )
    return config


def get_settings() -> AppConfig:
    """Get the application settings singleton.

    Returns:
        AppConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings
