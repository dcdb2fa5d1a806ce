"""Tests for configuration settings."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from sidebar_agent.config import (
    AppConfig,
    Environment,
    get_environment,
    get_settings,
    settings,
)
from sidebar_agent.config.env_loader import load_env_files
from sidebar_agent.config.settings import DEFAULT_RESTRICTED_URL_PREFIXES


class TestEnvironmentDetection:
    """Test environment detection."""

    def test_get_environment_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test default environment is development."""
        monkeypatch.delenv("APP_ENV", raising=False)
        assert get_environment() == Environment.DEVELOPMENT

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("production", Environment.PRODUCTION),
            ("prod", Environment.PRODUCTION),
            ("staging", Environment.STAGING),
            ("stage", Environment.STAGING),
            ("test", Environment.TEST),
            ("Testing", Environment.TEST),
            ("something-else", Environment.DEVELOPMENT),
        ],
    )
    def test_get_environment_aliases(
        self, monkeypatch: pytest.MonkeyPatch, value: str, expected: Environment
    ) -> None:
        """Test APP_ENV values and their aliases."""
        monkeypatch.setenv("APP_ENV", value)
        assert get_environment() == expected


class TestAppConfig:
    """Test AppConfig class."""

    def test_app_config_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test AppConfig has correct code defaults (isolated from .env)."""
        for name in (
            "APP_ENV",
            "APP_LOG_LEVEL",
            "AGENT_LLM_MODEL",
            "AGENT_LLM_BASE_URL",
            "AGENT_ORCHESTRATOR_MAX_TURNS",
            "AGENT_FETCH_ALLOWLIST",
        ):
            monkeypatch.delenv(name, raising=False)

        config = AppConfig()

        assert config.environment == Environment.DEVELOPMENT
        assert config.debug is False
        assert config.project_name == "Agent Sidebar"
        assert config.log_level == "INFO"
        assert config.llm_base_url == "https://openrouter.ai/api/v1"
        assert config.orchestrator_max_turns == 10
        assert config.stream_delta_interval_ms == 80
        assert config.history_max_messages == 40
        assert config.confirmation_timeout_seconds == 10.0
        assert config.tab_match_threshold == 0.55
        assert config.fetch_allowlist == []
        assert config.restricted_url_prefixes == list(DEFAULT_RESTRICTED_URL_PREFIXES)

    def test_app_config_from_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test AppConfig reads from environment variables with AGENT_ prefix."""
        monkeypatch.setenv("AGENT_OPENROUTER_API_KEY", "sk-or-test")
        monkeypatch.setenv("AGENT_ORCHESTRATOR_MAX_TURNS", "4")
        monkeypatch.setenv("AGENT_LLM_STREAMING_ENABLED", "false")

        config = AppConfig()

        assert config.openrouter_api_key == "sk-or-test"
        assert config.orchestrator_max_turns == 4
        assert config.llm_streaming_enabled is False

    @pytest.mark.parametrize(
        "raw",
        ['["Example.com", "https://docs.example.org/"]', "example.com, *.docs.example.org"],
    )
    def test_fetch_allowlist_parsing(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        """Test the allowlist accepts JSON or comma-separated text and normalizes entries."""
        monkeypatch.setenv("AGENT_FETCH_ALLOWLIST", raw)

        config = AppConfig()

        assert config.fetch_allowlist == ["example.com", "docs.example.org"]

    def test_restricted_prefixes_are_lowercased(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test restricted prefixes compare case-insensitively."""
        monkeypatch.setenv("AGENT_RESTRICTED_URL_PREFIXES", "Chrome://,ABOUT:")
        assert AppConfig().restricted_url_prefixes == ["chrome://", "about:"]

    def test_invalid_max_turns(self) -> None:
        """Test the turn budget must be positive."""
        with pytest.raises(ValidationError):
            AppConfig(orchestrator_max_turns=0)

    def test_threshold_must_be_unit_interval(self) -> None:
        """Test tab-match thresholds outside [0, 1] are rejected."""
        with pytest.raises(ValidationError):
            AppConfig(tab_match_threshold=1.5)

    def test_app_config_log_level_validation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test log level validation."""
        monkeypatch.setenv("APP_LOG_LEVEL", "INVALID")
        with pytest.raises(ValidationError):
            AppConfig()

    def test_app_config_log_format_validation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test log format validation."""
        monkeypatch.setenv("APP_LOG_FORMAT", "invalid")
        with pytest.raises(ValidationError):
            AppConfig()

    def test_app_config_path_resolution(self) -> None:
        """Test that relative paths are resolved to absolute."""
        config = AppConfig(log_dir="relative/logs")
        assert config.log_dir.is_absolute()


class TestSingleton:
    """Test singleton pattern."""

    def test_get_settings_returns_singleton(self) -> None:
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_settings_module_export(self) -> None:
        """Test that settings is exported from module."""
        assert isinstance(settings, AppConfig)


class TestEnvFileLoading:
    """Test .env file loading."""

    def test_load_env_files_priority(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test the most specific .env file wins."""
        (tmp_path / ".env").write_text("SIDEBAR_TEST_VAR=base\n")
        (tmp_path / ".env.local").write_text("SIDEBAR_TEST_VAR=local\n")
        (tmp_path / ".env.development").write_text("SIDEBAR_TEST_VAR=development\n")
        (tmp_path / ".env.development.local").write_text(
            "SIDEBAR_TEST_VAR=development_local\n"
        )
        monkeypatch.setenv("APP_ENV", "development")
        monkeypatch.delenv("SIDEBAR_TEST_VAR", raising=False)

        try:
            loaded = load_env_files(tmp_path)

            assert os.getenv("SIDEBAR_TEST_VAR") == "development_local"
            assert loaded == [
                ".env.development.local",
                ".env.development",
                ".env.local",
                ".env",
            ]
        finally:
            os.environ.pop("SIDEBAR_TEST_VAR", None)

    def test_process_environment_wins(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test variables already set are never overridden by files."""
        (tmp_path / ".env").write_text("SIDEBAR_TEST_VAR=from_file\n")
        monkeypatch.setenv("SIDEBAR_TEST_VAR", "from_process")

        load_env_files(tmp_path)

        assert os.getenv("SIDEBAR_TEST_VAR") == "from_process"

    def test_no_env_files(self, tmp_path: Path) -> None:
        """Test an empty directory loads nothing."""
        assert load_env_files(tmp_path) == []
