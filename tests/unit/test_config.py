"""Unit tests for configuration management."""

import os
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from services.shared.config import Settings, get_settings


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.upper().startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoice-lifecycle-engine"
    assert settings.extraction_provider == "gemini"
    assert settings.extraction_max_bytes == 4 * 1024 * 1024
    assert settings.upload_max_bytes == 10 * 1024 * 1024
    assert settings.llm_connect_timeout == 30.0
    assert settings.llm_read_timeout == 60.0
    assert settings.duplicate_rejection_threshold == 0.8
    assert settings.temporary_id_threshold == 100_000_000
    assert settings.strict_product_lookup is False


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_EXTRACTION_PROVIDER"] = "ollama"
    os.environ["APP_DUPLICATE_CHECK_ENABLED"] = "false"

    settings = Settings(_env_file=None)

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.extraction_provider == "ollama"
    assert settings.duplicate_check_enabled is False


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"


def test_settings_reject_unknown_provider(clean_env: None) -> None:
    """Unknown provider names are rejected at construction time."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, extraction_provider="openai")


def test_settings_reject_threshold_out_of_range(clean_env: None) -> None:
    """The rejection threshold is a confidence in [0, 1]."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, duplicate_rejection_threshold=1.5)


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "invoice-lifecycle-engine"
