"""Unit tests for extraction provider factory.

Tests cover:
- Provider registry lookups
- Factory function provider creation
- Configuration-based selection
- Error handling for unknown providers
"""

import logging
from unittest.mock import patch

import pytest

from services.extraction.base import ExtractionProvider
from services.extraction.factory import ProviderRegistry, create_extraction_service
from services.extraction.gemini_provider import GeminiExtractionProvider
from services.extraction.ollama_provider import OllamaExtractionProvider
from services.extraction.schema import DocumentPayload
from services.shared.config import Settings


def test_provider_registry_default_providers() -> None:
    """Test that registry contains default providers."""
    providers = ProviderRegistry.list_providers()

    assert "gemini" in providers
    assert "ollama" in providers


def test_provider_registry_get_gemini() -> None:
    """Test getting Gemini provider from registry."""
    assert ProviderRegistry.get_provider_class("gemini") == GeminiExtractionProvider


def test_provider_registry_unknown_provider() -> None:
    """Test that unknown provider raises ValueError listing available providers."""
    with pytest.raises(ValueError, match="Unknown extraction provider") as excinfo:
        ProviderRegistry.get_provider_class("nonexistent")

    assert "Available providers" in str(excinfo.value)
    assert "gemini" in str(excinfo.value)


def test_provider_registry_register_new_provider() -> None:
    """Test registering a new provider."""

    class TestProvider(ExtractionProvider):
        def _generate(self, prompt: str, document: DocumentPayload) -> str:
            return "{}"

        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "test"

    try:
        ProviderRegistry.register("test", TestProvider)
        assert ProviderRegistry.get_provider_class("test") == TestProvider
    finally:
        ProviderRegistry._providers.pop("test", None)


def test_create_gemini_provider() -> None:
    """Factory builds the configured provider."""
    settings = Settings(_env_file=None, extraction_provider="gemini", gemini_api_key="k")

    provider = create_extraction_service(settings)

    assert isinstance(provider, GeminiExtractionProvider)
    assert provider.provider_name == "gemini"


def test_create_provider_warns_when_unavailable(caplog: pytest.LogCaptureFixture) -> None:
    """A provider that is not fully configured is still created, with a warning."""
    settings = Settings(_env_file=None, extraction_provider="ollama")

    with patch.object(OllamaExtractionProvider, "is_available", return_value=False):
        with caplog.at_level(logging.WARNING):
            provider = create_extraction_service(settings)

    assert isinstance(provider, OllamaExtractionProvider)
    assert "not fully available" in caplog.text


def test_name_override_is_case_insensitive() -> None:
    """An explicit backend name wins over the configured one."""
    settings = Settings(_env_file=None, extraction_provider="gemini")

    with patch.object(OllamaExtractionProvider, "is_available", return_value=True):
        provider = create_extraction_service(settings, name="OLLAMA")

    assert isinstance(provider, OllamaExtractionProvider)
