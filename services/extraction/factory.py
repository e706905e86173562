"""Extraction provider selection.

Providers are looked up by name in a class-level registry, so the
configured backend (APP_EXTRACTION_PROVIDER) or a command-line override
resolves to one ExtractionProvider subclass. Extra backends can be
registered at runtime without touching the orchestrator.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from services.extraction.base import ExtractionProvider
from services.extraction.gemini_provider import GeminiExtractionProvider
from services.extraction.ollama_provider import OllamaExtractionProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Name -> provider class mapping shared by the service and the CLI."""

    _providers: dict[str, type[ExtractionProvider]] = {
        "gemini": GeminiExtractionProvider,
        "ollama": OllamaExtractionProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[ExtractionProvider]) -> None:
        """Add or replace a backend under ``name``."""
        cls._providers[name.lower()] = provider_class
        logger.info(f"Registered extraction provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[ExtractionProvider]:
        """Resolve a backend name, case-insensitively.

        Raises:
            ValueError: If no backend is registered under the name
        """
        provider_class = cls._providers.get(name.lower())
        if provider_class is None:
            raise ValueError(
                f"Unknown extraction provider: '{name}'. "
                f"Available providers: {', '.join(cls.list_providers())}"
            )
        return provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers)


def create_extraction_service(settings: Settings, name: str | None = None) -> ExtractionProvider:
    """Instantiate the extraction backend used for uploaded invoices.

    An unavailable backend (missing API key, Ollama down, model not
    pulled) is still returned: its extractions fail softly and invoice
    creation falls back to product or default totals.

    Args:
        settings: Application settings
        name: Backend override; defaults to settings.extraction_provider

    Raises:
        ValueError: If the backend name is unknown
    """
    provider_name = name or settings.extraction_provider
    provider = ProviderRegistry.get_provider_class(provider_name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{provider_name}' is not fully available; "
            f"uploaded invoices will fall back to product or default totals"
        )

    logger.info(f"Created extraction provider: {provider.provider_name}")
    return provider
