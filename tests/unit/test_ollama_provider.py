"""Unit tests for OllamaExtractionProvider.

Tests the Ollama-based extraction provider with mocked HTTP calls.
"""

import base64
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest

from services.extraction.ollama_provider import OllamaExtractionProvider
from services.extraction.schema import DocumentPayload
from services.shared.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Create test settings with Ollama provider."""
    return Settings(
        _env_file=None,
        extraction_provider="ollama",
        ollama_base_url="http://localhost:11434",
        ollama_model="llava:7b",
    )


@pytest.fixture
def provider(settings: Settings) -> OllamaExtractionProvider:
    """Create Ollama provider instance."""
    return OllamaExtractionProvider(settings)


@pytest.fixture
def image() -> DocumentPayload:
    return DocumentPayload(data=b"\xff\xd8 jpeg", filename="receipt.jpg", content_type="image/jpeg")


class TestOllamaExtractionProviderProperties:
    """Test provider properties and availability."""

    def test_provider_name(self, provider: OllamaExtractionProvider) -> None:
        """Provider name should be 'ollama'."""
        assert provider.provider_name == "ollama"

    def test_is_available_when_server_running(self, provider: OllamaExtractionProvider) -> None:
        """Should return True when Ollama server responds with model."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"models": [{"name": "llava:13b"}]}

        with patch.object(provider._client, "get", return_value=mock_response):
            assert provider.is_available() is True

    def test_is_available_when_server_down(self, provider: OllamaExtractionProvider) -> None:
        """Should return False when Ollama server is unreachable."""
        with patch.object(
            provider._client, "get", side_effect=httpx.ConnectError("Connection refused")
        ):
            assert provider.is_available() is False

    def test_is_available_when_model_not_found(self, provider: OllamaExtractionProvider) -> None:
        """Should return False when configured model is not available."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"models": [{"name": "llama3.1:8b"}]}

        with patch.object(provider._client, "get", return_value=mock_response):
            assert provider.is_available() is False


class TestOllamaExtraction:
    """Test invoice extraction functionality."""

    def test_extract_successful_response(
        self, provider: OllamaExtractionProvider, image: DocumentPayload
    ) -> None:
        """Should parse the JSON in Ollama's response field."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {
            "response": json.dumps(
                {"invoiceDate": "2024-01-15", "totalAmount": 110.0, "vendor": "Test Supplier"}
            )
        }
        mock_post = MagicMock(return_value=mock_response)

        with patch.object(provider._client, "post", mock_post):
            result = provider.extract(image)

        assert result.success is True
        assert result.provider == "ollama"
        assert result.vendor == "Test Supplier"
        assert result.total_amount == Decimal("110.0")

        body = mock_post.call_args.kwargs["json"]
        assert body["model"] == "llava:7b"
        assert body["stream"] is False
        assert base64.b64decode(body["images"][0]) == image.data

    def test_pdf_rejected_without_call(self, provider: OllamaExtractionProvider) -> None:
        """Vision models take images only; a PDF is a failed result."""
        pdf = DocumentPayload(data=b"%PDF", filename="a.pdf", content_type="application/pdf")
        mock_post = MagicMock()

        with patch.object(provider._client, "post", mock_post):
            result = provider.extract(pdf)

        assert result.success is False
        assert result.error is not None
        assert "images only" in result.error
        mock_post.assert_not_called()

    def test_http_error(self, provider: OllamaExtractionProvider, image: DocumentPayload) -> None:
        """Should handle HTTP errors gracefully."""
        mock_response = MagicMock()
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "500 Server Error", request=MagicMock(), response=MagicMock()
        )

        with patch.object(provider._client, "post", return_value=mock_response):
            result = provider.extract(image)

        assert result.success is False
        assert result.error is not None
        assert "Extraction failed" in result.error

    def test_invalid_json_response(
        self, provider: OllamaExtractionProvider, image: DocumentPayload
    ) -> None:
        """Should handle unparsable model output."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"response": "This is not valid JSON"}

        with patch.object(provider._client, "post", return_value=mock_response):
            result = provider.extract(image)

        assert result.success is False
        assert result.raw_response == "This is not valid JSON"
