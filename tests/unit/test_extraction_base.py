"""Unit tests for the extraction provider base class.

Tests cover:
- Abstract base class enforcement
- Size pre-flight
- Never-throw boundary (model errors, unparsable output, unexpected errors)
- Total reconciliation through the whole pipeline
"""

from decimal import Decimal

import pytest

from services.extraction.base import EXTRACTION_PROMPT, ExtractionProvider
from services.extraction.schema import DocumentPayload, ExtractionResult
from services.shared.config import Settings


class CannedProvider(ExtractionProvider):
    """Provider returning a fixed response, or raising a fixed error."""

    def __init__(self, settings: Settings, response: str = "", error: Exception | None = None):
        super().__init__(settings)
        self.response = response
        self.error = error
        self.calls: list[tuple[str, DocumentPayload]] = []

    def _generate(self, prompt: str, document: DocumentPayload) -> str:
        self.calls.append((prompt, document))
        if self.error is not None:
            raise self.error
        return self.response

    def is_available(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "canned"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def document() -> DocumentPayload:
    return DocumentPayload(data=b"%PDF-1.4 test", filename="invoice.pdf", content_type="application/pdf")


def test_extraction_provider_is_abstract(settings: Settings) -> None:
    """Test that ExtractionProvider cannot be instantiated directly."""
    with pytest.raises(TypeError, match="Can't instantiate abstract class"):
        ExtractionProvider(settings)  # type: ignore[abstract]


def test_extraction_provider_requires_generate(settings: Settings) -> None:
    """Concrete providers must implement _generate."""

    class IncompleteProvider(ExtractionProvider):
        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "incomplete"

    with pytest.raises(TypeError, match="Can't instantiate abstract class"):
        IncompleteProvider(settings)  # type: ignore[abstract]


class TestPreflight:
    """Test checks made before the model is called."""

    def test_empty_document(self, settings: Settings) -> None:
        provider = CannedProvider(settings)
        result = provider.extract(DocumentPayload(data=b"", filename="x.pdf"))

        assert result.success is False
        assert result.error == "File is empty"
        assert provider.calls == []

    def test_document_over_limit_not_sent(self, settings: Settings) -> None:
        """Documents over 4 MiB are rejected without a model call."""
        provider = CannedProvider(settings, response='{"vendor": "X"}')
        big = DocumentPayload(data=b"0" * (4 * 1024 * 1024 + 1), filename="big.pdf")

        result = provider.extract(big)

        assert result.success is False
        assert result.error == "File too large. Maximum 4MB allowed."
        assert provider.calls == []


class TestExtractionBoundary:
    """Test that every failure becomes an unsuccessful result."""

    def test_prompt_and_document_passed(
        self, settings: Settings, document: DocumentPayload
    ) -> None:
        provider = CannedProvider(settings, response='{"vendor": "ACME"}')
        provider.extract(document)

        assert provider.calls == [(EXTRACTION_PROMPT, document)]

    def test_model_error_captured(self, settings: Settings, document: DocumentPayload) -> None:
        provider = CannedProvider(settings, error=ConnectionError("unreachable"))
        result = provider.extract(document)

        assert result.success is False
        assert result.error == "Extraction failed: unreachable"
        assert result.provider == "canned"

    def test_irreparable_response_captured(
        self, settings: Settings, document: DocumentPayload
    ) -> None:
        """Unparsable output is a failed result carrying the raw text."""
        provider = CannedProvider(settings, response="Sorry, I cannot help with that.")
        result = provider.extract(document)

        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("Failed to parse AI response")
        assert result.raw_response == "Sorry, I cannot help with that."

    def test_unexpected_error_captured(
        self, settings: Settings, document: DocumentPayload, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Errors outside the model call still never escape extract()."""
        provider = CannedProvider(settings, response='{"vendor": "ACME"}')

        def explode(*args: object, **kwargs: object) -> ExtractionResult:
            raise RuntimeError("boom")

        monkeypatch.setattr("services.extraction.base.build_result", explode)
        result = provider.extract(document)

        assert result.success is False
        assert result.error == "Extraction failed: boom"


class TestExtractionPipeline:
    """Test complete extraction with canned model output."""

    def test_fenced_response_with_bare_keys(
        self, settings: Settings, document: DocumentPayload
    ) -> None:
        response = (
            "```json\n"
            '{invoiceDate: "2024-03-01", totalAmount: 1500.75, vendor: "Tech LLC", items: []}\n'
            "```"
        )
        result = CannedProvider(settings, response=response).extract(document)

        assert result.success is True
        assert result.total_amount == Decimal("1500.75")
        assert result.vendor == "Tech LLC"
        assert str(result.invoice_date) == "2024-03-01"

    def test_total_reconciled_from_items(
        self, settings: Settings, document: DocumentPayload
    ) -> None:
        """Missing totalAmount is computed from subtotal / quantity x unitPrice."""
        response = (
            '{"totalAmount": null, "items": '
            '[{"subtotal": 100}, {"quantity": 2, "unitPrice": 25}]}'
        )
        result = CannedProvider(settings, response=response).extract(document)

        assert result.success is True
        assert result.total_amount == Decimal("150")
        assert len(result.items) == 2

    def test_no_useful_data(self, settings: Settings, document: DocumentPayload) -> None:
        """totalAmount null with an empty item list is unsuccessful."""
        result = CannedProvider(settings, response='{"totalAmount": null, "items": []}').extract(
            document
        )

        assert result.success is False
        assert result.error is not None
