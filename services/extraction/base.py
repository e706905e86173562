"""Abstract base class for extraction providers.

Enables switching between language model backends (Gemini, Ollama) while
keeping one extraction pipeline: size pre-flight, prompt, model call,
response repair, defensive field reading and total reconciliation.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

The public ``extract`` method never raises: every failure is reported as
an unsuccessful ExtractionResult.
"""

import logging
import time
from abc import ABC, abstractmethod

from services.extraction.fields import build_result
from services.extraction.repair import ResponseParseError, repair_response
from services.extraction.schema import DocumentPayload, ExtractionResult
from services.shared import metrics
from services.shared.config import Settings

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """\
You are an expert invoice data extraction system. Extract ALL invoice information from this document.

CRITICAL INSTRUCTIONS:
1. Return ONLY valid JSON - no markdown, no explanations, no extra text
2. Extract dates in YYYY-MM-DD format (ISO 8601)
3. Extract all monetary amounts as numbers (no currency symbols)
4. Handle both Arabic and English text
5. If multiple date formats exist, prefer the invoice date over created/printed dates
6. Extract ALL items/products listed in the invoice

REQUIRED JSON STRUCTURE:
{
  "invoiceDate": "2024-01-15",
  "totalAmount": 1500.75,
  "vendor": "Company Name",
  "items": [
    {"name": "Product Name 1", "quantity": 2.0, "unitPrice": 500.0, "subtotal": 1000.0},
    {"name": "Product Name 2", "quantity": 1.5, "unitPrice": 200.0, "subtotal": 300.0}
  ]
}

FIELD EXTRACTION RULES:
- invoiceDate: "Invoice Date", "Date", "التاريخ", "تاريخ الفاتورة" (format: YYYY-MM-DD)
- totalAmount: "Total", "Grand Total", "المجموع", "الإجمالي" (number only, no currency)
- vendor: "Vendor", "Supplier", "Company Name", "البائع", "المورد"
- items: all line items with their details
  * if subtotal is missing but quantity and unitPrice exist, calculate subtotal = quantity x unitPrice

EDGE CASES:
- If a field is not found or unclear, use null
- If the date format is ambiguous (DD/MM vs MM/DD), prefer DD/MM/YYYY
- If multiple totals exist (subtotal, tax, grand total), use the grand total
- Remove currency symbols from amounts (e.g., "$1,500.00" -> 1500.00)
- Convert Arabic numerals to Western numerals if needed

VALIDATION:
- Close all JSON brackets and braces
- Use double quotes for all keys and string values
- Numbers must be unquoted
- The items array must be valid even if empty: []

Return ONLY the JSON object, nothing else."""


class ExtractionProvider(ABC):
    """Abstract base class for invoice extraction providers.

    Subclasses implement ``_generate`` (one blocking model call returning
    raw text) plus the availability and naming hooks. The shared pipeline
    lives in ``extract``.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def _generate(self, prompt: str, document: DocumentPayload) -> str:
        """Send the prompt and document to the model and return its raw text.

        Raises:
            Exception: Any transport or API error; ``extract`` converts it
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'gemini', 'ollama')
        """

    def build_prompt(self) -> str:
        """Return the extraction prompt sent alongside the document."""
        return EXTRACTION_PROMPT

    def extract(self, document: DocumentPayload) -> ExtractionResult:
        """Extract structured invoice data from a document.

        Args:
            document: Raw document bytes with name and content type

        Returns:
            ExtractionResult; unsuccessful results carry an error message
        """
        start = time.time()
        try:
            result = self._extract(document)
        except Exception as e:
            logger.exception(f"Unexpected error extracting invoice data: {e}")
            result = ExtractionResult.failure(
                f"Extraction failed: {str(e)}", provider=self.provider_name
            )
        metrics.extraction_duration_seconds.observe(time.time() - start)
        metrics.extractions_total.labels(
            provider=self.provider_name, status="success" if result.success else "failed"
        ).inc()
        return result

    def _extract(self, document: DocumentPayload) -> ExtractionResult:
        logger.info(
            f"Starting invoice extraction for {document.filename} "
            f"({document.size} bytes) with {self.provider_name}"
        )

        if document.size == 0:
            return ExtractionResult.failure("File is empty", provider=self.provider_name)

        if document.size > self.settings.extraction_max_bytes:
            limit_mb = self.settings.extraction_max_bytes // (1024 * 1024)
            return ExtractionResult.failure(
                f"File too large. Maximum {limit_mb}MB allowed.", provider=self.provider_name
            )

        try:
            response_text = self._generate(self.build_prompt(), document)
        except Exception as e:
            logger.error(f"{self.provider_name} extraction failed: {e}")
            return ExtractionResult.failure(
                f"Extraction failed: {str(e)}", provider=self.provider_name
            )

        logger.debug(f"Raw model response: {response_text}")

        try:
            payload = repair_response(response_text)
        except ResponseParseError as e:
            logger.warning(f"Failed to parse model response: {e}")
            return ExtractionResult.failure(
                f"Failed to parse AI response: {e}",
                provider=self.provider_name,
                raw_response=response_text,
            )

        return build_result(payload, raw_response=response_text, provider=self.provider_name)
