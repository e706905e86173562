"""Gemini-based extraction provider for invoice documents.

Sends the document inline (base64) together with the extraction prompt to
the Gemini generateContent endpoint and returns the first text part of
the first candidate.

Includes retry logic with exponential backoff for transient transport
errors. Each attempt is bounded by a connect/read timeout so a stalled
endpoint cannot pin the caller.

See: https://ai.google.dev/api/generate-content
"""

import base64
import logging
from pathlib import PurePath
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.base import ExtractionProvider
from services.extraction.schema import DocumentPayload
from services.shared.config import Settings

logger = logging.getLogger(__name__)

_MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
}


def resolve_mime_type(content_type: str | None, filename: str | None) -> str:
    """Pick the MIME type sent to the model.

    Declared content type wins, then the file extension, then image/jpeg.
    """
    if content_type:
        return content_type
    if filename:
        mime = _MIME_BY_EXTENSION.get(PurePath(filename).suffix.lower())
        if mime:
            return mime
    return "image/jpeg"


def extract_text(body: Any) -> str:
    """Return candidates[0].content.parts[0].text, or "" when any piece is absent."""
    if not isinstance(body, dict):
        return ""
    candidates = body.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts") or []
    if not parts or not isinstance(parts[0], dict):
        return ""
    text = parts[0].get("text")
    return text if isinstance(text, str) else ""


class GeminiExtractionProvider(ExtractionProvider):
    """Gemini vision extraction provider.

    Requires APP_GEMINI_API_KEY.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize Gemini extraction provider.

        Args:
            settings: Application settings
            client: Optional preconfigured HTTP client (tests)
        """
        super().__init__(settings)
        self._endpoint = settings.gemini_endpoint
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.llm_read_timeout, connect=settings.llm_connect_timeout)
        )

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'gemini'
        """
        return "gemini"

    def is_available(self) -> bool:
        """Check if a Gemini API key is configured."""
        return bool(self.settings.gemini_api_key)

    def _generate(self, prompt: str, document: DocumentPayload) -> str:
        if not self.is_available():
            raise RuntimeError("APP_GEMINI_API_KEY environment variable not set")

        mime_type = resolve_mime_type(document.content_type, document.filename)
        logger.info(f"Analyzing document with Gemini - {document.filename} ({mime_type})")

        body = self._call_gemini_with_retry(self._build_request(prompt, document.data, mime_type))
        text = extract_text(body)
        if not text:
            logger.warning("No text found in Gemini response")
        return text

    def _build_request(self, prompt: str, data: bytes, mime_type: str) -> dict[str, Any]:
        """Build the generateContent request body."""
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(data).decode("ascii"),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {
                "temperature": self.settings.llm_temperature,
                "maxOutputTokens": self.settings.llm_max_output_tokens,
                "topP": self.settings.llm_top_p,
                "topK": self.settings.llm_top_k,
            },
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_gemini_with_retry(self, request_body: dict[str, Any]) -> Any:
        """Call the Gemini API with retry logic for transient transport errors.

        Args:
            request_body: generateContent request body

        Returns:
            Decoded JSON response body

        Raises:
            httpx.HTTPError: After all retry attempts exhausted, or on a non-2xx status
        """
        response = self._client.post(
            self._endpoint,
            params={"key": self.settings.gemini_api_key},
            json=request_body,
        )
        if response.is_error:
            logger.error(f"Gemini API error: {response.status_code} - {response.text}")
        response.raise_for_status()
        return response.json()
