"""Ollama-based extraction provider for self-hosted vision LLM inference.

Uses a local Ollama server with a vision-capable model (e.g. llava) so
invoice images never leave the premises. PDF documents are not accepted
by Ollama's image input and are reported as unsuccessful extractions.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import base64
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.base import ExtractionProvider
from services.extraction.gemini_provider import resolve_mime_type
from services.extraction.schema import DocumentPayload
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class OllamaExtractionProvider(ExtractionProvider):
    """Ollama-based extraction provider for self-hosted LLM inference.

    Uses local Ollama server running on localhost:11434.
    Supports vision models like LLaVA, Llama 3.2 Vision, Qwen2.5-VL.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize Ollama extraction provider.

        Args:
            settings: Application settings
            client: Optional preconfigured HTTP client (tests)
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.llm_read_timeout, connect=settings.llm_connect_timeout)
        )

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    def _generate(self, prompt: str, document: DocumentPayload) -> str:
        mime_type = resolve_mime_type(document.content_type, document.filename)
        if not mime_type.startswith("image/"):
            raise ValueError(f"Ollama vision models accept images only, got {mime_type}")

        return self._call_ollama_with_retry(prompt, base64.b64encode(document.data).decode("ascii"))

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_ollama_with_retry(self, prompt: str, image_b64: str) -> str:
        """Call Ollama API with retry logic for transient errors.

        Args:
            prompt: Extraction prompt for the LLM
            image_b64: Base64 encoded invoice image

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
        """
        response = self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "images": [image_b64],
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": self.settings.llm_temperature,
                    "num_predict": self.settings.llm_max_output_tokens,
                },
            },
        )
        response.raise_for_status()
        result = response.json().get("response", "")
        return result if isinstance(result, str) else ""
