"""Client for the external duplicate detection service.

Duplicate screening is advisory: every call goes through ``_isolated``,
which logs any failure and returns a default, so no error raised here
ever reaches invoice creation. The fingerprint lifecycle is:

1. ``save_temporary_fingerprint`` under a temporary id before the
   invoice exists
2. ``check_for_duplicates`` for the upload
3. ``replace_temporary_with_final`` once the invoice is persisted
   (or ``save_fingerprint`` for an invoice that already has an id)

The service owns fingerprint identity, so calling these zero, one or two
times per invoice needs no locking here.
"""

import logging
import random
import time
from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

import httpx

from services.duplicates.schema import DuplicateCheckResponse
from services.invoices.models import LineItem, UploadedFile
from services.shared import metrics
from services.shared.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SAVE_FINGERPRINT_PATH = "/api/duplicate-check/save-fingerprint"
SAVE_TEMPORARY_PATH = "/api/duplicate-check/save-temporary"
REPLACE_TEMPORARY_PATH = "/api/duplicate-check/replace-temporary"
CHECK_PATH = "/api/duplicate-check/check"

DEFAULT_TEMPORARY_ID_THRESHOLD = 100_000_000


def generate_temporary_id(threshold: int = DEFAULT_TEMPORARY_ID_THRESHOLD) -> int:
    """Generate an id for an invoice that has not been persisted yet.

    Millisecond clock (mod 1e9) shifted by four digits plus a random
    suffix, offset past ``threshold`` so the id always reads as temporary.
    """
    millis = int(time.time() * 1000) % 1_000_000_000
    return threshold + 1 + millis * 10_000 + random.randrange(10_000)


def build_final_digest(
    invoice_id: int,
    vendor: str | None,
    invoice_date: date | None,
    total_amount: Decimal,
    line_items: Iterable[LineItem],
    username: str,
) -> str:
    """Build the deterministic text digest stored for a persisted invoice."""
    parts = [
        f"InvoiceID:{invoice_id}",
        f"Vendor:{vendor or 'Unknown'}",
        f"Date:{invoice_date.isoformat() if invoice_date else ''}",
        f"Amount:{total_amount:.2f}",
    ]
    products = [f"{item.product.name}({item.quantity:.1f})" for item in line_items]
    if products:
        parts.append(f"Products:{','.join(products)}")
    parts.append(f"User:{username}")
    return "|".join(parts)


class DuplicateCheckClient:
    """Failure-tolerant client for the duplicate detection service."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Application settings
            client: Optional preconfigured HTTP client (tests)
        """
        self.enabled = settings.duplicate_check_enabled
        self.temporary_id_threshold = settings.temporary_id_threshold
        self._client = client or httpx.Client(
            base_url=settings.duplicate_check_url,
            timeout=httpx.Timeout(
                settings.duplicate_read_timeout, connect=settings.duplicate_connect_timeout
            ),
        )

    def is_temporary_id(self, invoice_id: int | None) -> bool:
        """Ids above the threshold denote not-yet-persisted invoices."""
        return invoice_id is not None and invoice_id > self.temporary_id_threshold

    def _isolated(self, operation: str, call: Callable[[], T], default: T) -> T:
        if not self.enabled:
            logger.debug(f"Duplicate check disabled, skipping {operation}")
            return default
        try:
            result = call()
        except Exception as e:
            logger.warning(f"Duplicate service {operation} failed: {e}")
            metrics.duplicate_service_calls_total.labels(
                operation=operation, status="failed"
            ).inc()
            return default
        metrics.duplicate_service_calls_total.labels(operation=operation, status="success").inc()
        return result

    def _post_json(self, path: str, payload: dict[str, Any]) -> None:
        logger.debug(f"POST {path}: {payload}")
        response = self._client.post(path, json=payload)
        response.raise_for_status()

    def save_fingerprint(
        self,
        invoice_id: int,
        invoice_date: date | None,
        total_amount: Decimal,
        vendor: str | None,
        text_content: str,
        username: str,
        role: str,
    ) -> None:
        """Save a fingerprint for an already persisted invoice."""
        payload = {
            "invoiceId": invoice_id,
            "invoiceDate": invoice_date.isoformat() if invoice_date else None,
            "totalAmount": str(total_amount),
            "vendor": vendor,
            "textContent": text_content,
            "username": username,
            "role": role,
        }
        self._isolated(
            "save_fingerprint", lambda: self._post_json(SAVE_FINGERPRINT_PATH, payload), None
        )

    def save_temporary_fingerprint(
        self,
        temporary_id: int,
        invoice_date: date | None,
        total_amount: Decimal,
        vendor: str | None,
        text_content: str,
        username: str,
        role: str,
    ) -> None:
        """Save a fingerprint under a temporary id during upload screening."""
        logger.info(f"Saving temporary fingerprint: {temporary_id}")
        payload = {
            "invoiceId": temporary_id,
            "invoiceDate": invoice_date.isoformat() if invoice_date else None,
            "totalAmount": str(total_amount),
            "vendor": vendor,
            "textContent": text_content,
            "username": username,
            "role": role,
            "isTemporary": True,
        }
        self._isolated(
            "save_temporary", lambda: self._post_json(SAVE_TEMPORARY_PATH, payload), None
        )

    def replace_temporary_with_final(
        self,
        temporary_id: int,
        final_invoice_id: int,
        invoice_date: date | None,
        total_amount: Decimal,
        vendor: str | None,
        line_items: Iterable[LineItem],
        username: str,
        role: str,
    ) -> None:
        """Retarget the temporary fingerprint onto the persisted invoice id."""
        logger.info(f"Replacing temporary fingerprint {temporary_id} with {final_invoice_id}")
        payload = {
            "temporaryId": temporary_id,
            "finalInvoiceId": final_invoice_id,
            "invoiceDate": invoice_date.isoformat() if invoice_date else None,
            "totalAmount": str(total_amount),
            "vendor": vendor or "Unknown",
            "textContent": build_final_digest(
                final_invoice_id, vendor, invoice_date, total_amount, line_items, username
            ),
            "username": username,
            "role": role,
        }
        self._isolated(
            "replace_temporary", lambda: self._post_json(REPLACE_TEMPORARY_PATH, payload), None
        )

    def check_for_duplicates(
        self,
        file: UploadedFile | None,
        invoice_date: date | None,
        total_amount: Decimal | None,
        vendor: str | None,
        username: str,
        role: str,
        invoice_id: int | None,
        file_name: str | None,
    ) -> DuplicateCheckResponse:
        """Ask the service whether the upload duplicates an existing invoice.

        Returns:
            The service verdict, or the SERVICE_UNAVAILABLE default on any failure
        """
        data = {
            "invoiceDate": invoice_date.isoformat() if invoice_date else "",
            "totalAmount": str(total_amount) if total_amount is not None else "0",
            "username": username,
            "role": role,
            "invoiceId": str(invoice_id) if invoice_id is not None else "0",
            "isTemporary": "true" if self.is_temporary_id(invoice_id) else "false",
        }
        if vendor is not None:
            data["vendor"] = vendor
        if file_name is not None:
            data["fileName"] = file_name

        files = None
        if file is not None and not file.is_empty:
            files = {
                "file": (
                    file.filename or "upload",
                    file.data,
                    file.content_type or "application/octet-stream",
                )
            }

        def call() -> DuplicateCheckResponse:
            logger.info(f"Checking for duplicates - invoice/temp id: {invoice_id}")
            response = self._client.post(CHECK_PATH, data=data, files=files)
            response.raise_for_status()
            return DuplicateCheckResponse.model_validate(response.json())

        return self._isolated("check", call, DuplicateCheckResponse.unavailable())
