"""Invoice creation strategies.

A request is matched against an ordered list of creators; the first
whose predicate accepts it builds the draft. The predicates are mutually
exclusive, and a request carrying both a file and products is always
built as HYBRID, never as file-only.
"""

import logging
import time
from collections.abc import Callable
from typing import NamedTuple

from services.invoices.aggregator import LineItemAggregator
from services.invoices.errors import InvalidRequestError, NoSuitableCreatorError
from services.invoices.file_processing import FileProcessingResult, FileProcessor
from services.invoices.models import Invoice, InvoiceRequest, SourceKind, User
from services.invoices.validation import UploadValidator

logger = logging.getLogger(__name__)


class Creator(NamedTuple):
    name: str
    supports: Callable[[InvoiceRequest], bool]
    build: Callable[[InvoiceRequest, User], Invoice]


def _now_millis() -> int:
    return int(time.time() * 1000)


def resolve_file_name(requested: str | None, original: str | None, fallback_prefix: str) -> str:
    """Pick the display name: requested name, then original upload name, then a generated one."""
    if requested and requested.strip():
        return requested
    if original and original.strip():
        return original
    return f"{fallback_prefix}_{_now_millis()}"


class InvoiceFactory:
    """Builds invoice drafts from heterogeneous requests.

    Args:
        validator: Upload validator for file-bearing requests
        processor: Stores uploads and detects their kind
        aggregator: Builds line items for product-bearing requests
    """

    def __init__(
        self,
        validator: UploadValidator,
        processor: FileProcessor,
        aggregator: LineItemAggregator,
    ) -> None:
        self.validator = validator
        self.processor = processor
        self.aggregator = aggregator
        self.creators: list[Creator] = [
            Creator(
                "hybrid",
                lambda request: request.has_file and request.has_products,
                self._build_hybrid,
            ),
            Creator(
                "file",
                lambda request: request.has_file and not request.has_products,
                self._build_file,
            ),
            Creator(
                "form",
                lambda request: not request.has_file and request.has_products,
                self._build_form,
            ),
        ]

    def select(self, request: InvoiceRequest) -> Creator:
        """Return the first creator accepting the request.

        Raises:
            NoSuitableCreatorError: If the request has neither a file nor products
        """
        for creator in self.creators:
            if creator.supports(request):
                return creator
        raise NoSuitableCreatorError(
            "Cannot create invoice: No file or product information provided. "
            "Please provide either a file, product details, or both."
        )

    def create(self, request: InvoiceRequest, owner: User) -> Invoice:
        """Build a draft for the request.

        Raises:
            NoSuitableCreatorError: If no creator accepts the request
            InvalidRequestError: If the upload is invalid or cannot be stored
        """
        creator = self.select(request)
        logger.info(
            f"Creating {creator.name} invoice - file: {request.has_file}, "
            f"products: {len(request.product_quantities or {})}"
        )
        draft = creator.build(request, owner)
        if not draft.has_stored_file and not draft.line_items:
            raise InvalidRequestError("Invoice must have a stored file or at least one line item")
        return draft

    def _store_upload(self, request: InvoiceRequest) -> FileProcessingResult:
        self.validator.validate(request.file)
        result = self.processor.process(request.file)
        if not result.success:
            raise InvalidRequestError(f"File processing failed: {result.error}")
        return result

    def _build_file(self, request: InvoiceRequest, owner: User) -> Invoice:
        stored = self._store_upload(request)
        return Invoice(
            owner=owner,
            invoice_date=request.invoice_date,
            source_kind=SourceKind.FILE,
            file_name=resolve_file_name(request.file_name, stored.original_file_name, "invoice"),
            stored_file_name=stored.stored_file_name,
            original_file_name=stored.original_file_name,
            file_size=stored.file_size,
            file_kind=stored.file_kind,
        )

    def _build_form(self, request: InvoiceRequest, owner: User) -> Invoice:
        draft = Invoice(
            owner=owner,
            invoice_date=request.invoice_date,
            source_kind=SourceKind.FORM,
            file_name=resolve_file_name(request.file_name, None, f"webform_{owner.username}"),
        )
        draft.total_amount = self.aggregator.apply(draft, request.product_quantities)
        return draft

    def _build_hybrid(self, request: InvoiceRequest, owner: User) -> Invoice:
        self.validator.validate(request.file)
        draft = Invoice(
            owner=owner,
            invoice_date=request.invoice_date,
            source_kind=SourceKind.HYBRID,
            file_name=resolve_file_name(request.file_name, request.file.filename, "hybrid_invoice"),
        )
        # products resolve before the upload is stored so a lookup failure leaves no file behind
        draft.total_amount = self.aggregator.apply(draft, request.product_quantities)

        stored = self._store_upload(request)
        draft.stored_file_name = stored.stored_file_name
        draft.original_file_name = stored.original_file_name
        draft.file_size = stored.file_size
        draft.file_kind = stored.file_kind
        return draft
