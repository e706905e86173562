"""Invoice lifecycle orchestration.

Composes creation strategies, document extraction, line-item
aggregation, the audit trail and duplicate screening into the invoice
operations. Extraction and duplicate screening are advisory and degrade
to defaults; validation, lookups, access checks, storage and auditing
are authoritative and raise.

Concurrent updates of the same invoice are not coordinated here; the
last save wins.
"""

import hashlib
import logging
import re
from decimal import Decimal
from pathlib import PurePath

from pydantic import BaseModel

from services.audit.service import AuditLogView, AuditTrail, capture_state, newest_first
from services.duplicates.client import DuplicateCheckClient, generate_temporary_id
from services.duplicates.schema import DuplicateCheckResponse
from services.extraction.base import ExtractionProvider
from services.extraction.factory import create_extraction_service
from services.extraction.schema import ExtractionResult
from services.invoices.aggregator import LineItemAggregator
from services.invoices.creators import InvoiceFactory
from services.invoices.errors import (
    AccessDeniedError,
    DuplicateInvoiceError,
    InvalidRequestError,
    NotFoundError,
)
from services.invoices.file_processing import FileProcessor
from services.invoices.models import (
    ActionType,
    Invoice,
    InvoiceRequest,
    InvoiceStatus,
    Role,
    SourceKind,
    UploadedFile,
    User,
)
from services.invoices.repository import InvoiceRepository, ProductRepository, UserRepository
from services.invoices.validation import UploadValidator
from services.shared import metrics
from services.shared.config import Settings
from services.storage.service import FileStorage, StorageError, content_type_for, create_file_storage

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"


class FileDownload(BaseModel):
    """Stored document returned by a download."""

    content: bytes
    content_type: str
    file_name: str | None = None


def _parse_role(role: Role | str) -> Role:
    try:
        return Role(str(role.value if isinstance(role, Role) else role).upper())
    except ValueError:
        raise AccessDeniedError(f"Unknown role: {role}") from None


def _vendor_from_file_name(file_name: str | None) -> str | None:
    """Guess a vendor from an upload name: stem, separators as spaces, digits removed."""
    if not file_name:
        return None
    stem = PurePath(file_name).stem
    cleaned = re.sub(r"\d+", "", re.sub(r"[_-]", " ", stem)).strip()
    return cleaned or None


class InvoiceService:
    """Invoice create/update/delete/read operations.

    Args:
        settings: Application settings
        invoices: Invoice persistence
        products: Product lookup
        users: User lookup
        storage: File storage for uploaded documents
        extractor: Document extraction provider
        duplicates: Duplicate detection client
        audit: Audit trail (default clock when omitted)
    """

    def __init__(
        self,
        settings: Settings,
        invoices: InvoiceRepository,
        products: ProductRepository,
        users: UserRepository,
        storage: FileStorage,
        extractor: ExtractionProvider,
        duplicates: DuplicateCheckClient,
        audit: AuditTrail | None = None,
    ) -> None:
        self.settings = settings
        self.invoices = invoices
        self.products = products
        self.users = users
        self.storage = storage
        self.extractor = extractor
        self.duplicates = duplicates
        self.audit = audit or AuditTrail()

        self.validator = UploadValidator(settings)
        self.processor = FileProcessor(storage)
        self.aggregator = LineItemAggregator(products, strict=settings.strict_product_lookup)
        self.factory = InvoiceFactory(self.validator, self.processor, self.aggregator)

        metrics.record_service_info(
            settings.service_name, settings.service_version, settings.environment
        )

    # ==================== CREATE ====================

    def create_invoice(self, request: InvoiceRequest, username: str, role: Role | str) -> Invoice:
        """Create an invoice from a file, products, or both.

        Raises:
            AccessDeniedError: If the role may not create invoices or the
                target owner is inactive
            NotFoundError: If the user, target owner or products are unknown
            InvalidRequestError: If the request or upload is invalid
            DuplicateInvoiceError: If screening rejects the upload
        """
        role = _parse_role(role)
        logger.info(
            f"Creating invoice - user: {username}, role: {role.value}, "
            f"file: {request.has_file}, products: {len(request.product_quantities or {})}"
        )

        current_user = self._get_user(username)
        if role not in (Role.USER, Role.SUPERUSER):
            raise AccessDeniedError("You are not allowed to create an invoice")
        owner = self._determine_owner(current_user, role, request.user_id)

        if not request.has_file and not request.has_products:
            raise InvalidRequestError(
                "Invoice must have either a file or product information. "
                "Please provide at least one."
            )
        if request.has_file:
            self.validator.validate(request.file)

        extraction = self._extract(request.file) if request.has_file else None

        invoice_date = request.invoice_date
        if invoice_date is None and extraction is not None and extraction.success:
            invoice_date = extraction.invoice_date
            if invoice_date is not None:
                logger.info(f"Using extracted invoice date: {invoice_date}")
        if invoice_date is None:
            raise InvalidRequestError("Invoice date is required")
        request = request.model_copy(update={"invoice_date": invoice_date})

        temporary_id = generate_temporary_id(self.settings.temporary_id_threshold)
        self._screen(request, extraction, username, role, temporary_id)

        invoice = self.factory.create(request, owner)

        extracted_total = extraction.total_amount if extraction and extraction.success else None
        if extracted_total is not None:
            invoice.total_amount = extracted_total
            source = "extracted"
        elif request.has_products:
            source = "products"
        else:
            invoice.total_amount = Decimal("0")
            source = "default"
        metrics.total_source_total.labels(source=source).inc()
        logger.info(f"Invoice total {invoice.total_amount} taken from {source}")

        self.audit.record(invoice, current_user.username, ActionType.CREATE)
        saved = self.invoices.save(invoice)
        metrics.invoices_created_total.labels(source_kind=saved.source_kind.value).inc()
        logger.info(
            f"Invoice created - id: {saved.id}, kind: {saved.source_kind.value}, "
            f"amount: {saved.total_amount}"
        )

        self.duplicates.replace_temporary_with_final(
            temporary_id,
            saved.id,
            saved.invoice_date,
            saved.total_amount,
            saved.file_name,
            saved.line_items,
            username,
            role.value,
        )
        return saved

    def _determine_owner(self, current_user: User, role: Role, target_user_id: str | None) -> User:
        if role != Role.SUPERUSER or not target_user_id or not target_user_id.strip():
            return current_user

        target = self.users.find_by_id(target_user_id)
        if target is None:
            raise NotFoundError(f"Target user not found: {target_user_id}")
        if not target.active:
            raise AccessDeniedError(f"Cannot create invoice for inactive user: {target_user_id}")

        logger.info(f"SUPERUSER {current_user.username} creating invoice for {target.username}")
        return target

    def _extract(self, upload: UploadedFile) -> ExtractionResult | None:
        content_type = upload.content_type or ""
        if not (content_type.startswith("image/") or content_type == "application/pdf"):
            logger.info(f"Skipping extraction - unsupported file type: {content_type}")
            return None

        result = self.extractor.extract(upload.to_document())
        if result.success:
            logger.info(
                f"Extraction succeeded - total: {result.total_amount}, "
                f"date: {result.invoice_date}, vendor: {result.vendor}"
            )
        else:
            logger.warning(f"Extraction failed, falling back: {result.error}")
        return result

    # ==================== DUPLICATE SCREENING ====================

    def _screen(
        self,
        request: InvoiceRequest,
        extraction: ExtractionResult | None,
        username: str,
        role: Role,
        temporary_id: int,
    ) -> None:
        amount = self._screening_amount(request, extraction)
        vendor = self._screening_vendor(request, extraction)

        self.duplicates.save_temporary_fingerprint(
            temporary_id,
            request.invoice_date,
            amount,
            vendor,
            self._temporary_fingerprint_text(temporary_id, request, vendor, amount, username),
            username,
            role.value,
        )
        verdict = self.duplicates.check_for_duplicates(
            request.file,
            request.invoice_date,
            amount,
            vendor,
            username,
            role.value,
            temporary_id,
            request.file_name,
        )
        self._apply_verdict(verdict)

    def _screening_amount(
        self, request: InvoiceRequest, extraction: ExtractionResult | None
    ) -> Decimal:
        if request.total_amount is not None:
            return request.total_amount

        if request.has_products:
            resolved = self.products.find_all_active_by_ids(request.product_quantities.keys())
            estimate = sum(
                (
                    product.unit_price * Decimal(str(request.product_quantities[product.id]))
                    for product in resolved
                ),
                Decimal("0"),
            )
            if estimate > 0:
                return estimate

        if extraction is not None and extraction.success and extraction.total_amount:
            if extraction.total_amount > 0:
                return extraction.total_amount

        return Decimal("0")

    @staticmethod
    def _screening_vendor(request: InvoiceRequest, extraction: ExtractionResult | None) -> str:
        if extraction is not None and extraction.success and extraction.vendor:
            return extraction.vendor
        if request.file is not None:
            from_name = _vendor_from_file_name(request.file.filename)
            if from_name:
                return from_name
        if request.file_name and request.file_name.strip():
            return request.file_name
        return UNKNOWN_VENDOR

    @staticmethod
    def _temporary_fingerprint_text(
        temporary_id: int,
        request: InvoiceRequest,
        vendor: str,
        amount: Decimal,
        username: str,
    ) -> str:
        parts = [
            "[TEMPORARY_FINGERPRINT]",
            f"ID:{temporary_id}",
            f"Date:{request.invoice_date.isoformat() if request.invoice_date else ''}",
            f"Amount:{amount}",
            f"Vendor:{vendor}",
            f"User:{username}",
        ]
        if request.has_products:
            parts.append(f"ProductsCount:{len(request.product_quantities)}")
        if request.has_file:
            parts.append(f"FileHash:{hashlib.sha256(request.file.data).hexdigest()[:20]}")
        return "|".join(parts)

    def _apply_verdict(self, verdict: DuplicateCheckResponse) -> None:
        confidence = verdict.confidence_score
        threshold = Decimal(str(self.settings.duplicate_rejection_threshold))
        similar_count = len(verdict.similar_invoices)

        if verdict.duplicate and confidence >= threshold:
            for similar in verdict.similar_invoices:
                logger.error(
                    f"Similar invoice #{similar.invoice_id}: {similar.total_amount} "
                    f"on {similar.upload_date} (score: {similar.similarity_score})"
                )
            raise DuplicateInvoiceError(
                f"Duplicate invoice detected ({confidence * 100:.0f}% confidence). "
                f"Similar to {similar_count} existing invoices.",
                confidence_score=confidence,
                similar_invoices=verdict.similar_invoices,
            )

        if verdict.duplicate:
            logger.warning(
                f"Potential duplicate ({confidence * 100:.0f}% confidence) - allowing with warning"
            )
        else:
            logger.info(
                f"No duplicates found (method: {verdict.check_method}, confidence: {confidence})"
            )

    # ==================== UPDATE ====================

    def update_invoice(
        self, invoice_id: int, request: InvoiceRequest, username: str, role: Role | str
    ) -> Invoice:
        """Update an invoice's fields, file and line items.

        Total priority: extracted total (> 0) of a new file, then the
        product total when a non-empty product map is supplied, then the
        previous total when > 0, then 0. A supplied empty map clears the
        line items; an absent map leaves them untouched.

        The update is all-or-nothing: when any step fails the stored invoice
        is unchanged and no new file is kept.

        Raises:
            NotFoundError: If the invoice, user or products are unknown
            AccessDeniedError: If the user may not modify the invoice
            InvalidRequestError: If a new upload is invalid
        """
        role = _parse_role(role)
        logger.info(f"Updating invoice - id: {invoice_id}, user: {username}, role: {role.value}")

        current = self._get_active_invoice(invoice_id)
        current_user = self._get_user(username)
        self._check_modification(current, username, role)

        # changes are staged on a copy; the stored row only changes on save
        invoice = current.model_copy(deep=True)
        old_values = capture_state(current)
        previous_total = current.total_amount

        extraction = None
        if request.has_file:
            self.validator.validate(request.file)
            extraction = self._extract(request.file)

        product_total = None
        if request.product_quantities is not None:
            product_total = self.aggregator.apply(invoice, request.product_quantities)

        if request.invoice_date is not None:
            invoice.invoice_date = request.invoice_date
        elif extraction is not None and extraction.success and extraction.invoice_date is not None:
            invoice.invoice_date = extraction.invoice_date
        if request.file_name and request.file_name.strip():
            invoice.file_name = request.file_name
        if role == Role.SUPERUSER and request.status is not None:
            invoice.status = request.status

        extracted_total = extraction.total_amount if extraction and extraction.success else None
        if extracted_total is not None and extracted_total > 0:
            invoice.total_amount = extracted_total
            source = "extracted"
        elif request.has_products and product_total is not None:
            invoice.total_amount = product_total
            source = "products"
        elif previous_total > 0:
            invoice.total_amount = previous_total
            source = "previous"
        else:
            invoice.total_amount = Decimal("0")
            source = "default"

        replaced_file = None
        if request.has_file:
            replaced_file = self._attach_upload(invoice, request.file)

        if invoice.has_stored_file:
            invoice.source_kind = SourceKind.HYBRID if invoice.line_items else SourceKind.FILE
        else:
            invoice.source_kind = SourceKind.FORM

        new_values = capture_state(invoice)
        self.audit.record(invoice, current_user.username, ActionType.UPDATE, old_values, new_values)
        try:
            saved = self.invoices.save(invoice)
        except Exception:
            if request.has_file:
                self._delete_stored_file(invoice.stored_file_name)
            raise

        if replaced_file:
            self._delete_stored_file(replaced_file)
        metrics.total_source_total.labels(source=source).inc()
        logger.info(f"Invoice updated - id: {invoice_id}, amount: {saved.total_amount} ({source})")
        return saved

    def _attach_upload(self, invoice: Invoice, upload: UploadedFile) -> str | None:
        """Store a validated upload on the invoice and return the replaced stored name."""
        stored = self.processor.process(upload)
        if not stored.success:
            raise InvalidRequestError(f"File processing failed: {stored.error}")

        replaced = invoice.stored_file_name
        invoice.stored_file_name = stored.stored_file_name
        invoice.original_file_name = stored.original_file_name
        invoice.file_size = stored.file_size
        invoice.file_kind = stored.file_kind
        return replaced

    def _delete_stored_file(self, stored_file_name: str | None) -> None:
        if not stored_file_name:
            return
        try:
            self.storage.delete(stored_file_name)
        except StorageError as e:
            logger.error(f"Could not delete stored file {stored_file_name}: {e}")

    def update_status(
        self, invoice_id: int, new_status: InvoiceStatus | str, username: str, role: Role | str
    ) -> Invoice:
        """Change an invoice's status (SUPERUSER only).

        Raises:
            AccessDeniedError: If the role is not SUPERUSER
            InvalidRequestError: If the status is unknown
        """
        role = _parse_role(role)
        invoice = self._get_active_invoice(invoice_id)
        if role != Role.SUPERUSER:
            raise AccessDeniedError("Only SUPERUSER can update invoice status")

        current_user = self._get_user(username)
        try:
            status = InvoiceStatus(
                new_status.value if isinstance(new_status, InvoiceStatus) else new_status.upper()
            )
        except (AttributeError, ValueError):
            raise InvalidRequestError(f"Invalid invoice status: {new_status}") from None

        old_status = invoice.status
        self.audit.record_status_change(invoice, current_user.username, old_status, status)
        invoice.status = status
        saved = self.invoices.save(invoice)
        logger.info(f"Invoice status updated - id: {invoice_id}, {old_status.value} -> {status.value}")
        return saved

    # ==================== DELETE ====================

    def delete_invoice(self, invoice_id: int, username: str, role: Role | str) -> None:
        """Soft-delete an invoice (owner or SUPERUSER)."""
        role = _parse_role(role)
        invoice = self._get_active_invoice(invoice_id)
        self._check_modification(invoice, username, role)
        current_user = self._get_user(username)

        invoice.active = False
        self.audit.record(invoice, current_user.username, ActionType.DELETE)
        self.invoices.save(invoice)
        logger.info(f"Invoice deleted (soft delete) - id: {invoice_id}")

    # ==================== READ ====================

    def get_invoice(self, invoice_id: int, username: str, role: Role | str) -> Invoice:
        role = _parse_role(role)
        invoice = self._get_active_invoice(invoice_id)
        self._check_access(invoice, username, role)
        return invoice

    def list_invoices(
        self, username: str, role: Role | str, page: int = 0, size: int = 20
    ) -> list[Invoice]:
        """List active invoices, newest first; USER sees only their own."""
        role = _parse_role(role)
        if page < 0 or size <= 0:
            raise InvalidRequestError("Page must be >= 0 and size must be > 0")
        owner = self._get_user(username) if role == Role.USER else None
        return self.invoices.list_active(owner, page, size)

    def get_audit_logs(self, invoice_id: int, username: str, role: Role | str) -> list[AuditLogView]:
        role = _parse_role(role)
        invoice = self._get_active_invoice(invoice_id)
        self._check_access(invoice, username, role)
        return newest_first(invoice.audit_log)

    def download_file(self, invoice_id: int, username: str, role: Role | str) -> FileDownload:
        """Return the stored document of an invoice and record the download.

        Raises:
            NotFoundError: If the invoice has no stored file or it cannot be loaded
        """
        role = _parse_role(role)
        invoice = self._get_active_invoice(invoice_id)
        self._check_access(invoice, username, role)

        if invoice.source_kind == SourceKind.FORM or not invoice.has_stored_file:
            raise NotFoundError("This invoice has no file to download")

        try:
            content = self.storage.load(invoice.stored_file_name)
        except StorageError as e:
            raise NotFoundError(f"File not found: {e}") from e

        current_user = self._get_user(username)
        self.audit.record(invoice, current_user.username, ActionType.DOWNLOAD)
        self.invoices.save(invoice)

        return FileDownload(
            content=content,
            content_type=content_type_for(invoice.file_kind.value if invoice.file_kind else None),
            file_name=invoice.original_file_name,
        )

    # ==================== HELPERS ====================

    def _get_user(self, username: str) -> User:
        user = self.users.find_by_username(username)
        if user is None:
            raise NotFoundError(f"User not found: {username}")
        return user

    def _get_active_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.invoices.find_active(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found with id: {invoice_id}")
        return invoice

    @staticmethod
    def _check_access(invoice: Invoice, username: str, role: Role) -> None:
        if role in (Role.SUPERUSER, Role.AUDITOR) or invoice.owner.username == username:
            return
        raise AccessDeniedError("You cannot access this invoice")

    @staticmethod
    def _check_modification(invoice: Invoice, username: str, role: Role) -> None:
        if role == Role.SUPERUSER or invoice.owner.username == username:
            return
        raise AccessDeniedError("You cannot modify this invoice")


def create_invoice_service(
    settings: Settings,
    invoices: InvoiceRepository,
    products: ProductRepository,
    users: UserRepository,
) -> InvoiceService:
    """Wire an InvoiceService from settings and the given persistence collaborators."""
    return InvoiceService(
        settings,
        invoices,
        products,
        users,
        storage=create_file_storage(settings),
        extractor=create_extraction_service(settings),
        duplicates=DuplicateCheckClient(settings),
    )
