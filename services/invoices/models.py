"""Domain models for the invoice lifecycle.

An ``Invoice`` with ``id=None`` is a draft: built by a creation strategy,
populated by the orchestrator and assigned an id by the repository on
first save. Line items and audit entries are owned by the invoice.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from services.extraction.schema import DocumentPayload


class SourceKind(str, Enum):
    """How the invoice content was supplied."""

    FILE = "FILE"
    FORM = "FORM"
    HYBRID = "HYBRID"


class FileKind(str, Enum):
    """Detected kind of a stored upload."""

    PDF = "PDF"
    IMAGE = "IMAGE"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class ActionType(str, Enum):
    """Audited action kinds."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"


class Role(str, Enum):
    USER = "USER"
    SUPERUSER = "SUPERUSER"
    AUDITOR = "AUDITOR"


class User(BaseModel):
    id: str
    username: str
    role: Role = Role.USER
    active: bool = True


class Product(BaseModel):
    id: int
    name: str
    unit_price: Decimal
    active: bool = True


class LineItem(BaseModel):
    """A product line on an invoice.

    The unit price is a snapshot taken when the line was built, not a live
    reference to the product's current price.
    """

    model_config = ConfigDict(frozen=True)

    product: Product
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price


class AuditEntry(BaseModel):
    """Immutable record of one action on an invoice.

    Attributes:
        invoice_id: Invoice the action applied to (None while still a draft)
        actor: Username of the user who performed the action
        action: Action kind
        timestamp: When the action was recorded
        old_values: Snapshot before the change (UPDATE only)
        new_values: Snapshot after the change (UPDATE only)
    """

    model_config = ConfigDict(frozen=True)

    invoice_id: int | None
    actor: str
    action: ActionType
    timestamp: datetime
    old_values: dict[str, str] | None = None
    new_values: dict[str, str] | None = None


class Invoice(BaseModel):
    """Invoice aggregate; a draft until the repository assigns an id."""

    id: int | None = None
    owner: User
    invoice_date: date | None = None
    source_kind: SourceKind
    file_name: str
    stored_file_name: str | None = None
    original_file_name: str | None = None
    file_size: int | None = None
    file_kind: FileKind | None = None
    total_amount: Decimal = Decimal("0")
    status: InvoiceStatus = InvoiceStatus.PENDING
    active: bool = True
    line_items: list[LineItem] = Field(default_factory=list)
    audit_log: list[AuditEntry] = Field(default_factory=list)

    @property
    def has_stored_file(self) -> bool:
        return bool(self.stored_file_name)


InvoiceDraft = Invoice


class UploadedFile(BaseModel):
    """An uploaded document as received with a request."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    filename: str | None = None
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_empty(self) -> bool:
        return not self.data

    def to_document(self) -> DocumentPayload:
        return DocumentPayload(data=self.data, filename=self.filename, content_type=self.content_type)


class InvoiceRequest(BaseModel):
    """Create or update request.

    Attributes:
        invoice_date: Explicit invoice date
        file_name: Requested display name
        product_quantities: Product id -> quantity; None means "not supplied"
        user_id: Target owner id (SUPERUSER creating on behalf of another user)
        file: Uploaded document
        status: Requested status (honoured for SUPERUSER updates only)
        total_amount: Explicit total, used for duplicate screening
    """

    invoice_date: date | None = None
    file_name: str | None = None
    product_quantities: dict[int, Decimal] | None = None
    user_id: str | None = None
    file: UploadedFile | None = None
    status: InvoiceStatus | None = None
    total_amount: Decimal | None = None

    @property
    def has_file(self) -> bool:
        return self.file is not None and not self.file.is_empty

    @property
    def has_products(self) -> bool:
        return bool(self.product_quantities)
