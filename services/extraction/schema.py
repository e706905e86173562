"""Invoice data models produced by document extraction.

Field names mirror the JSON contract given to the language model
(invoiceDate, totalAmount, vendor, items[]).
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class DocumentPayload(BaseModel):
    """Raw document handed to an extraction provider."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    filename: str | None = None
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


class ExtractedItem(BaseModel):
    """A single line candidate read from the document.

    Every field is independently nullable; the model frequently omits some.
    """

    model_config = ConfigDict(frozen=True)

    name: str | None = Field(None, description="Product or service name")
    quantity: Decimal | None = Field(None, description="Quantity purchased")
    unit_price: Decimal | None = Field(None, description="Price per unit")
    subtotal: Decimal | None = Field(None, description="Line amount (quantity x unit price)")

    def amount(self) -> Decimal | None:
        """Return the usable line amount, or None when nothing can be derived.

        The explicit subtotal wins; otherwise quantity x unit price when both exist.
        """
        if self.subtotal is not None:
            return self.subtotal
        if self.quantity is not None and self.unit_price is not None:
            return self.quantity * self.unit_price
        return None


class ExtractionResult(BaseModel):
    """Outcome of one extraction attempt.

    Attributes:
        success: Whether any useful invoice data was extracted
        invoice_date: Invoice issue date
        total_amount: Grand total, possibly reconciled from line items
        vendor: Supplier name
        items: Ordered line candidates
        raw_response: Raw model text kept for diagnostics
        error: Error message if extraction failed
        provider: Name of provider that performed extraction
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    invoice_date: date | None = None
    total_amount: Decimal | None = None
    vendor: str | None = None
    items: tuple[ExtractedItem, ...] = ()
    raw_response: str | None = None
    error: str | None = None
    provider: str | None = None

    @classmethod
    def failure(
        cls, error: str, provider: str | None = None, raw_response: str | None = None
    ) -> "ExtractionResult":
        """Build an unsuccessful result carrying only the error message."""
        return cls(success=False, error=error, provider=provider, raw_response=raw_response)
