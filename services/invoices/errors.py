"""Exceptions raised by the invoice lifecycle.

Validation, lookup and access failures propagate to the caller.
Extraction and duplicate-service failures never reach this hierarchy;
they are absorbed at their own boundaries.
"""

from decimal import Decimal
from typing import Any


class InvoiceError(Exception):
    """Base class for invoice lifecycle errors."""


class InvalidRequestError(InvoiceError):
    """Bad upload, unsupported type or an unusable request shape."""


class NoSuitableCreatorError(InvalidRequestError):
    """No creation strategy accepts the request."""


class NotFoundError(InvoiceError):
    """Unknown or inactive invoice, product, user or stored file."""


class AccessDeniedError(InvoiceError):
    """Role or ownership check failed."""


class DuplicateInvoiceError(InvoiceError):
    """Upload rejected by duplicate screening."""

    def __init__(
        self,
        message: str,
        confidence_score: Decimal,
        similar_invoices: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.confidence_score = confidence_score
        self.similar_invoices = similar_invoices or []
