"""Response models of the duplicate detection service.

The service speaks camelCase JSON; models accept either spelling.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class SimilarInvoice(BaseModel):
    """An existing invoice the service considers similar."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    invoice_id: int | None = None
    file_name: str | None = None
    upload_date: date | None = None
    total_amount: Decimal | None = None
    similarity_score: Decimal | None = None
    match_reason: str | None = None


class DuplicateCheckResponse(BaseModel):
    """Verdict of a duplicate check.

    Attributes:
        duplicate: Whether the service flagged the upload as a duplicate
        confidence_score: Confidence of the verdict in [0, 1]
        check_method: Method the service used, or SERVICE_UNAVAILABLE
        similar_invoices: Existing invoices that matched
        recommendation: Free-text advice from the service
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    duplicate: bool = False
    confidence_score: Decimal = Decimal("0")
    check_method: str | None = None
    similar_invoices: list[SimilarInvoice] = Field(default_factory=list)
    recommendation: str | None = None

    @classmethod
    def unavailable(cls, reason: str | None = None) -> "DuplicateCheckResponse":
        """Default verdict used whenever the service cannot be consulted."""
        recommendation = "Duplicate check service unavailable. Proceeding with upload."
        if reason:
            recommendation = f"{recommendation} ({reason})"
        return cls(
            duplicate=False,
            confidence_score=Decimal("0"),
            check_method=SERVICE_UNAVAILABLE,
            recommendation=recommendation,
        )
