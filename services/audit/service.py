"""Audit trail for invoice mutations and accesses.

Snapshots are string-keyed maps of display strings so that before/after
comparisons do not depend on native types. Descriptions only mention the
tracked fields (status, total amount, file name), always in that order.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from services.invoices.models import ActionType, AuditEntry, Invoice, InvoiceStatus

logger = logging.getLogger(__name__)

ACTION_PHRASES = {
    ActionType.CREATE: "created this invoice",
    ActionType.UPDATE: "updated this invoice",
    ActionType.DELETE: "deleted this invoice",
    ActionType.VIEW: "viewed this invoice details",
    ActionType.UPLOAD: "uploaded a file for this invoice",
    ActionType.DOWNLOAD: "downloaded the invoice file",
}

# (snapshot key, phrase template) in description order
TRACKED_FIELDS: tuple[tuple[str, str], ...] = (
    ("status", "status from {old} to {new}"),
    ("totalAmount", "total amount from ${old} to ${new}"),
    ("fileName", "file name from '{old}' to '{new}'"),
)


def capture_state(invoice: Invoice) -> dict[str, str]:
    """Snapshot the audited fields of an invoice as display strings."""
    return {
        "invoiceDate": invoice.invoice_date.isoformat() if invoice.invoice_date else "",
        "fileType": invoice.source_kind.value,
        "fileName": invoice.file_name,
        "totalAmount": str(invoice.total_amount),
        "status": invoice.status.value,
    }


def describe(entry: AuditEntry) -> str:
    """Render a human-readable sentence for an audit entry.

    UPDATE entries with both snapshots list the tracked fields present in
    both maps; other keys are never mentioned.
    """
    phrase = f"{entry.actor} {ACTION_PHRASES[entry.action]}"
    if entry.action != ActionType.UPDATE or entry.old_values is None or entry.new_values is None:
        return phrase

    changes = [
        template.format(old=entry.old_values[key], new=entry.new_values[key])
        for key, template in TRACKED_FIELDS
        if key in entry.old_values and key in entry.new_values
    ]
    if not changes:
        return phrase
    return f"{phrase}: {', '.join(changes)}"


class AuditLogView(BaseModel):
    """An audit entry together with its rendered description."""

    actor: str
    action: ActionType
    timestamp: datetime
    old_values: dict[str, str] | None = None
    new_values: dict[str, str] | None = None
    description: str


def newest_first(entries: list[AuditEntry]) -> list[AuditLogView]:
    """Render entries newest first; entries sharing a timestamp keep reverse insertion order."""
    ordered = sorted(
        enumerate(entries), key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True
    )
    return [
        AuditLogView(
            actor=entry.actor,
            action=entry.action,
            timestamp=entry.timestamp,
            old_values=entry.old_values,
            new_values=entry.new_values,
            description=describe(entry),
        )
        for _, entry in ordered
    ]


class AuditTrail:
    """Appends audit entries to an invoice's owned log.

    Args:
        clock: Timestamp source (tests pin it)
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self.clock = clock

    def record(
        self,
        invoice: Invoice,
        actor: str | None,
        action: ActionType,
        old_values: dict[str, str] | None = None,
        new_values: dict[str, str] | None = None,
    ) -> AuditEntry:
        """Append an entry to the invoice's audit log.

        Value maps are kept only for UPDATE entries.

        Raises:
            ValueError: If the actor is missing
        """
        if not actor:
            raise ValueError("Audit entry requires an actor")

        if action != ActionType.UPDATE:
            old_values = new_values = None

        entry = AuditEntry(
            invoice_id=invoice.id,
            actor=actor,
            action=action,
            timestamp=self.clock(),
            old_values=dict(old_values) if old_values is not None else None,
            new_values=dict(new_values) if new_values is not None else None,
        )
        invoice.audit_log.append(entry)
        logger.debug(f"Audit {action.value} on invoice {invoice.id} by {actor}")
        return entry

    def record_status_change(
        self,
        invoice: Invoice,
        actor: str | None,
        old_status: InvoiceStatus,
        new_status: InvoiceStatus,
    ) -> AuditEntry:
        return self.record(
            invoice,
            actor,
            ActionType.UPDATE,
            {"status": old_status.value},
            {"status": new_status.value},
        )
