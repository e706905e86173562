"""Defensive field reading and total reconciliation for extracted invoices.

Each field is read independently: a missing or null key yields None, and
a malformed date or number yields None plus a logged warning. Nothing in
this module raises for bad model output.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from services.extraction.schema import ExtractedItem, ExtractionResult

logger = logging.getLogger(__name__)

_CURRENCY_NOISE_RE = re.compile(r"[\s$€£¥,]")

NO_USEFUL_DATA_ERROR = "AI could not extract any useful invoice data from the document"


def read_date(payload: dict[str, Any], key: str) -> date | None:
    """Read an ISO-8601 date, returning None when absent or malformed."""
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        logger.warning(f"Invalid {key} value: {value!r}")
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        logger.warning(f"Invalid {key} format: {text!r}")
        return None


def read_decimal(payload: dict[str, Any], key: str) -> Decimal | None:
    """Read a numeric field as Decimal.

    Accepts JSON numbers and numeric strings; currency symbols and
    thousands separators inside strings are ignored.
    """
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        logger.warning(f"Invalid {key} value: {value!r}")
        return None
    if isinstance(value, int | float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = _CURRENCY_NOISE_RE.sub("", value)
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            logger.warning(f"Invalid {key} value: {value!r}")
            return None
    else:
        logger.warning(f"Invalid {key} value: {value!r}")
        return None

    if not number.is_finite():
        logger.warning(f"Non-finite {key} value: {value!r}")
        return None
    return number


def read_text(payload: dict[str, Any], key: str) -> str | None:
    """Read a string field, trimming whitespace; blank becomes None."""
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        logger.warning(f"Invalid {key} value: {value!r}")
        return None
    text = str(value).strip()
    return text or None


def read_items(payload: dict[str, Any]) -> list[ExtractedItem]:
    """Read the items array, skipping entries that carry no data at all."""
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        return []

    items: list[ExtractedItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping non-object item: {raw!r}")
            continue
        item = ExtractedItem(
            name=read_text(raw, "name"),
            quantity=read_decimal(raw, "quantity"),
            unit_price=read_decimal(raw, "unitPrice"),
            subtotal=read_decimal(raw, "subtotal"),
        )
        if any(v is not None for v in (item.name, item.quantity, item.unit_price, item.subtotal)):
            items.append(item)
    return items


def reconcile_total(items: list[ExtractedItem]) -> Decimal | None:
    """Compute a total from line items.

    Per item: subtotal if present, else quantity x unit price if both are
    present, else the item is skipped. Returns None when no item yields an
    amount.
    """
    total = Decimal("0")
    counted = 0
    for item in items:
        amount = item.amount()
        if amount is None:
            continue
        total += amount
        counted += 1
        logger.debug(f"Item {item.name!r}: {amount}")

    if counted == 0:
        logger.warning("No valid items found to calculate total")
        return None

    logger.info(f"Calculated total from {counted} items: {total}")
    return total


def build_result(
    payload: dict[str, Any], raw_response: str | None = None, provider: str | None = None
) -> ExtractionResult:
    """Turn a parsed model payload into an ExtractionResult.

    Applies the reconciliation rule: when totalAmount is absent but items
    exist, the total is derived from the items. A payload with no date,
    total, vendor or items is reported as unsuccessful.
    """
    invoice_date = read_date(payload, "invoiceDate")
    total_amount = read_decimal(payload, "totalAmount")
    vendor = read_text(payload, "vendor")
    items = read_items(payload)

    if total_amount is None and items:
        total_amount = reconcile_total(items)
        if total_amount is None:
            logger.warning("Total amount missing and cannot be calculated from items")
    elif total_amount is None:
        logger.warning("No total amount found and no items to calculate from")

    if total_amount is None and invoice_date is None and vendor is None and not items:
        logger.error("Extraction produced no useful data")
        return ExtractionResult.failure(
            NO_USEFUL_DATA_ERROR, provider=provider, raw_response=raw_response
        )

    return ExtractionResult(
        success=True,
        invoice_date=invoice_date,
        total_amount=total_amount,
        vendor=vendor,
        items=tuple(items),
        raw_response=raw_response,
        provider=provider,
    )
