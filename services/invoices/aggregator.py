"""Line-item aggregation shared by invoice creation and update."""

import logging
from decimal import Decimal

from services.invoices.errors import InvalidRequestError, NotFoundError
from services.invoices.models import Invoice, LineItem
from services.invoices.repository import ProductRepository

logger = logging.getLogger(__name__)


def _to_decimal(value: Decimal | float | int) -> Decimal:
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


class LineItemAggregator:
    """Resolves requested products and rebuilds an invoice's line items.

    Args:
        products: Product lookup collaborator
        strict: Raise NotFoundError when any requested id does not resolve,
            instead of skipping it
    """

    def __init__(self, products: ProductRepository, strict: bool = False) -> None:
        self.products = products
        self.strict = strict

    def apply(self, invoice: Invoice, quantities: dict[int, Decimal] | None) -> Decimal:
        """Replace the invoice's line items and return their total.

        An empty or absent map clears the line items and returns 0.

        Raises:
            NotFoundError: If none of the ids resolve, or (strict mode) any id
                does not resolve
        """
        if not quantities:
            invoice.line_items.clear()
            logger.debug("No products to process for invoice")
            return Decimal("0")

        resolved = self.products.find_all_active_by_ids(quantities.keys())
        if not resolved:
            raise NotFoundError("No valid products found with provided IDs")

        found_ids = {product.id for product in resolved}
        missing_ids = sorted(set(quantities) - found_ids)
        if missing_ids:
            if self.strict:
                raise NotFoundError(f"Some products are not found or inactive: {missing_ids}")
            logger.warning(f"Skipping unresolved product ids: {missing_ids}")

        line_items = []
        for product in resolved:
            quantity = _to_decimal(quantities[product.id])
            if quantity <= 0:
                raise InvalidRequestError(
                    f"Quantity for product {product.id} must be greater than zero"
                )
            line_items.append(
                LineItem(product=product, quantity=quantity, unit_price=product.unit_price)
            )

        invoice.line_items.clear()
        invoice.line_items.extend(line_items)

        total = sum((item.subtotal for item in line_items), Decimal("0"))
        logger.debug(f"Processed {len(line_items)} products, total amount: {total}")
        return total
