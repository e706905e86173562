"""Persistence collaborators for invoices, products and users.

The protocols describe what the lifecycle needs from a store; the
in-memory implementations back tests and the command-line tools.
Deleting an invoice is a flag on the row, never removal.
"""

import itertools
from collections.abc import Iterable
from typing import Protocol

from services.invoices.models import Invoice, Product, User


class InvoiceRepository(Protocol):
    def save(self, invoice: Invoice) -> Invoice: ...

    def find_by_id(self, invoice_id: int) -> Invoice | None: ...

    def find_active(self, invoice_id: int) -> Invoice | None: ...

    def list_active(self, owner: User | None, page: int, size: int) -> list[Invoice]: ...


class ProductRepository(Protocol):
    def find_all_active_by_ids(self, ids: Iterable[int]) -> list[Product]: ...


class UserRepository(Protocol):
    def find_by_username(self, username: str) -> User | None: ...

    def find_by_id(self, user_id: str) -> User | None: ...


class InMemoryInvoiceRepository:
    """Dict-backed invoice store assigning sequential ids on first save.

    Rows are stored and handed out as deep copies, so a caller mutating a
    loaded invoice changes nothing until it saves.
    """

    def __init__(self) -> None:
        self._rows: dict[int, Invoice] = {}
        self._ids = itertools.count(1)

    def save(self, invoice: Invoice) -> Invoice:
        if invoice.id is None:
            invoice.id = next(self._ids)
            for index, entry in enumerate(invoice.audit_log):
                if entry.invoice_id is None:
                    invoice.audit_log[index] = entry.model_copy(update={"invoice_id": invoice.id})
        self._rows[invoice.id] = invoice.model_copy(deep=True)
        return invoice

    def find_by_id(self, invoice_id: int) -> Invoice | None:
        invoice = self._rows.get(invoice_id)
        return invoice.model_copy(deep=True) if invoice is not None else None

    def find_active(self, invoice_id: int) -> Invoice | None:
        invoice = self._rows.get(invoice_id)
        if invoice is None or not invoice.active:
            return None
        return invoice.model_copy(deep=True)

    def list_active(self, owner: User | None, page: int, size: int) -> list[Invoice]:
        """List active invoices, newest id first.

        Args:
            owner: Restrict to invoices owned by this user (None for all)
            page: Zero-based page number
            size: Page size
        """
        rows = [
            invoice
            for invoice in self._rows.values()
            if invoice.active and (owner is None or invoice.owner.id == owner.id)
        ]
        rows.sort(key=lambda invoice: invoice.id or 0, reverse=True)
        start = page * size
        return [invoice.model_copy(deep=True) for invoice in rows[start : start + size]]


class InMemoryProductRepository:
    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._rows = {product.id: product for product in products}

    def add(self, product: Product) -> None:
        self._rows[product.id] = product

    def find_all_active_by_ids(self, ids: Iterable[int]) -> list[Product]:
        found = []
        for product_id in ids:
            product = self._rows.get(product_id)
            if product is not None and product.active:
                found.append(product)
        return found


class InMemoryUserRepository:
    def __init__(self, users: Iterable[User] = ()) -> None:
        self._rows = {user.id: user for user in users}

    def add(self, user: User) -> None:
        self._rows[user.id] = user

    def find_by_username(self, username: str) -> User | None:
        for user in self._rows.values():
            if user.username == username:
                return user
        return None

    def find_by_id(self, user_id: str) -> User | None:
        return self._rows.get(user_id)
