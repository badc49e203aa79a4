"""
Collaborator interfaces for the checkout engine.

Provides abstract bases for the four stores the session manager consumes
and in-memory implementations for development and tests:
- `CatalogLookup` / `MemoryCatalog`: product snapshots by id or slug
- `OrderStore` / `MemoryOrderStore`: order creation on completion
- `SessionStore` / `MemorySessionStore`: persisted checkout sessions
- `IdempotencyStore` / `MemoryIdempotencyStore`: first-write-wins responses

SQLAlchemy-backed implementations live in `services.seller.stores`.
"""

from __future__ import annotations

import abc
import itertools
from collections.abc import Iterable
from typing import Any, Optional

from pydantic import ValidationError

from ucp_framework.errors import SessionDataError
from ucp_framework.models import (
    CatalogProduct,
    CheckoutSession,
    CheckoutStatus,
    IdempotencyRecord,
    OrderDraft,
    OrderRecord,
)


class CatalogLookup(abc.ABC):
    """Read-only product catalog."""

    @abc.abstractmethod
    async def find_by_id(self, product_id: int) -> Optional[CatalogProduct]:
        ...

    @abc.abstractmethod
    async def find_by_slug(self, slug: str) -> Optional[CatalogProduct]:
        ...


class OrderStore(abc.ABC):
    @abc.abstractmethod
    async def insert_order(self, draft: OrderDraft) -> OrderRecord:
        """Create the order for a completed checkout and return its id."""
        ...


class SessionStore(abc.ABC):
    """Persistence for checkout sessions."""

    @abc.abstractmethod
    async def insert(self, session: CheckoutSession) -> None:
        ...

    @abc.abstractmethod
    async def select_by_id(self, session_id: str) -> Optional[CheckoutSession]:
        """
        Load a session.  Returns None for unknown ids and raises
        `SessionDataError` when the stored data is not a valid session.
        """
        ...

    @abc.abstractmethod
    async def update(self, session: CheckoutSession, expected_status: CheckoutStatus) -> bool:
        """
        Overwrite a session only if its stored status still equals
        `expected_status`.  Returns False when the guard did not match.
        """
        ...


class IdempotencyStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, checkout_id: str, operation: str, key: str) -> Optional[IdempotencyRecord]:
        ...

    @abc.abstractmethod
    async def insert(self, record: IdempotencyRecord) -> bool:
        """Store a record.  Returns False, leaving the first record intact, on a duplicate triple."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class MemoryCatalog(CatalogLookup):
    def __init__(self, products: Iterable[CatalogProduct] = ()):
        self._products: dict[int, CatalogProduct] = {}
        for product in products:
            self.add(product)

    def add(self, product: CatalogProduct) -> None:
        self._products[product.id] = product

    async def find_by_id(self, product_id: int) -> Optional[CatalogProduct]:
        return self._products.get(product_id)

    async def find_by_slug(self, slug: str) -> Optional[CatalogProduct]:
        for product in self._products.values():
            if product.slug and product.slug == slug:
                return product
        return None


class MemoryOrderStore(OrderStore):
    def __init__(self):
        self.orders: dict[str, OrderDraft] = {}
        self._ids = itertools.count(1)

    async def insert_order(self, draft: OrderDraft) -> OrderRecord:
        order_id = str(next(self._ids))
        self.orders[order_id] = draft
        return OrderRecord(id=order_id)


class MemorySessionStore(SessionStore):
    """
    Keeps sessions as JSON documents, the way a database column would, so
    callers never share mutable model instances with the store.
    """

    def __init__(self):
        self._rows: dict[str, dict[str, Any]] = {}

    async def insert(self, session: CheckoutSession) -> None:
        self._rows[session.id] = session.model_dump(mode="json")

    async def select_by_id(self, session_id: str) -> Optional[CheckoutSession]:
        data = self._rows.get(session_id)
        if data is None:
            return None
        try:
            return CheckoutSession.model_validate(data)
        except ValidationError as exc:
            raise SessionDataError(session_id, str(exc)) from exc

    async def update(self, session: CheckoutSession, expected_status: CheckoutStatus) -> bool:
        current = self._rows.get(session.id)
        if current is None or current.get("status") != expected_status.value:
            return False
        self._rows[session.id] = session.model_dump(mode="json")
        return True


class MemoryIdempotencyStore(IdempotencyStore):
    def __init__(self):
        self._records: dict[tuple[str, str, str], IdempotencyRecord] = {}

    async def get(self, checkout_id: str, operation: str, key: str) -> Optional[IdempotencyRecord]:
        return self._records.get((checkout_id, operation, key))

    async def insert(self, record: IdempotencyRecord) -> bool:
        triple = (record.checkout_id, record.operation, record.idempotency_key)
        if triple in self._records:
            return False
        self._records[triple] = record
        return True
