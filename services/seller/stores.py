"""
SQLAlchemy implementations of the checkout collaborators.

Each store opens a short-lived `AsyncSession` per call.  Driver and
connectivity failures surface as `StoreError`; the session status guard is
a single conditional UPDATE so concurrent writers cannot both win.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.seller.database import CheckoutSessionRow, IdempotencyKeyRow, OrderRow, ProductRow
from services.seller.events import OrderEventEmitter
from ucp_framework.errors import SessionDataError, StoreError
from ucp_framework.models import (
    CatalogProduct,
    CheckoutSession,
    CheckoutStatus,
    IdempotencyRecord,
    OrderDraft,
    OrderRecord,
)
from ucp_framework.resolver import MAX_CATALOG_ID
from ucp_framework.stores import CatalogLookup, IdempotencyStore, OrderStore, SessionStore

logger = logging.getLogger(__name__)


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _db(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            raise StoreError(f"{action} failed: {exc}", cause=exc) from exc


def _product_from_row(row: ProductRow) -> CatalogProduct:
    return CatalogProduct(
        id=row.id,
        slug=row.slug,
        name=row.name,
        price=row.price,
        discount_price=row.discount_price,
        active=row.active if row.active is not None else True,
        currency=row.currency or "USD",
    )


class SqlCatalog(_SqlStore, CatalogLookup):
    async def find_by_id(self, product_id: int) -> Optional[CatalogProduct]:
        if not 0 < product_id <= MAX_CATALOG_ID:
            return None
        async with self._db("catalog lookup") as db:
            row = await db.get(ProductRow, product_id)
        return _product_from_row(row) if row else None

    async def find_by_slug(self, slug: str) -> Optional[CatalogProduct]:
        async with self._db("catalog lookup") as db:
            result = await db.execute(select(ProductRow).where(ProductRow.slug == slug))
            row = result.scalars().first()
        return _product_from_row(row) if row else None


class SqlOrderStore(_SqlStore, OrderStore):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        events: Optional[OrderEventEmitter] = None,
    ):
        super().__init__(session_factory)
        self.events = events

    async def insert_order(self, draft: OrderDraft) -> OrderRecord:
        async with self._db("order insert") as db:
            row = OrderRow(
                checkout_session_id=draft.checkout_id,
                product_id=draft.product_id,
                buyer_id=draft.buyer_id,
                quantity=draft.quantity,
                total_amount=draft.total_amount,
                currency=draft.currency,
                status="created",
            )
            db.add(row)
            await db.flush()
            order_id = str(row.id)
            await db.commit()

        logger.info("Order %s created for checkout %s", order_id, draft.checkout_id)
        if self.events is not None:
            await self.events.order_created(order_id, draft)
        return OrderRecord(id=order_id)


class SqlSessionStore(_SqlStore, SessionStore):
    async def insert(self, session: CheckoutSession) -> None:
        async with self._db("session insert") as db:
            db.add(
                CheckoutSessionRow(
                    id=session.id,
                    status=session.status.value,
                    session_data=session.model_dump(mode="json"),
                )
            )
            await db.commit()

    async def select_by_id(self, session_id: str) -> Optional[CheckoutSession]:
        async with self._db("session lookup") as db:
            row = await db.get(CheckoutSessionRow, session_id)
        if row is None:
            return None
        try:
            return CheckoutSession.model_validate(row.session_data)
        except ValidationError as exc:
            raise SessionDataError(session_id, str(exc)) from exc

    async def update(self, session: CheckoutSession, expected_status: CheckoutStatus) -> bool:
        statement = (
            update(CheckoutSessionRow)
            .where(
                CheckoutSessionRow.id == session.id,
                CheckoutSessionRow.status == expected_status.value,
            )
            .values(
                status=session.status.value,
                session_data=session.model_dump(mode="json"),
                updated_at=func.now(),
            )
        )
        async with self._db("session update") as db:
            result = await db.execute(statement)
            updated = result.rowcount == 1
            await db.commit()
        return updated


class SqlIdempotencyStore(_SqlStore, IdempotencyStore):
    async def get(self, checkout_id: str, operation: str, key: str) -> Optional[IdempotencyRecord]:
        async with self._db("idempotency lookup") as db:
            row = await db.get(IdempotencyKeyRow, (checkout_id, operation, key))
        if row is None:
            return None
        return IdempotencyRecord(
            checkout_id=row.checkout_id,
            operation=row.operation,
            idempotency_key=row.idempotency_key,
            response=row.response,
            request_hash=row.request_hash,
        )

    async def insert(self, record: IdempotencyRecord) -> bool:
        async with self._db("idempotency insert") as db:
            db.add(
                IdempotencyKeyRow(
                    checkout_id=record.checkout_id,
                    operation=record.operation,
                    idempotency_key=record.idempotency_key,
                    response=record.response,
                    request_hash=record.request_hash,
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return False
        return True
