"""
UCP Checkout Session Manager.

Implements the checkout capability (dev.ucp.shopping.checkout) state machine:

    incomplete ─┬─> ready_for_complete ──> complete_in_progress ──> completed
                ├─> requires_escalation
                └─> canceled

The manager holds no session state of its own; everything lives in the
injected stores.  Every mutating write is a compare-and-set on the stored
status, so a request racing a completion or cancellation observes the new
terminal status and is rejected instead of processed twice.  `complete` and
`cancel` consult the idempotency ledger before touching anything.

Usage:
    manager = CheckoutSessionManager(
        catalog=MyCatalog(), orders=MyOrders(),
        sessions=MySessions(), idempotency=MyKeys(),
        config=CheckoutConfig.from_env(),
    )
    response = await manager.create(line_items=[{"item": {"id": "42"}, "quantity": 2}])
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel

from ucp_framework.config import CheckoutConfig
from ucp_framework.currency import normalize_currency
from ucp_framework.envelope import build_envelope
from ucp_framework.errors import SessionConflictError
from ucp_framework.idempotency import (
    CANCEL_CHECKOUT,
    COMPLETE_CHECKOUT,
    IdempotencyLedger,
    RecordOutcome,
    request_fingerprint,
)
from ucp_framework.inputs import (
    is_line_item_sequence,
    parse_buyer,
    parse_payment,
    unrecognized_field_messages,
)
from ucp_framework.models import (
    Buyer,
    CatalogProduct,
    CheckoutNotFoundResponse,
    CheckoutResponse,
    CheckoutSession,
    CheckoutStatus,
    Link,
    LinkType,
    Message,
    OrderDraft,
    OrderReference,
    Payment,
    ResolvedLineItem,
    UcpEnvelope,
)
from ucp_framework.resolver import ResolutionResult, references_from, resolve_line_items
from ucp_framework.status import empty_cart_message, evaluate_status
from ucp_framework.stores import (
    CatalogLookup,
    IdempotencyStore,
    MemoryCatalog,
    MemoryIdempotencyStore,
    MemoryOrderStore,
    MemorySessionStore,
    OrderStore,
    SessionStore,
)
from ucp_framework.totals import compute_totals

logger = logging.getLogger(__name__)

CheckoutResult = Union[CheckoutResponse, CheckoutNotFoundResponse]


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def generate_checkout_id() -> str:
    return f"checkout_{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _payload(value: Any) -> Any:
    return value.model_dump(mode="json") if isinstance(value, BaseModel) else value


class CheckoutSessionManager:
    # Bounds on waiting for a concurrent request with the same idempotency key.
    settle_polls = 50
    settle_interval = 0.02
    terminal_grace_polls = 2

    def __init__(
        self,
        catalog: CatalogLookup,
        orders: OrderStore,
        sessions: SessionStore,
        idempotency: IdempotencyStore,
        config: Optional[CheckoutConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or CheckoutConfig()
        self.catalog = catalog
        self.orders = orders
        self.sessions = sessions
        self.ledger = IdempotencyLedger(idempotency)
        self._clock = clock

    @classmethod
    def in_memory(
        cls,
        products: Iterable[CatalogProduct] = (),
        config: Optional[CheckoutConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> CheckoutSessionManager:
        """A manager over in-memory stores, for development and tests."""
        return cls(
            catalog=MemoryCatalog(products),
            orders=MemoryOrderStore(),
            sessions=MemorySessionStore(),
            idempotency=MemoryIdempotencyStore(),
            config=config,
            clock=clock,
        )

    # ── Envelope & response helpers ─────────────────────────────────────

    def envelope(self) -> UcpEnvelope:
        return build_envelope(self.config)

    def _respond(self, session: CheckoutSession) -> CheckoutResponse:
        return CheckoutResponse(**dict(session), ucp=self.envelope())

    def _not_found(self, session_id: str) -> CheckoutNotFoundResponse:
        return CheckoutNotFoundResponse(
            ucp=self.envelope(),
            id=session_id,
            messages=[
                Message.error(
                    "not_found",
                    f"Checkout session \"{session_id}\" was not found.",
                    path="$.id",
                )
            ],
        )

    def _reject(self, session: CheckoutSession, *rejections: Message) -> CheckoutResponse:
        """Return a stored session unchanged apart from the appended rejection messages."""
        logger.warning(
            "Rejected operation on checkout %s (%s): %s",
            session.id,
            session.status.value,
            ", ".join(m.code for m in rejections),
        )
        rejected = session.model_copy(update={"messages": [*session.messages, *rejections]})
        return self._respond(rejected)

    def _replay(self, stored: dict[str, Any]) -> CheckoutResponse:
        return CheckoutResponse.model_validate(stored)

    async def _settle(
        self,
        session_id: str,
        operation: str,
        idempotency_key: Optional[str],
        response: CheckoutResponse,
        request_hash: Optional[str] = None,
    ) -> CheckoutResponse:
        """Record a side-effecting response, deferring to a concurrent first writer."""
        if not idempotency_key:
            return response
        outcome = await self.ledger.record(
            session_id, operation, idempotency_key, response.model_dump(mode="json"), request_hash
        )
        if outcome == RecordOutcome.ALREADY_EXISTS:
            stored = await self.ledger.lookup(session_id, operation, idempotency_key, request_hash)
            if stored is not None:
                return self._replay(stored)
        return response

    async def _await_first_writer(
        self,
        session_id: str,
        operation: str,
        idempotency_key: str,
        request_hash: Optional[str] = None,
    ) -> Optional[CheckoutResponse]:
        """
        Wait for a concurrent request carrying the same key to record its
        response, and replay it.

        Polls while the session is `complete_in_progress`; once it is
        terminal, allows a short grace for the winner's ledger write.
        Returns None when no record shows up, e.g. because the session was
        settled under another key.
        """
        terminal_polls = 0
        for _ in range(self.settle_polls):
            stored = await self.ledger.lookup(session_id, operation, idempotency_key, request_hash)
            if stored is not None:
                return self._replay(stored)
            current = await self.sessions.select_by_id(session_id)
            if current is None:
                return None
            if current.status.is_terminal:
                terminal_polls += 1
                if terminal_polls > self.terminal_grace_polls:
                    return None
            elif current.status != CheckoutStatus.COMPLETE_IN_PROGRESS:
                return None
            await asyncio.sleep(self.settle_interval)
        logger.warning("No recorded response for key %s on checkout %s", idempotency_key, session_id)
        return None

    @staticmethod
    def _field_warnings(unrecognized_fields: Iterable[str]) -> list[Message]:
        return unrecognized_field_messages(unrecognized_fields, "$")

    def _links(self) -> list[Link]:
        base = self.config.base_url
        return [
            Link(type=LinkType.TERMS_OF_SERVICE, url=f"{base}/terms"),
            Link(type=LinkType.PRIVACY_POLICY, url=f"{base}/privacy"),
        ]

    def _continue_url(self, session_id: str) -> str:
        return f"{self.config.base_url}/checkout/{session_id}"

    def _assemble(
        self,
        *,
        session_id: str,
        currency: str,
        buyer: Optional[Buyer],
        line_items: list[ResolvedLineItem],
        payment: Optional[Payment],
        input_messages: list[Message],
        expires_at: Optional[datetime],
    ) -> CheckoutSession:
        evaluation = evaluate_status(
            buyer,
            line_items,
            input_messages,
            payment,
            payment_policy=self.config.payment_policy,
            buyer_field_severity=self.config.buyer_field_severity,
        )
        return CheckoutSession(
            id=session_id,
            status=evaluation.status,
            currency=currency,
            buyer=buyer,
            line_items=line_items,
            totals=compute_totals(line_items, self.config.tax_rate),
            messages=evaluation.messages,
            payment=payment,
            continue_url=self._continue_url(session_id),
            expires_at=expires_at,
            links=self._links(),
        )

    # ── Operations ──────────────────────────────────────────────────────

    async def create(
        self,
        buyer: Any = None,
        line_items: Any = None,
        payment: Any = None,
        currency: Optional[str] = None,
        unrecognized_fields: Sequence[str] = (),
    ) -> CheckoutResponse:
        """
        Create a session.  `unrecognized_fields` names top-level request keys
        the transport could not map; each becomes an `unrecognized_field`
        warning.
        """
        session_id = generate_checkout_id()
        expires_at = self._clock() + self.config.session_ttl
        parsed_buyer = parse_buyer(buyer)
        parsed_payment = parse_payment(payment)
        input_messages = [
            *parsed_buyer.messages,
            *parsed_payment.messages,
            *self._field_warnings(unrecognized_fields),
        ]

        session_currency = self.config.currency
        if currency is not None:
            try:
                session_currency = normalize_currency(currency)
            except ValueError:
                input_messages.append(
                    Message.error(
                        "invalid_currency",
                        f"Currency \"{currency}\" is not a valid ISO 4217 code.",
                        path="$.currency",
                    )
                )

        if not is_line_item_sequence(line_items):
            session = CheckoutSession(
                id=session_id,
                status=CheckoutStatus.INCOMPLETE,
                currency=session_currency,
                buyer=parsed_buyer.buyer,
                line_items=[],
                totals=compute_totals([], self.config.tax_rate),
                messages=[*input_messages, empty_cart_message()],
                payment=parsed_payment.payment,
                continue_url=self._continue_url(session_id),
                expires_at=expires_at,
                links=self._links(),
            )
        else:
            resolution = await resolve_line_items(self.catalog, line_items)
            session = self._assemble(
                session_id=session_id,
                currency=session_currency,
                buyer=parsed_buyer.buyer,
                line_items=resolution.resolved,
                payment=parsed_payment.payment,
                input_messages=[*resolution.messages, *input_messages],
                expires_at=expires_at,
            )

        await self.sessions.insert(session)
        logger.info(
            "Created checkout %s with %d line item(s), status=%s",
            session.id,
            len(session.line_items),
            session.status.value,
        )
        return self._respond(session)

    async def get(self, session_id: str) -> CheckoutResult:
        session = await self.sessions.select_by_id(session_id)
        if session is None:
            return self._not_found(session_id)
        return self._respond(session)

    async def _resolve_update(self, existing: CheckoutSession, line_items: Any) -> ResolutionResult:
        if line_items is UNSET:
            return await resolve_line_items(self.catalog, references_from(existing.line_items))
        if is_line_item_sequence(line_items):
            return await resolve_line_items(self.catalog, line_items)
        if line_items is None or line_items == []:
            return ResolutionResult([], [])
        return ResolutionResult(
            [],
            [Message.error("invalid_line_item", "line_items must be a list.", path="$.line_items")],
        )

    async def update(
        self,
        session_id: str,
        buyer: Any = UNSET,
        line_items: Any = UNSET,
        payment: Any = UNSET,
        unrecognized_fields: Sequence[str] = (),
    ) -> CheckoutResult:
        """
        Replace the provided fields and re-price the session.  Omitted
        fields keep their stored values; provided ones replace them
        wholesale, line items included.
        """
        for _ in range(self.config.max_write_attempts):
            existing = await self.sessions.select_by_id(session_id)
            if existing is None:
                return self._not_found(session_id)
            if self._is_locked(existing):
                return self._reject(
                    existing,
                    Message.error(
                        "checkout_immutable",
                        f"Checkout is {existing.status.value} and cannot be updated.",
                    ),
                )

            input_messages: list[Message] = []
            if buyer is UNSET:
                next_buyer = existing.buyer
            else:
                parsed_buyer = parse_buyer(buyer)
                next_buyer = parsed_buyer.buyer
                input_messages.extend(parsed_buyer.messages)
            if payment is UNSET:
                next_payment = existing.payment
            else:
                parsed_payment = parse_payment(payment)
                next_payment = parsed_payment.payment
                input_messages.extend(parsed_payment.messages)
            input_messages.extend(self._field_warnings(unrecognized_fields))

            resolution = await self._resolve_update(existing, line_items)
            session = self._assemble(
                session_id=existing.id,
                currency=existing.currency,
                buyer=next_buyer,
                line_items=resolution.resolved,
                payment=next_payment,
                input_messages=[*resolution.messages, *input_messages],
                expires_at=existing.expires_at,
            )
            if await self.sessions.update(session, expected_status=existing.status):
                logger.info("Updated checkout %s, status=%s", session.id, session.status.value)
                return self._respond(session)
            logger.debug("Checkout %s changed during update; retrying", session_id)

        raise SessionConflictError(session_id, self.config.max_write_attempts)

    def _payment_problem(self, payment: Optional[Payment]) -> Optional[Message]:
        """Strict-policy checks on the instrument used to complete."""
        instrument = payment.selected_instrument() if payment else None
        if instrument is None:
            return Message.error(
                "missing_payment_instrument",
                "A selected payment instrument is required to complete checkout.",
                path="$.payment.instruments",
            )
        index = payment.instruments.index(instrument)
        if instrument.handler_id != self.config.payment_handler_id:
            return Message.error(
                "invalid_payment_handler",
                "Selected payment instrument handler is not supported.",
                path=f"$.payment.instruments[{index}].handler_id",
            )
        if instrument.credential is None or not instrument.credential.type:
            return Message.error(
                "missing_payment_credential",
                "Payment credential is required to complete checkout.",
                path=f"$.payment.instruments[{index}].credential",
            )
        if instrument.credential.type == "card":
            return Message.error(
                "raw_card_not_allowed",
                "Raw card credentials are not permitted for this checkout.",
                path=f"$.payment.instruments[{index}].credential.type",
            )
        return None

    def _is_expired(self, session: CheckoutSession) -> bool:
        return session.expires_at is not None and self._clock() > session.expires_at

    def _order_draft(self, session: CheckoutSession) -> OrderDraft:
        buyer_id = session.buyer.email if session.buyer and session.buyer.email else "anonymous"
        return OrderDraft(
            checkout_id=session.id,
            product_id=int(session.line_items[0].item.id),
            buyer_id=buyer_id,
            quantity=sum(li.quantity for li in session.line_items),
            total_amount=session.total_amount(),
            currency=session.currency,
        )

    async def _expire(
        self,
        existing: CheckoutSession,
        idempotency_key: Optional[str],
        request_hash: Optional[str] = None,
        warnings: Sequence[Message] = (),
    ) -> Optional[CheckoutResponse]:
        expired = existing.model_copy(
            update={
                "status": CheckoutStatus.CANCELED,
                "continue_url": None,
                "messages": [
                    Message.error("checkout_expired", "Checkout session has expired."),
                    *warnings,
                ],
            }
        )
        if not await self.sessions.update(expired, expected_status=existing.status):
            return None
        logger.info("Checkout %s expired at %s; canceled", existing.id, existing.expires_at)
        return await self._settle(
            existing.id, COMPLETE_CHECKOUT, idempotency_key, self._respond(expired), request_hash
        )

    @staticmethod
    def _is_locked(session: CheckoutSession) -> bool:
        return session.status.is_terminal or session.status == CheckoutStatus.COMPLETE_IN_PROGRESS

    async def complete(
        self,
        session_id: str,
        payment: Any = None,
        idempotency_key: Optional[str] = None,
        unrecognized_fields: Sequence[str] = (),
    ) -> CheckoutResult:
        """
        Place the order for a `ready_for_complete` session.

        A key already recorded for this session replays the stored response.
        The same key with a different payment raises
        `IdempotencyConflictError`.  A request that loses the race to a
        concurrent one with the same key waits for and replays the winner's
        response instead of being rejected.
        """
        request_hash = request_fingerprint({"payment": _payload(payment)}) if idempotency_key else None
        if idempotency_key:
            stored = await self.ledger.lookup(session_id, COMPLETE_CHECKOUT, idempotency_key, request_hash)
            if stored is not None:
                return self._replay(stored)
        warnings = self._field_warnings(unrecognized_fields)

        for attempt in range(1, self.config.max_write_attempts + 1):
            existing = await self.sessions.select_by_id(session_id)
            if existing is None:
                return self._not_found(session_id)

            if self._is_locked(existing):
                if idempotency_key:
                    replay = await self._await_first_writer(
                        session_id, COMPLETE_CHECKOUT, idempotency_key, request_hash
                    )
                    if replay is not None:
                        return replay
                    current = await self.sessions.select_by_id(session_id)
                    if current is None:
                        return self._not_found(session_id)
                    if not self._is_locked(current):
                        continue
                    existing = current
                return self._reject(existing, self._not_ready(existing), *warnings)

            if self._is_expired(existing):
                expired = await self._expire(existing, idempotency_key, request_hash, warnings)
                if expired is not None:
                    return expired
                continue

            if existing.status != CheckoutStatus.READY_FOR_COMPLETE:
                return self._reject(existing, self._not_ready(existing), *warnings)
            if not existing.line_items:
                return self._reject(
                    existing,
                    Message.error("empty_cart", "Cannot complete checkout with no items."),
                    *warnings,
                )

            effective_payment = existing.payment
            if payment is not None:
                parsed = parse_payment(payment)
                if parsed.messages:
                    return self._reject(existing, *parsed.messages, *warnings)
                effective_payment = parsed.payment
            if self.config.is_strict:
                problem = self._payment_problem(effective_payment)
                if problem is not None:
                    return self._reject(existing, problem, *warnings)

            claimed = existing.model_copy(
                update={"status": CheckoutStatus.COMPLETE_IN_PROGRESS, "payment": effective_payment}
            )
            if not await self.sessions.update(claimed, expected_status=CheckoutStatus.READY_FOR_COMPLETE):
                logger.debug("Checkout %s changed before completion; re-reading", session_id)
                continue

            try:
                order = await self.orders.insert_order(self._order_draft(claimed))
            except Exception:
                await self.sessions.update(existing, expected_status=CheckoutStatus.COMPLETE_IN_PROGRESS)
                raise

            completed = claimed.model_copy(
                update={
                    "status": CheckoutStatus.COMPLETED,
                    "messages": list(warnings),
                    "continue_url": None,
                    "order": OrderReference(
                        id=order.id,
                        permalink_url=f"{self.config.base_url}/orders/{order.id}",
                    ),
                }
            )
            if not await self.sessions.update(completed, expected_status=CheckoutStatus.COMPLETE_IN_PROGRESS):
                raise SessionConflictError(session_id, attempt)

            logger.info(
                "Completed checkout %s: order=%s total=%d %s",
                session_id,
                order.id,
                completed.total_amount(),
                completed.currency,
            )
            return await self._settle(
                session_id, COMPLETE_CHECKOUT, idempotency_key, self._respond(completed), request_hash
            )

        raise SessionConflictError(session_id, self.config.max_write_attempts)

    @staticmethod
    def _not_ready(session: CheckoutSession) -> Message:
        return Message.error(
            "checkout_not_ready",
            f"Checkout status is \"{session.status.value}\" but must be "
            f"\"{CheckoutStatus.READY_FOR_COMPLETE.value}\" to complete.",
        )

    async def cancel(self, session_id: str, idempotency_key: Optional[str] = None) -> CheckoutResult:
        if idempotency_key:
            stored = await self.ledger.lookup(session_id, CANCEL_CHECKOUT, idempotency_key)
            if stored is not None:
                return self._replay(stored)

        for _ in range(self.config.max_write_attempts):
            existing = await self.sessions.select_by_id(session_id)
            if existing is None:
                return self._not_found(session_id)
            if self._is_locked(existing):
                if idempotency_key:
                    replay = await self._await_first_writer(session_id, CANCEL_CHECKOUT, idempotency_key)
                    if replay is not None:
                        return replay
                    current = await self.sessions.select_by_id(session_id)
                    if current is None:
                        return self._not_found(session_id)
                    if not self._is_locked(current):
                        continue
                    existing = current
                return self._reject(
                    existing,
                    Message.error(
                        "checkout_not_cancelable",
                        f"Checkout is already {existing.status.value}.",
                    ),
                )

            canceled = existing.model_copy(
                update={"status": CheckoutStatus.CANCELED, "messages": [], "continue_url": None}
            )
            if await self.sessions.update(canceled, expected_status=existing.status):
                logger.info("Canceled checkout %s", session_id)
                return await self._settle(session_id, CANCEL_CHECKOUT, idempotency_key, self._respond(canceled))

        raise SessionConflictError(session_id, self.config.max_write_attempts)
