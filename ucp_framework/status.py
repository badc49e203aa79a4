"""
Checkout status evaluation.

Derives a session's status and its full diagnostic list from the current
inputs.  The evaluator is pure and total: any well-typed input yields a
status, nothing here raises.

Precedence:
    1. an empty cart (unless line item errors already explain it) -> empty_cart
    2. each missing required buyer field                      -> missing_buyer_*
    3. strict payment policy without a usable instrument      -> payment_required
Then: any recoverable error forces `incomplete`; otherwise any message
asking for buyer input or review forces `requires_escalation`; otherwise
the session is `ready_for_complete`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple, Optional

from ucp_framework.models import (
    Buyer,
    CheckoutStatus,
    Message,
    MessageSeverity,
    MessageType,
    Payment,
    PaymentPolicy,
    ResolvedLineItem,
)

REQUIRED_BUYER_FIELDS = (
    ("email", "Buyer email is required."),
    ("first_name", "Buyer first name is required."),
    ("last_name", "Buyer last name is required."),
)

# Errors that explain an empty cart on their own: every reference was dropped.
LINE_ITEM_ERROR_CODES = frozenset(
    {"item_not_found", "item_unavailable", "invalid_line_item", "invalid_quantity"}
)


class StatusEvaluation(NamedTuple):
    status: CheckoutStatus
    messages: list[Message]


def empty_cart_message() -> Message:
    return Message.error("empty_cart", "At least one line item is required.", path="$.line_items")


def has_usable_instrument(payment: Optional[Payment]) -> bool:
    if payment is None:
        return False
    instrument = payment.selected_instrument()
    return bool(instrument and instrument.credential and instrument.credential.type)


def derive_status(messages: Sequence[Message]) -> CheckoutStatus:
    if any(m.blocks for m in messages):
        return CheckoutStatus.INCOMPLETE
    if any(m.severity.escalates for m in messages):
        return CheckoutStatus.REQUIRES_ESCALATION
    return CheckoutStatus.READY_FOR_COMPLETE


def evaluate_status(
    buyer: Optional[Buyer],
    line_items: Sequence[ResolvedLineItem],
    input_messages: Sequence[Message] = (),
    payment: Optional[Payment] = None,
    payment_policy: PaymentPolicy = PaymentPolicy.PERMISSIVE,
    buyer_field_severity: MessageSeverity = MessageSeverity.RECOVERABLE,
) -> StatusEvaluation:
    messages = list(input_messages)

    if not line_items and not any(m.code in LINE_ITEM_ERROR_CODES for m in input_messages):
        messages.append(empty_cart_message())

    for field, content in REQUIRED_BUYER_FIELDS:
        if not getattr(buyer, field, None):
            messages.append(
                Message.error(
                    f"missing_buyer_{field}",
                    content,
                    severity=buyer_field_severity,
                    path=f"$.buyer.{field}",
                )
            )

    if payment_policy == PaymentPolicy.STRICT and not has_usable_instrument(payment):
        messages.append(
            Message(
                type=MessageType.INFO,
                code="payment_required",
                content="Select a payment instrument with a credential to complete checkout.",
                severity=MessageSeverity.REQUIRES_BUYER_INPUT,
                path="$.payment.instruments",
            )
        )

    return StatusEvaluation(derive_status(messages), messages)
