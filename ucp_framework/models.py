"""
UCP Pydantic Models — checkout sessions for the Universal Commerce Protocol.

These models cover the checkout capability (dev.ucp.shopping.checkout) and
the collaborator shapes the session manager exchanges with its stores.
All monetary amounts are in the smallest currency unit (e.g. cents for USD).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class CheckoutStatus(str, Enum):
    INCOMPLETE = "incomplete"
    REQUIRES_ESCALATION = "requires_escalation"
    READY_FOR_COMPLETE = "ready_for_complete"
    COMPLETE_IN_PROGRESS = "complete_in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({CheckoutStatus.COMPLETED, CheckoutStatus.CANCELED})


class MessageType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class MessageSeverity(str, Enum):
    RECOVERABLE = "recoverable"
    REQUIRES_BUYER_INPUT = "requires_buyer_input"
    REQUIRES_BUYER_REVIEW = "requires_buyer_review"

    @property
    def escalates(self) -> bool:
        return self is not MessageSeverity.RECOVERABLE


class TotalType(str, Enum):
    SUBTOTAL = "subtotal"
    TAX = "tax"
    TOTAL = "total"


class LinkType(str, Enum):
    TERMS_OF_SERVICE = "terms_of_service"
    PRIVACY_POLICY = "privacy_policy"


class PaymentPolicy(str, Enum):
    PERMISSIVE = "permissive"
    STRICT = "strict"


# ---------------------------------------------------------------------------
# Buyer & Payment
# ---------------------------------------------------------------------------

class Buyer(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class PaymentCredential(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    token: Optional[str] = None


class PaymentInstrument(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    handler_id: Optional[str] = None
    type: Optional[str] = None
    selected: bool = False
    credential: Optional[PaymentCredential] = None


class Payment(BaseModel):
    model_config = ConfigDict(extra="allow")

    instruments: list[PaymentInstrument] = []

    def selected_instrument(self) -> Optional[PaymentInstrument]:
        for instrument in self.instruments:
            if instrument.selected:
                return instrument
        return None


# ---------------------------------------------------------------------------
# Line Items & Totals
# ---------------------------------------------------------------------------

class ItemReference(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(min_length=1)


class LineItemInput(BaseModel):
    """A caller-supplied reference to a catalog item."""
    item: ItemReference
    quantity: Optional[int] = None


class LineItemTotal(BaseModel):
    type: TotalType
    amount: int


class ResolvedItem(BaseModel):
    id: str
    title: str
    price: int


class ResolvedLineItem(BaseModel):
    id: str
    item: ResolvedItem
    quantity: int = Field(ge=1)
    totals: list[LineItemTotal]

    @property
    def subtotal(self) -> int:
        for total in self.totals:
            if total.type == TotalType.SUBTOTAL:
                return total.amount
        return 0


class Total(BaseModel):
    type: TotalType
    amount: int


# ---------------------------------------------------------------------------
# Messages & Links
# ---------------------------------------------------------------------------

class Message(BaseModel):
    type: MessageType
    code: str
    content: str
    severity: MessageSeverity = MessageSeverity.RECOVERABLE
    path: Optional[str] = None

    @classmethod
    def error(
        cls,
        code: str,
        content: str,
        severity: MessageSeverity = MessageSeverity.RECOVERABLE,
        path: Optional[str] = None,
    ) -> Message:
        return cls(type=MessageType.ERROR, code=code, content=content, severity=severity, path=path)

    @property
    def blocks(self) -> bool:
        """True for hard errors that keep a session incomplete."""
        return self.type == MessageType.ERROR and self.severity == MessageSeverity.RECOVERABLE


class Link(BaseModel):
    type: LinkType
    url: str


class OrderReference(BaseModel):
    id: str
    permalink_url: Optional[str] = None


# ---------------------------------------------------------------------------
# UCP Envelope
# ---------------------------------------------------------------------------

class CapabilityVersion(BaseModel):
    version: str


class PaymentHandler(BaseModel):
    id: str
    version: str
    spec: Optional[str] = None
    schema_url: Optional[str] = Field(default=None, alias="schema")
    config: dict[str, Any] = {}

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ServiceBinding(BaseModel):
    version: str
    transport: str = "embedded"
    schema_url: Optional[str] = Field(default=None, alias="schema")
    spec: Optional[str] = None
    config: dict[str, Any] = {}

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class UcpEnvelope(BaseModel):
    version: str
    capabilities: dict[str, list[CapabilityVersion]]
    payment_handlers: dict[str, list[PaymentHandler]] = {}
    services: Optional[dict[str, list[ServiceBinding]]] = None


# ---------------------------------------------------------------------------
# Checkout Session (the aggregate root)
# ---------------------------------------------------------------------------

class CheckoutSession(BaseModel):
    id: str
    status: CheckoutStatus
    currency: str
    buyer: Optional[Buyer] = None
    line_items: list[ResolvedLineItem] = []
    totals: list[Total] = []
    messages: list[Message] = []
    payment: Optional[Payment] = None
    continue_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    links: list[Link] = []
    order: Optional[OrderReference] = None

    def total_amount(self) -> int:
        for total in self.totals:
            if total.type == TotalType.TOTAL:
                return total.amount
        return 0


class CheckoutResponse(CheckoutSession):
    """A session snapshot wrapped with protocol envelope metadata."""
    ucp: UcpEnvelope


class CheckoutNotFoundResponse(BaseModel):
    ucp: UcpEnvelope
    id: str
    messages: list[Message]


# ---------------------------------------------------------------------------
# Request Models (transport layer)
# ---------------------------------------------------------------------------

class CheckoutCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    buyer: Optional[Any] = None
    line_items: Optional[Any] = None
    payment: Optional[Any] = None
    currency: Optional[str] = None


class CheckoutUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    buyer: Optional[Any] = None
    line_items: Optional[Any] = None
    payment: Optional[Any] = None


class CheckoutCompleteRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment: Optional[Any] = None


# ---------------------------------------------------------------------------
# Collaborator shapes
# ---------------------------------------------------------------------------

class CatalogProduct(BaseModel):
    """Catalog snapshot as returned by a catalog lookup."""
    id: int
    slug: Optional[str] = None
    name: str
    price: int
    discount_price: Optional[int] = None
    active: bool = True
    currency: str = "USD"

    @property
    def unit_price(self) -> int:
        return self.discount_price if self.discount_price is not None else self.price


class OrderDraft(BaseModel):
    checkout_id: str
    product_id: int
    buyer_id: str
    quantity: int
    total_amount: int
    currency: str


class OrderRecord(BaseModel):
    id: str


class IdempotencyRecord(BaseModel):
    checkout_id: str
    operation: str
    idempotency_key: str
    response: dict[str, Any]
    request_hash: Optional[str] = None


# ---------------------------------------------------------------------------
# Error (transport layer)
# ---------------------------------------------------------------------------

class UCPError(BaseModel):
    type: str
    code: str
    message: str
    param: Optional[str] = None


class UCPErrorResponse(BaseModel):
    error: UCPError
