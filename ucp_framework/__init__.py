"""
UCP Framework — Universal Commerce Protocol checkout engine.

Turns a cart of line-item references plus buyer and payment data into a
priced, validated checkout session, and drives it through the UCP checkout
state machine with idempotent completion and cancellation.

Example usage for merchants:
    from ucp_framework import CheckoutSessionManager, create_checkout_router

    manager = CheckoutSessionManager(
        catalog=MyCatalog(),
        orders=MyOrders(),
        sessions=MySessions(),
        idempotency=MyIdempotencyKeys(),
    )
    app.include_router(create_checkout_router(manager))
"""

__version__ = "0.1.0"

# Export main models
from ucp_framework.models import (
    Buyer,
    CatalogProduct,
    CheckoutNotFoundResponse,
    CheckoutResponse,
    CheckoutSession,
    CheckoutStatus,
    Message,
    MessageSeverity,
    MessageType,
    OrderDraft,
    OrderRecord,
    Payment,
    PaymentPolicy,
    ResolvedLineItem,
    Total,
    TotalType,
    UcpEnvelope,
)

# Export engine components
from ucp_framework.checkout import UNSET, CheckoutSessionManager
from ucp_framework.config import CheckoutConfig
from ucp_framework.errors import (
    ConfigError,
    IdempotencyConflictError,
    SessionConflictError,
    SessionDataError,
    StoreError,
    UCPCheckoutError,
)
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

# Export transport
from ucp_framework.seller import create_checkout_router

__all__ = [
    "__version__",
    # Core Models
    "Buyer",
    "CatalogProduct",
    "CheckoutNotFoundResponse",
    "CheckoutResponse",
    "CheckoutSession",
    "CheckoutStatus",
    "Message",
    "MessageSeverity",
    "MessageType",
    "OrderDraft",
    "OrderRecord",
    "Payment",
    "PaymentPolicy",
    "ResolvedLineItem",
    "Total",
    "TotalType",
    "UcpEnvelope",
    # Engine
    "UNSET",
    "CheckoutSessionManager",
    "CheckoutConfig",
    "ConfigError",
    "IdempotencyConflictError",
    "SessionConflictError",
    "SessionDataError",
    "StoreError",
    "UCPCheckoutError",
    # Collaborators
    "CatalogLookup",
    "IdempotencyStore",
    "MemoryCatalog",
    "MemoryIdempotencyStore",
    "MemoryOrderStore",
    "MemorySessionStore",
    "OrderStore",
    "SessionStore",
    # Transport
    "create_checkout_router",
]
