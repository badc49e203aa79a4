"""
UCP response envelope: the `ucp` block attached to every checkout response.

It advertises the protocol version, the checkout capability, the payment
handlers this merchant accepts and, when embedded checkout is enabled,
the embedded service binding.  The block is rebuilt on every response and
never persisted with the session.
"""

from __future__ import annotations

from ucp_framework.config import CheckoutConfig
from ucp_framework.models import CapabilityVersion, PaymentHandler, ServiceBinding, UcpEnvelope

SPEC_AUTHORITY = "https://ucp.dev"
SHOPPING_SERVICE = "dev.ucp.shopping"
CHECKOUT_CAPABILITY = "dev.ucp.shopping.checkout"
DEFAULT_DELEGATES = ["payment.instruments_change", "payment.credential"]


def capability_name(namespace: str) -> str:
    if namespace.startswith("dev."):
        return CHECKOUT_CAPABILITY
    return f"{namespace}.checkout"


def payment_handler_name(namespace: str) -> str:
    if namespace.startswith("dev."):
        return "com.demo.mock_payment"
    return f"{namespace}.payment"


def build_envelope(config: CheckoutConfig) -> UcpEnvelope:
    namespace = config.namespace or "dev.localhost"
    envelope = UcpEnvelope(
        version=config.ucp_version,
        capabilities={
            capability_name(namespace): [CapabilityVersion(version=config.ucp_version)],
        },
        payment_handlers={
            payment_handler_name(namespace): [
                PaymentHandler(
                    id=config.payment_handler_id,
                    version=config.ucp_version,
                    spec=f"{config.base_url}/specs/payment-handler",
                    schema_url=f"{config.base_url}/schemas/payment-handler.json",
                    config={},
                )
            ]
        },
    )
    if config.embedded_checkout:
        envelope.services = {
            SHOPPING_SERVICE: [
                ServiceBinding(
                    version=config.ucp_version,
                    transport="embedded",
                    schema_url=f"{SPEC_AUTHORITY}/services/shopping/embedded.openrpc.json",
                    spec=f"{SPEC_AUTHORITY}/specification/embedded-checkout",
                    config={"delegate": list(DEFAULT_DELEGATES)},
                )
            ]
        }
    return envelope
