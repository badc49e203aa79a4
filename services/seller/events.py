"""
Order webhooks for the Seller Service.

When an order is created the service POSTs `{"type": ..., "payload": ...}`
to `UCP_ORDER_WEBHOOK_URL`.  With `UCP_ORDER_WEBHOOK_SECRET` set, the
compact, key-sorted JSON body is signed with HMAC-SHA256 and the hex digest
sent as `X-Webhook-Signature`.  Delivery failures are logged, never raised:
the order already exists by the time the webhook fires.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
from typing import Any, Optional

import httpx

from ucp_framework.models import OrderDraft

logger = logging.getLogger(__name__)


def sign_payload(secret: str, serialized: str) -> str:
    return hmac.new(secret.encode("utf-8"), serialized.encode("utf-8"), hashlib.sha256).hexdigest()


class OrderEventEmitter:
    def __init__(
        self,
        url: str,
        secret: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> Optional[OrderEventEmitter]:
        url = os.getenv("UCP_ORDER_WEBHOOK_URL", "")
        if not url:
            return None
        return cls(url, secret=os.getenv("UCP_ORDER_WEBHOOK_SECRET", ""))

    async def emit(self, event_type: str, payload: dict[str, Any]) -> bool:
        body = {"type": event_type, "payload": payload}
        serialized = json.dumps(body, separators=(",", ":"), sort_keys=True)
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Webhook-Signature"] = sign_payload(self.secret, serialized)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, content=serialized, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to emit %s webhook: %s", event_type, exc)
            return False
        return True

    async def order_created(self, order_id: str, draft: OrderDraft) -> bool:
        return await self.emit(
            "order_created",
            {
                "order_id": order_id,
                "checkout_session_id": draft.checkout_id,
                "status": "created",
                "total_amount": draft.total_amount,
                "currency": draft.currency,
            },
        )
