"""
Idempotency ledger for side-effecting checkout operations.

Responses are keyed by (checkout id, operation, idempotency key).  The
first write for a triple wins; later writes are no-ops, and a replay returns
the stored response exactly as it was first produced.  Each record also
keeps a fingerprint of the request that produced it, so a key reused with a
different payload is refused instead of replayed.
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Optional

from ucp_framework.errors import IdempotencyConflictError
from ucp_framework.models import IdempotencyRecord
from ucp_framework.stores import IdempotencyStore

logger = logging.getLogger(__name__)

COMPLETE_CHECKOUT = "complete_checkout"
CANCEL_CHECKOUT = "cancel_checkout"


class RecordOutcome(str, Enum):
    STORED = "stored"
    ALREADY_EXISTS = "already_exists"


def request_fingerprint(payload: dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyLedger:
    def __init__(self, store: IdempotencyStore):
        self._store = store

    async def lookup(
        self,
        checkout_id: str,
        operation: str,
        key: str,
        request_hash: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Return the stored response for the triple, or None.  Raises
        `IdempotencyConflictError` when both sides carry a fingerprint and
        they differ.
        """
        record = await self._store.get(checkout_id, operation, key)
        if record is None:
            return None
        if request_hash and record.request_hash and record.request_hash != request_hash:
            logger.warning("Idempotency key %s for %s %s reused with a different payload", key, operation, checkout_id)
            raise IdempotencyConflictError(operation, key)
        logger.debug("Idempotent replay for %s %s key=%s", operation, checkout_id, key)
        return record.response

    async def record(
        self,
        checkout_id: str,
        operation: str,
        key: str,
        response: dict[str, Any],
        request_hash: Optional[str] = None,
    ) -> RecordOutcome:
        inserted = await self._store.insert(
            IdempotencyRecord(
                checkout_id=checkout_id,
                operation=operation,
                idempotency_key=key,
                response=response,
                request_hash=request_hash,
            )
        )
        if inserted:
            return RecordOutcome.STORED
        logger.info("Idempotency key %s for %s %s was recorded concurrently", key, operation, checkout_id)
        return RecordOutcome.ALREADY_EXISTS
