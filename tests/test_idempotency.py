import asyncio

import pytest

from ucp_framework.errors import IdempotencyConflictError
from ucp_framework.idempotency import (
    CANCEL_CHECKOUT,
    COMPLETE_CHECKOUT,
    IdempotencyLedger,
    RecordOutcome,
    request_fingerprint,
)
from ucp_framework.stores import MemoryIdempotencyStore


def test_first_write_wins():
    async def scenario():
        ledger = IdempotencyLedger(MemoryIdempotencyStore())
        first = await ledger.record("checkout_1", COMPLETE_CHECKOUT, "key-1", {"status": "completed"})
        second = await ledger.record("checkout_1", COMPLETE_CHECKOUT, "key-1", {"status": "canceled"})
        stored = await ledger.lookup("checkout_1", COMPLETE_CHECKOUT, "key-1")
        return first, second, stored

    first, second, stored = asyncio.run(scenario())
    assert first == RecordOutcome.STORED
    assert second == RecordOutcome.ALREADY_EXISTS
    assert stored == {"status": "completed"}


def test_keys_are_scoped_by_checkout_and_operation():
    async def scenario():
        ledger = IdempotencyLedger(MemoryIdempotencyStore())
        await ledger.record("checkout_1", COMPLETE_CHECKOUT, "key-1", {"status": "completed"})
        return (
            await ledger.lookup("checkout_1", CANCEL_CHECKOUT, "key-1"),
            await ledger.lookup("checkout_2", COMPLETE_CHECKOUT, "key-1"),
            await ledger.lookup("checkout_1", COMPLETE_CHECKOUT, "key-2"),
        )

    assert asyncio.run(scenario()) == (None, None, None)


def test_fingerprint_is_independent_of_key_order():
    assert request_fingerprint({"a": 1, "b": [1, 2]}) == request_fingerprint({"b": [1, 2], "a": 1})
    assert request_fingerprint({"payment": None}) != request_fingerprint({"payment": {"instruments": []}})


def test_key_reused_with_different_payload_is_refused():
    same = request_fingerprint({"payment": None})
    other = request_fingerprint({"payment": {"instruments": []}})

    ledger = IdempotencyLedger(MemoryIdempotencyStore())
    asyncio.run(ledger.record("checkout_1", COMPLETE_CHECKOUT, "key-1", {"status": "completed"}, same))

    assert asyncio.run(ledger.lookup("checkout_1", COMPLETE_CHECKOUT, "key-1", same)) == {"status": "completed"}
    assert asyncio.run(ledger.lookup("checkout_1", COMPLETE_CHECKOUT, "key-1")) == {"status": "completed"}
    with pytest.raises(IdempotencyConflictError) as excinfo:
        asyncio.run(ledger.lookup("checkout_1", COMPLETE_CHECKOUT, "key-1", other))
    assert excinfo.value.code == "request_not_idempotent"
    assert excinfo.value.status_code == 409
