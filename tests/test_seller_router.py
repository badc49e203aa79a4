from fastapi import FastAPI
from fastapi.testclient import TestClient

from ucp_framework.checkout import CheckoutSessionManager
from ucp_framework.config import CheckoutConfig
from ucp_framework.errors import StoreError
from ucp_framework.models import CatalogProduct
from ucp_framework.seller import create_checkout_router

PRODUCTS = [CatalogProduct(id=1, slug="classic-tee", name="Classic Tee", price=2999)]
BUYER = {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"}


def make_client(**config_values):
    manager = CheckoutSessionManager.in_memory(PRODUCTS, config=CheckoutConfig(**config_values))
    app = FastAPI()
    app.include_router(create_checkout_router(manager))
    return TestClient(app), manager


def test_create_returns_201_with_envelope_and_echoed_headers():
    client, _ = make_client()
    resp = client.post(
        "/checkout_sessions",
        json={"line_items": [{"item": {"id": "1"}, "quantity": 2}], "buyer": BUYER},
        headers={"Request-Id": "req_1", "Idempotency-Key": "create-1"},
    )

    assert resp.status_code == 201
    assert resp.headers["Request-Id"] == "req_1"
    assert resp.headers["Idempotency-Key"] == "create-1"
    body = resp.json()
    assert body["status"] == "ready_for_complete"
    assert body["totals"] == [{"type": "subtotal", "amount": 5998}, {"type": "total", "amount": 5998}]
    handler = body["ucp"]["payment_handlers"]["com.demo.mock_payment"][0]
    assert handler["schema"].endswith("/schemas/payment-handler.json")
    assert "order" not in body


def test_unknown_session_is_404():
    client, _ = make_client()
    resp = client.get("/checkout_sessions/checkout_missing")
    assert resp.status_code == 404
    body = resp.json()
    assert body["id"] == "checkout_missing"
    assert body["messages"][0]["code"] == "not_found"
    assert "version" in body["ucp"]


def test_update_only_replaces_fields_in_the_body():
    client, _ = make_client()
    created = client.post("/checkout_sessions", json={"line_items": [{"item": {"id": "1"}}]}).json()
    assert created["status"] == "incomplete"

    resp = client.post(f"/checkout_sessions/{created['id']}", json={"buyer": BUYER})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ready_for_complete"
    assert len(body["line_items"]) == 1

    emptied = client.post(f"/checkout_sessions/{created['id']}", json={"line_items": []}).json()
    assert [m["code"] for m in emptied["messages"]] == ["empty_cart"]
    assert emptied["buyer"]["email"] == "ada@example.com"


def test_complete_replays_by_idempotency_key_and_cancel_is_rejected():
    client, manager = make_client()
    created = client.post(
        "/checkout_sessions",
        json={"line_items": [{"item": {"id": "1"}, "quantity": 2}], "buyer": BUYER},
    ).json()
    url = f"/checkout_sessions/{created['id']}/complete"

    first = client.post(url, headers={"Idempotency-Key": "pay-1"})
    assert first.status_code == 200
    assert first.headers["Idempotency-Key"] == "pay-1"
    assert first.json()["status"] == "completed"
    assert first.json()["order"]["id"] == "1"
    assert "continue_url" not in first.json()

    replay = client.post(url, json={}, headers={"Idempotency-Key": "pay-1"})
    assert replay.json() == first.json()
    assert len(manager.orders.orders) == 1

    canceled = client.post(f"/checkout_sessions/{created['id']}/cancel")
    assert canceled.status_code == 200
    assert canceled.json()["status"] == "completed"
    assert canceled.json()["messages"][-1]["code"] == "checkout_not_cancelable"


def test_fatal_errors_map_to_500():
    client, manager = make_client()
    created = client.post("/checkout_sessions", json={"line_items": [{"item": {"id": "1"}}]}).json()
    manager.sessions._rows[created["id"]]["status"] = "shipped"

    resp = client.get(f"/checkout_sessions/{created['id']}", headers={"Request-Id": "req_9"})
    assert resp.status_code == 500
    assert resp.headers["Request-Id"] == "req_9"
    error = resp.json()["error"]
    assert error["type"] == "api_error"
    assert error["code"] == "corrupt_session_data"
    assert created["id"] in error["message"]


def test_store_outage_carries_its_own_code():
    client, manager = make_client()

    async def unavailable(session_id):
        raise StoreError("session lookup failed: connection refused")

    manager.sessions.select_by_id = unavailable
    resp = client.get("/checkout_sessions/checkout_any")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "store_unavailable"


def test_reused_completion_key_with_different_payment_is_409():
    client, manager = make_client()
    created = client.post(
        "/checkout_sessions",
        json={"line_items": [{"item": {"id": "1"}}], "buyer": BUYER},
    ).json()
    url = f"/checkout_sessions/{created['id']}/complete"
    payment = {"instruments": [{"id": "pi_1", "handler_id": "mock_handler_1", "selected": True}]}

    first = client.post(url, json={"payment": payment}, headers={"Idempotency-Key": "pay-1"})
    assert first.json()["status"] == "completed"

    other = {"instruments": [{"id": "pi_2", "handler_id": "mock_handler_1", "selected": True}]}
    resp = client.post(url, json={"payment": other}, headers={"Idempotency-Key": "pay-1", "Request-Id": "req_2"})
    assert resp.status_code == 409
    assert resp.headers["Request-Id"] == "req_2"
    error = resp.json()["error"]
    assert error["type"] == "invalid_request"
    assert error["code"] == "request_not_idempotent"
    assert error["param"] == "$.headers.Idempotency-Key"
    assert len(manager.orders.orders) == 1

    replay = client.post(url, json={"payment": payment}, headers={"Idempotency-Key": "pay-1"})
    assert replay.json() == first.json()


def test_unknown_body_fields_become_warnings():
    client, _ = make_client()
    created = client.post(
        "/checkout_sessions",
        json={
            "line_items": [{"item": {"id": "1", "variant": "XL"}, "quantity": 1, "gift_wrap": True}],
            "buyer": BUYER,
            "coupon": "SAVE10",
        },
    ).json()
    assert created["status"] == "ready_for_complete"
    assert [(m["code"], m["path"]) for m in created["messages"]] == [
        ("unrecognized_field", "$.line_items[0].gift_wrap"),
        ("unrecognized_field", "$.line_items[0].item.variant"),
        ("unrecognized_field", "$.coupon"),
    ]

    updated = client.post(f"/checkout_sessions/{created['id']}", json={"note": "leave at door"}).json()
    assert [m["path"] for m in updated["messages"]] == ["$.note"]
    assert updated["status"] == "ready_for_complete"

    completed = client.post(f"/checkout_sessions/{created['id']}/complete", json={"tip": 100}).json()
    assert completed["status"] == "completed"
    assert [m["path"] for m in completed["messages"]] == ["$.tip"]


def test_simple_merchant_example_runs_a_checkout():
    import importlib.util
    from pathlib import Path

    path = Path(__file__).resolve().parent.parent / "examples" / "simple_merchant.py"
    spec = importlib.util.spec_from_file_location("simple_merchant", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    client = TestClient(module.app)
    assert client.get("/").json()["products"] == ["espresso-beans", "pour-over-kit"]
    body = client.post(
        "/checkout_sessions",
        json={"buyer": BUYER, "line_items": [{"item": {"id": "pour-over-kit"}}]},
    ).json()
    assert [t["amount"] for t in body["totals"]] == [4900, 343, 5243]
