from fastapi.testclient import TestClient

from services.seller.main import create_app
from ucp_framework.config import CheckoutConfig

BUYER = {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"}


def test_seller_service_end_to_end(monkeypatch):
    monkeypatch.delenv("UCP_ORDER_WEBHOOK_URL", raising=False)
    app = create_app(
        database_url="sqlite+aiosqlite:///:memory:",
        config=CheckoutConfig(tax_rate=0.08),
        seed_demo=True,
    )

    with TestClient(app) as client:
        health = client.get("/health")
        assert health.json() == {"status": "ok", "service": "seller", "ucp_version": "2026-01-11"}

        created = client.post(
            "/checkout_sessions",
            json={"buyer": BUYER, "line_items": [{"item": {"id": "canvas-tote"}, "quantity": 2}]},
        )
        assert created.status_code == 201
        session = created.json()
        assert session["status"] == "ready_for_complete"
        assert [t["amount"] for t in session["totals"]] == [3000, 240, 3240]

        completed = client.post(
            f"/checkout_sessions/{session['id']}/complete",
            headers={"Idempotency-Key": "pay-1"},
        ).json()
        assert completed["status"] == "completed"
        assert completed["order"]["permalink_url"].endswith(f"/orders/{completed['order']['id']}")

        fetched = client.get(f"/checkout_sessions/{session['id']}").json()
        assert fetched["status"] == "completed"
        assert fetched["order"] == completed["order"]
