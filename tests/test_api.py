"""HTTP contract tests for the payment API."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import payflow.services.payments.main as payments_main
from payflow.common.errors import ProviderError


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setattr(payments_main, "service", service)
    with TestClient(payments_main.app) as test_client:
        yield test_client


def _create(client, headers=None, **overrides):
    body = {
        "amount": "10.00",
        "currency": "usd",
        "customer_email": "jane@payflow.io",
        "customer_id": "cust-1",
        "description": "Order #1001",
    }
    body.update(overrides)
    return client.post("/api/v1/payments", json=body, headers=headers or {})


def test_create_returns_full_projection(client):
    resp = _create(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert body["currency"] == "USD"
    assert Decimal(body["amount"]) == Decimal("10.00")
    assert body["customer_email"] == "jane@payflow.io"
    assert body["customer_id"] == "cust-1"
    assert body["description"] == "Order #1001"
    assert body["provider_reference"].startswith("pi_")
    assert body["payment_method_id"] is None
    assert body["failure_reason"] is None
    assert body["completed_at"] is None
    assert body["created_at"]


def test_idempotency_key_header_deduplicates(client):
    first = _create(client, headers={"Idempotency-Key": "k1"})
    second = _create(client, headers={"Idempotency-Key": "k1"}, amount="99.00", currency="EUR")

    assert first.status_code == second.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["currency"] == "USD"


def test_authorization_failure_still_creates(client, gateway):
    gateway.authorize_error = ProviderError("Provider temporarily unavailable")

    resp = _create(client)

    assert resp.status_code == 201
    assert resp.json()["status"] == "FAILED"
    assert resp.json()["failure_reason"] == "Provider error: Provider temporarily unavailable"


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"amount": "0"}, "amount"),
        ({"amount": "-5.00"}, "amount"),
        ({"amount": "1.001"}, "amount"),
        ({"currency": "US"}, "currency"),
        ({"currency": "US1"}, "currency"),
        ({"customer_email": "not-an-email"}, "customer_email"),
    ],
)
def test_create_validation_errors(client, gateway, overrides, field):
    resp = _create(client, **overrides)

    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation failed"
    assert body["status"] == 400
    assert body["path"] == "/api/v1/payments"
    assert field in body["errors"]
    assert gateway.calls == []


def test_confirm_completes_payment(client):
    payment_id = _create(client).json()["id"]

    resp = client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "pm_card_visa"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "COMPLETED"
    assert body["payment_method_id"] == "pm_card_visa"
    assert body["completed_at"] is not None


def test_confirm_decline_is_a_normal_response(client, gateway):
    payment_id = _create(client).json()["id"]
    gateway.capture_outcome = "decline"

    resp = client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "pm_card_visa"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "FAILED"
    assert resp.json()["failure_reason"] == "Payment declined: card_declined"


def test_second_confirm_conflicts(client):
    payment_id = _create(client).json()["id"]
    client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "pm_card_visa"})

    resp = client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "pm_card_visa"})

    assert resp.status_code == 409
    assert resp.json()["message"] == "Payment cannot be confirmed in status: COMPLETED"


def test_confirm_requires_non_blank_method(client):
    payment_id = _create(client).json()["id"]

    resp = client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "   "})

    assert resp.status_code == 400
    assert "payment_method_id" in resp.json()["errors"]


def test_unknown_payment_is_404(client):
    missing = "00000000-0000-0000-0000-000000000000"

    assert client.get(f"/api/v1/payments/{missing}").status_code == 404
    resp = client.post(f"/api/v1/payments/{missing}/confirm", json={"payment_method_id": "pm_card_visa"})
    assert resp.status_code == 404
    assert resp.json()["message"] == f"Payment not found: {missing}"


def test_malformed_payment_id_is_400(client):
    resp = client.get("/api/v1/payments/not-a-uuid")

    assert resp.status_code == 400


def test_get_and_history(client):
    payment_id = _create(client).json()["id"]
    client.post(f"/api/v1/payments/{payment_id}/confirm", json={"payment_method_id": "pm_card_visa"})

    assert client.get(f"/api/v1/payments/{payment_id}").json()["status"] == "COMPLETED"
    history = client.get(f"/api/v1/payments/{payment_id}/history").json()
    assert [entry["to_status"] for entry in history] == ["PENDING", "PROCESSING", "COMPLETED"]


def test_customer_listing_newest_first(client):
    ids = [_create(client, customer_email="list@payflow.io").json()["id"] for _ in range(3)]
    _create(client, customer_email="other@payflow.io")

    resp = client.get("/api/v1/payments/customer/list@payflow.io")

    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()] == list(reversed(ids))
    assert client.get("/api/v1/payments/customer/nobody@payflow.io").json() == []


def test_lookup_by_provider_reference(client):
    created = _create(client).json()

    resp = client.get(f"/api/v1/payments/provider/{created['provider_reference']}")

    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]
    assert client.get("/api/v1/payments/provider/pi_missing").status_code == 404


def test_health_up_and_down(client, gateway):
    resp = client.get("/api/v1/payments/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "UP"

    gateway.healthy = False
    resp = client.get("/api/v1/payments/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "DOWN"


def test_api_info_and_metrics(client):
    info = client.get("/api/v1/payments").json()
    assert info["service"] == "PayFlow Payment API"
    assert info["documentation"] == "/api/docs"

    _create(client)
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "payment_requests_total" in metrics.text


def test_correlation_id_is_echoed(client):
    resp = client.get("/api/v1/payments", headers={"X-Correlation-Id": "trace-123"})

    assert resp.headers["x-correlation-id"] == "trace-123"


def test_customer_listing_matches_address_as_sent(client):
    created = _create(client, customer_email="Jane@PayFlow.IO")

    assert created.status_code == 201
    assert created.json()["customer_email"] == "Jane@PayFlow.IO"
    resp = client.get("/api/v1/payments/customer/Jane@PayFlow.IO")
    assert [p["id"] for p in resp.json()] == [created.json()["id"]]


def test_status_listing(client, gateway):
    pending = _create(client).json()["id"]
    completed = _create(client).json()["id"]
    client.post(f"/api/v1/payments/{completed}/confirm", json={"payment_method_id": "pm_card_visa"})

    assert [p["id"] for p in client.get("/api/v1/payments/status/PENDING").json()] == [pending]
    assert [p["id"] for p in client.get("/api/v1/payments/status/COMPLETED").json()] == [completed]
    assert client.get("/api/v1/payments/status/REFUNDED").json() == []


def test_status_listing_rejects_unknown_status(client):
    resp = client.get("/api/v1/payments/status/SETTLED")

    assert resp.status_code == 400
    assert "path.status" in resp.json()["errors"]
