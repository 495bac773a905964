from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from factories import (
    get_actions,
    get_audit_entries,
    get_payment,
    get_subscriptions,
    run,
    seed_payment,
    seed_subscription,
    seed_user,
)
import scouting_server.api.deps as deps
from scouting_server.admin.routes import admin_router
from scouting_server.api import payment_router, subscription_router, validation_router
from scouting_server.clock import utcnow
from scouting_server.gateways.cinetpay import generate_payment_signature
from scouting_server.models.user import UserRole

app = FastAPI()
app.include_router(payment_router.router, prefix="/api")
app.include_router(subscription_router.router, prefix="/api")
app.include_router(validation_router.router, prefix="/api")
app.include_router(admin_router, prefix="/api")

ADMIN_TOKEN = "admin-token"


@pytest.fixture
def client(monkeypatch, session_factory):
    monkeypatch.setattr(deps, "SessionLocal", session_factory)
    monkeypatch.setattr(deps.settings, "admin_api_token", ADMIN_TOKEN)
    with TestClient(app) as test_client:
        yield test_client


def as_user(user_id):
    return {"X-User-Id": str(user_id)}


def test_requests_without_identity_are_rejected(client):
    assert client.get("/api/subscriptions/status").status_code == 401
    assert client.get("/api/subscriptions/status", headers=as_user(999)).status_code == 401


def test_plans_are_public(client):
    plans = client.get("/api/subscriptions/plans").json()["plans"]
    assert [plan["id"] for plan in plans] == ["monthly", "quarterly", "annual"]
    assert plans[0]["price"] == 9.99


def test_initiate_cinetpay_payment(client, session_factory):
    user_id = run(seed_user(session_factory))

    response = client.post(
        "/api/payments/initiate", json={"plan": "monthly"}, headers=as_user(user_id)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["transaction_id"].startswith("TXN-")
    assert data["amount"] == 6543
    assert data["currency"] == "XOF"
    gateway = data["gateway"]
    assert gateway["site_id"] == "105900"
    assert gateway["notify_url"].endswith("/api/webhooks/cinetpay")
    assert gateway["signature"] == generate_payment_signature(
        6543, "XOF", data["transaction_id"], "cinetpay-api-key", "105900"
    )

    payment = run(get_payment(session_factory, data["transaction_id"]))
    assert payment.status == "pending"
    assert payment.payment_method == "cinetpay"
    [subscription] = run(get_subscriptions(session_factory, user_id))
    assert subscription.status == "none"


def test_initiate_rejects_unknown_plan_and_provider(client, session_factory):
    user_id = run(seed_user(session_factory))

    bad_plan = client.post("/api/payments/initiate", json={"plan": "weekly"}, headers=as_user(user_id))
    bad_provider = client.post(
        "/api/payments/initiate",
        json={"plan": "monthly", "provider": "paypal"},
        headers=as_user(user_id),
    )

    assert bad_plan.status_code == 400
    assert bad_provider.status_code == 400


def test_subscription_status_and_cancel(client, session_factory):
    user_id = run(seed_user(session_factory))
    assert client.post("/api/subscriptions/cancel", headers=as_user(user_id)).status_code == 404

    run(seed_subscription(session_factory, user_id, expires_at=utcnow() + timedelta(days=3)))
    status = client.get("/api/subscriptions/status", headers=as_user(user_id)).json()
    assert status["status"] == "active"
    assert status["is_active"] is True

    cancelled = client.post("/api/subscriptions/cancel", headers=as_user(user_id))
    assert cancelled.json() == {"status": "cancelled", "auto_renew": False}
    assert "subscription_cancelled" in run(get_actions(session_factory))


def test_validation_endpoints(client, session_factory):
    user_id = run(seed_user(session_factory, roles=[UserRole.SUBSCRIBER]))
    run(seed_subscription(session_factory, user_id, expires_at=utcnow() + timedelta(days=3)))

    access = client.post("/api/validation/access", headers=as_user(user_id)).json()
    endpoint = client.post(
        "/api/validation/endpoint", json={"endpoint": "/api/players/search"}, headers=as_user(user_id)
    ).json()
    subscription = client.get("/api/validation/subscription", headers=as_user(user_id)).json()

    assert access["has_access"] is True
    assert access["roles"] == ["subscriber"]
    assert endpoint == {"endpoint": "/api/players/search", "can_access": True}
    assert subscription["is_active"] is True


def test_admin_requires_token(client, monkeypatch):
    assert client.get("/api/admin/audit-logs").status_code == 403
    assert client.get("/api/admin/audit-logs", headers={"X-Admin-Token": "nope"}).status_code == 403

    monkeypatch.setattr(deps.settings, "admin_api_token", None)
    assert client.get("/api/admin/audit-logs", headers={"X-Admin-Token": ADMIN_TOKEN}).status_code == 404


def test_admin_activate_and_cancel(client, session_factory):
    user_id = run(seed_user(session_factory))
    headers = {"X-Admin-Token": ADMIN_TOKEN}

    activated = client.post(
        f"/api/admin/subscriptions/{user_id}/activate", json={"duration_days": 90}, headers=headers
    )
    assert activated.status_code == 200
    assert activated.json()["status"] == "active"
    [subscription] = run(get_subscriptions(session_factory, user_id))
    assert subscription.updated_by == "admin"
    assert subscription.expires_at - subscription.starts_at == timedelta(days=90)

    cancelled = client.post(f"/api/admin/subscriptions/{user_id}/cancel", headers=headers)
    assert cancelled.json()["status"] == "cancelled"

    missing = client.post("/api/admin/subscriptions/9999/activate", headers=headers)
    assert missing.status_code == 404

    logs = client.get("/api/admin/audit-logs", params={"action": "admin_subscription_activated"}, headers=headers)
    [entry] = logs.json()
    assert entry["target_user_id"] == user_id
    assert entry["metadata"]["duration_days"] == 90


def test_admin_refund(client, session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id, "TXN-C", status="completed"))
    run(seed_payment(session_factory, user_id, "TXN-P"))
    headers = {"X-Admin-Token": ADMIN_TOKEN}

    assert client.post("/api/admin/maintenance/repair", headers=headers).json() == {"repaired": 1}
    linked_to = run(get_payment(session_factory, "TXN-C")).subscription_id

    refunded = client.post("/api/admin/payments/TXN-C/refund", headers=headers)
    again = client.post("/api/admin/payments/TXN-C/refund", headers=headers)
    pending = client.post("/api/admin/payments/TXN-P/refund", headers=headers)
    unknown = client.post("/api/admin/payments/TXN-X/refund", headers=headers)

    assert refunded.json() == {"transaction_id": "TXN-C", "status": "refunded"}
    assert again.status_code == 409
    assert pending.status_code == 409
    assert unknown.status_code == 404
    payment = run(get_payment(session_factory, "TXN-C"))
    assert payment.status == "refunded"
    assert payment.subscription_id is None
    [entry] = run(get_audit_entries(session_factory, "admin_payment_refunded"))
    assert linked_to is not None
    assert entry.details["subscription_id"] == linked_to


def test_admin_repair(client, session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id, status="completed"))

    response = client.post("/api/admin/maintenance/repair", headers={"X-Admin-Token": ADMIN_TOKEN})

    assert response.json() == {"repaired": 1}
    assert run(get_payment(session_factory, "TXN-1")).subscription_id is not None
