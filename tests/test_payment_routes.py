"""
API tests for order creation, payment verification and the webhook
"""
import hmac
import json
import hashlib

import pytest
import razorpay
from razorpay.errors import BadRequestError, ServerError

from db import Transaction, Subscription
from tiers import Tier
import payment_routes

SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


def sign(message: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class FakeOrders:
    """Stands in for client.order: records orders instead of calling Razorpay"""

    def __init__(self):
        self.created = []
        self.error = None

    def create(self, data):
        if self.error is not None:
            raise self.error
        self.created.append(data)
        return {"id": f"order_{len(self.created)}", "amount": data["amount"], "currency": data["currency"]}


@pytest.fixture
def rzp_client():
    return razorpay.Client(auth=("rzp_test_key", SECRET))


@pytest.fixture
def gateway(monkeypatch, rzp_client):
    orders = FakeOrders()
    invoices = []
    monkeypatch.setattr(rzp_client, "order", orders)
    monkeypatch.setattr(payment_routes, "_rzp", rzp_client)
    monkeypatch.setattr(payment_routes, "RZP_KEY_ID", "rzp_test_key")
    monkeypatch.setattr(payment_routes, "RZP_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(payment_routes, "send_email", lambda to, subject, body: invoices.append(to) or True)
    return {"orders": orders, "invoices": invoices}


def create_order(client, headers, plan="gold"):
    return client.post("/api/payments/create-order", json={"plan": plan}, headers=headers)


def verify(client, headers, order_id, payment_id="pay_1", signature=None):
    signature = signature or sign(f"{order_id}|{payment_id}".encode())
    return client.post(
        "/api/payments/verify",
        json={"orderId": order_id, "paymentId": payment_id, "signature": signature},
        headers=headers,
    )


class TestSignatures:
    def test_payment_signature(self, rzp_client):
        good = sign(b"order_1|pay_1")
        assert payment_routes.verify_payment_signature("order_1", "pay_1", good, client=rzp_client)
        assert not payment_routes.verify_payment_signature("order_1", "pay_2", good, client=rzp_client)

    def test_no_client_never_verifies(self, monkeypatch):
        monkeypatch.setattr(payment_routes, "_rzp", None)
        assert not payment_routes.verify_payment_signature("order_1", "pay_1", sign(b"order_1|pay_1"))

    def test_webhook_signature(self):
        body = b'{"event":"order.paid"}'
        assert payment_routes.verify_webhook_signature(body, sign(body, WEBHOOK_SECRET), secret=WEBHOOK_SECRET)
        assert not payment_routes.verify_webhook_signature(body + b" ", sign(body, WEBHOOK_SECRET), secret=WEBHOOK_SECRET)


class TestCreateOrder:
    def test_creates_pending_transaction(self, client, db_session, user, auth_headers, gateway):
        resp = create_order(client, auth_headers, "gold")

        assert resp.status_code == 201
        data = resp.json()
        assert data["orderId"] == "order_1"
        assert data["amount"] == 10000
        assert data["plan"] == "GOLD"
        sent = gateway["orders"].created[0]
        assert sent["amount"] == 10000
        assert sent["currency"] == "INR"
        assert sent["notes"] == {"userId": str(user.id), "plan": "GOLD"}
        txn = db_session.query(Transaction).one()
        assert txn.status == "PENDING"
        assert txn.plan is Tier.GOLD

    @pytest.mark.parametrize("plan", ["free", "premium", "diamond", ""])
    def test_rejects_unsellable_plans(self, client, user, auth_headers, gateway, plan):
        assert create_order(client, auth_headers, plan).status_code == 400

    def test_rejects_plan_already_held(self, client, gold_user, headers_for, gateway):
        resp = create_order(client, headers_for(gold_user), "gold")
        assert resp.status_code == 400
        assert "already subscribed" in resp.json()["detail"]

    def test_gateway_not_configured(self, client, user, auth_headers, monkeypatch):
        monkeypatch.setattr(payment_routes, "_rzp", None)
        assert create_order(client, auth_headers).status_code == 503

    @pytest.mark.parametrize("error, status", [
        (BadRequestError("amount too small"), 400),
        (ServerError("upstream down"), 502),
    ])
    def test_gateway_errors_are_mapped(self, client, db_session, user, auth_headers, gateway, error, status):
        gateway["orders"].error = error

        resp = create_order(client, auth_headers)

        assert resp.status_code == status
        assert db_session.query(Transaction).count() == 0


class TestVerify:
    def test_valid_signature_activates_plan(self, client, db_session, user, auth_headers, gateway):
        order_id = create_order(client, auth_headers, "gold").json()["orderId"]

        resp = verify(client, auth_headers, order_id)

        assert resp.status_code == 200
        body = resp.json()
        assert body["subscription"]["planType"] == "gold"
        assert body["invoiceNumber"].startswith("INV-")
        db_session.refresh(user)
        assert user.current_plan is Tier.GOLD
        assert gateway["invoices"] == [user.email]

        elig = client.get(f"/api/download/eligibility/{user.id}", headers=auth_headers).json()
        assert elig["isPremium"] is True
        assert elig["maxDownloads"] == "unlimited"

    def test_bad_signature(self, client, db_session, user, auth_headers, gateway):
        order_id = create_order(client, auth_headers).json()["orderId"]

        resp = verify(client, auth_headers, order_id, signature="0" * 64)

        assert resp.status_code == 400
        assert db_session.query(Transaction).one().status == "PENDING"

    def test_verify_is_idempotent(self, client, db_session, user, auth_headers, gateway):
        order_id = create_order(client, auth_headers).json()["orderId"]

        assert verify(client, auth_headers, order_id).status_code == 200
        assert verify(client, auth_headers, order_id).status_code == 200

        gold_rows = db_session.query(Subscription).filter(Subscription.plan_type == Tier.GOLD).count()
        assert gold_rows == 1
        assert len(gateway["invoices"]) == 1

    def test_other_users_order(self, client, user, auth_headers, gold_user, headers_for, gateway):
        order_id = create_order(client, auth_headers).json()["orderId"]
        assert verify(client, headers_for(gold_user), order_id).status_code == 404

    def test_gateway_missing(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(payment_routes, "_rzp", None)
        assert verify(client, auth_headers, "order_1", signature="x").status_code == 503


class TestWebhook:
    def _post(self, client, event, secret=WEBHOOK_SECRET):
        body = json.dumps(event).encode()
        return client.post(
            "/api/payments/razorpay/webhook",
            content=body,
            headers={"X-Razorpay-Signature": sign(body, secret), "Content-Type": "application/json"},
        )

    def test_payment_captured_activates(self, client, db_session, user, auth_headers, gateway):
        order_id = create_order(client, auth_headers, "silver").json()["orderId"]
        event = {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_9", "order_id": order_id}}},
        }

        resp = self._post(client, event)

        assert resp.status_code == 200
        assert resp.json()["orderId"] == order_id
        db_session.refresh(user)
        assert user.current_plan is Tier.SILVER

    def test_payment_failed(self, client, db_session, user, auth_headers, gateway):
        order_id = create_order(client, auth_headers).json()["orderId"]
        event = {"event": "payment.failed", "payload": {"payment": {"entity": {"id": "p", "order_id": order_id}}}}

        self._post(client, event)

        assert db_session.query(Transaction).one().status == "FAILED"

    def test_bad_signature(self, client, gateway):
        assert self._post(client, {"event": "order.paid"}, secret="wrong").status_code == 401

    def test_unknown_order_acknowledged(self, client, gateway):
        event = {"event": "order.paid", "payload": {"order": {"entity": {"id": "order_x"}}}}
        resp = self._post(client, event)
        assert resp.status_code == 200
        assert resp.json()["note"] == "order-not-found"
