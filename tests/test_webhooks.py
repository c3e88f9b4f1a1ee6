import json
from decimal import Decimal

import pytest
import stripe

from app.models import Estimate, Payment

WEBHOOK_PATH = "/api/webhooks/stripe"


@pytest.fixture
def signed(monkeypatch):
    """Accept signature "valid"; anything else fails verification."""

    def _construct_event(payload, sig_header, secret):
        if sig_header != "valid":
            raise stripe.SignatureVerificationError("bad signature", sig_header)
        return json.loads(payload)

    monkeypatch.setattr(stripe.Webhook, "construct_event", _construct_event)


def _post(client, event_type, obj, signature="valid"):
    event = {"id": f"evt_{event_type}", "type": event_type, "data": {"object": obj}}
    return client.post(
        WEBHOOK_PATH,
        content=json.dumps(event),
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


@pytest.fixture
def pending_payment(db, user_a, make_lead, make_estimate):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, total="1000.00", status="SENT")
    payment = Payment(
        estimate_id=estimate.id,
        amount=Decimal("250.00"),
        type="DEPOSIT",
        status="PENDING",
        stripe_checkout_id="cs_test_1",
        meta={},
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def test_missing_signature_is_400(client):
    r = client.post(WEBHOOK_PATH, content=b"{}")
    assert r.status_code == 400


def test_invalid_signature_is_400(client, signed):
    r = _post(client, "checkout.session.completed", {"id": "cs_x"}, signature="forged")
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Invalid signature"


def test_checkout_completed_marks_processing_and_accepts(client, db, signed, pending_payment):
    r = _post(
        client,
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "payment_intent": "pi_123",
            "amount_total": 25000,
            "currency": "usd",
            "metadata": {"paymentId": pending_payment.id},
        },
    )
    assert r.status_code == 200
    assert r.json() == {"received": True}

    db.expire_all()
    payment = db.get(Payment, pending_payment.id)
    assert payment.status == "PROCESSING"
    assert payment.stripe_payment_id == "pi_123"
    assert db.get(Estimate, payment.estimate_id).status == "ACCEPTED"


def test_checkout_expired_marks_failed(client, db, signed, pending_payment):
    _post(
        client,
        "checkout.session.expired",
        {"id": "cs_test_1", "metadata": {"paymentId": pending_payment.id}},
    )
    db.expire_all()
    assert db.get(Payment, pending_payment.id).status == "FAILED"


def test_payment_succeeded_completes_payment(client, db, signed, pending_payment):
    _post(
        client,
        "payment_intent.succeeded",
        {"id": "pi_999", "amount_received": 25000, "metadata": {"paymentId": pending_payment.id}},
    )
    db.expire_all()
    payment = db.get(Payment, pending_payment.id)
    assert payment.status == "COMPLETED"
    assert payment.paid_at is not None
    assert payment.stripe_payment_id == "pi_999"
    assert db.get(Estimate, payment.estimate_id).status == "ACCEPTED"


def test_payment_failed_marks_failed(client, db, signed, pending_payment):
    _post(
        client,
        "payment_intent.payment_failed",
        {
            "id": "pi_bad",
            "metadata": {"paymentId": pending_payment.id},
            "last_payment_error": {"message": "Card declined"},
        },
    )
    db.expire_all()
    payment = db.get(Payment, pending_payment.id)
    assert payment.status == "FAILED"
    assert payment.meta["error"] == "Card declined"


def test_charge_refunded_marks_refunded(client, db, signed, pending_payment):
    pending_payment.stripe_payment_id = "pi_777"
    pending_payment.status = "COMPLETED"
    db.commit()

    _post(client, "charge.refunded", {"id": "ch_1", "payment_intent": "pi_777", "amount_refunded": 25000})
    db.expire_all()
    assert db.get(Payment, pending_payment.id).status == "REFUNDED"


def test_unhandled_event_is_acknowledged(client, signed):
    r = _post(client, "customer.created", {"id": "cus_1"})
    assert r.status_code == 200
    assert r.json() == {"received": True}
