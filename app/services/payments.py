# app/services/payments.py
"""
Stripe checkout + webhook processing.

A Payment row is created PENDING before the hosted checkout session, then
moved along by webhooks: PROCESSING (checkout completed) -> COMPLETED
(payment intent succeeded), or FAILED / REFUNDED.

FINAL amounts are computed from COMPLETED payments while holding a row lock
on the estimate; webhook status changes take the same lock, so a FINAL
checkout never sees a half-applied payment (Postgres; SQLite has no row
locks and serializes writers instead).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import BadRequestError, ExternalServiceError, ServiceUnavailableError
from app.models import (
    Estimate,
    EstimateStatus,
    Lead,
    Payment,
    PaymentStatus,
    PaymentType,
)
from app.observability.metrics import checkout_counter, webhook_counter

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (EstimateStatus.SENT.value, EstimateStatus.ACCEPTED.value)


@dataclass
class CheckoutResult:
    session_id: str
    session_url: str
    payment_id: str
    amount: Decimal
    reused: bool = False


def _stripe_key() -> str:
    if not settings.stripe_secret_key:
        raise ServiceUnavailableError("Payments are not configured")
    return settings.stripe_secret_key


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _lock_estimate(db: Session, estimate_id: str) -> Optional[Estimate]:
    return db.query(Estimate).filter(Estimate.id == estimate_id).with_for_update().first()


def completed_total(estimate: Estimate) -> Decimal:
    return sum(
        (Decimal(p.amount) for p in estimate.payments if p.status == PaymentStatus.COMPLETED.value),
        Decimal("0"),
    )


def calculate_payment_amount(estimate: Estimate, payment_type: str) -> tuple[Decimal, str]:
    total = Decimal(estimate.total)

    if payment_type == PaymentType.DEPOSIT.value:
        pct = Decimal(estimate.contractor.deposit_percentage)
        amount = total * pct / Decimal(100)
        return amount, f"{pct.normalize():f}% Deposit - Project at {estimate.lead.address}"

    if payment_type == PaymentType.FINAL.value:
        amount = total - completed_total(estimate)
        if amount <= 0:
            raise BadRequestError("No remaining balance to pay")
        return amount, f"Final Payment - Project at {estimate.lead.address}"

    raise BadRequestError("MILESTONE payments not yet implemented")


def _find_by_idempotency_key(estimate: Estimate, key: str) -> Optional[Payment]:
    for p in estimate.payments:
        if (p.meta or {}).get("idempotencyKey") == key:
            return p
    return None


def _validate_payable(estimate: Estimate) -> None:
    if estimate.status not in PAYABLE_STATUSES:
        raise BadRequestError("Estimate is not available for payment")
    if estimate.expires_at and _now() > _aware(estimate.expires_at):
        raise BadRequestError("Estimate has expired")


def ensure_stripe_customer(db: Session, lead: Lead) -> str:
    if lead.stripe_customer_id:
        return lead.stripe_customer_id

    try:
        customer = stripe.Customer.create(
            api_key=_stripe_key(),
            email=lead.homeowner_email,
            name=lead.homeowner_name,
            metadata={"leadId": lead.id, "contractorId": lead.contractor_id},
        )
    except stripe.StripeError as e:
        raise ExternalServiceError("Stripe", "Failed to create customer", details=str(e)) from e

    lead.stripe_customer_id = customer["id"]
    return lead.stripe_customer_id


def create_checkout_session(
    db: Session,
    estimate: Estimate,
    payment_type: str,
    *,
    idempotency_key: Optional[str] = None,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> CheckoutResult:
    logger.info("creating checkout session estimate=%s type=%s", estimate.id, payment_type)

    if idempotency_key:
        existing = _find_by_idempotency_key(estimate, idempotency_key)
        session_url = (existing.meta or {}).get("sessionUrl") if existing else None
        if existing and existing.stripe_checkout_id and session_url:
            checkout_counter.labels(result="reused").inc()
            return CheckoutResult(
                session_id=existing.stripe_checkout_id,
                session_url=session_url,
                payment_id=existing.id,
                amount=Decimal(existing.amount),
                reused=True,
            )

    _validate_payable(estimate)
    calculate_payment_amount(estimate, payment_type)  # fail fast before touching Stripe

    lead = estimate.lead
    had_customer = bool(lead.stripe_customer_id)
    customer_id = ensure_stripe_customer(db, lead)
    if not had_customer:
        db.commit()  # keep the customer even if the session below fails

    if payment_type == PaymentType.FINAL.value:
        _lock_estimate(db, estimate.id)
        db.refresh(estimate, attribute_names=["payments"])

    amount, description = calculate_payment_amount(estimate, payment_type)
    amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    amount_cents = int(amount * 100)
    if amount_cents <= 0:
        raise BadRequestError("Invalid payment amount")

    payment = Payment(
        estimate_id=estimate.id,
        amount=amount,
        type=payment_type,
        status=PaymentStatus.PENDING.value,
        meta={"idempotencyKey": idempotency_key} if idempotency_key else {},
    )
    db.add(payment)
    db.flush()

    metadata = {
        "paymentId": payment.id,
        "estimateId": estimate.id,
        "contractorId": estimate.contractor_id,
        "leadId": lead.id,
        "type": payment_type,
    }
    public_token = estimate.public_token or ""

    try:
        session = stripe.checkout.Session.create(
            api_key=_stripe_key(),
            customer=customer_id,
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": settings.stripe_currency,
                        "product_data": {
                            "name": estimate.contractor.company_name,
                            "description": description,
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url or f"{settings.site_url}/e/{public_token}?payment=success",
            cancel_url=cancel_url or f"{settings.site_url}/e/{public_token}?payment=cancelled",
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        db.rollback()
        checkout_counter.labels(result="error").inc()
        logger.error("stripe checkout failed estimate=%s: %s", estimate.id, e)
        raise ExternalServiceError(
            "Stripe", "Failed to create checkout session", details=str(e)
        ) from e

    payment.stripe_checkout_id = session["id"]
    payment.meta = {**(payment.meta or {}), "sessionUrl": session["url"]}
    db.commit()

    checkout_counter.labels(result="created").inc()
    logger.info("checkout session created session=%s payment=%s", session["id"], payment.id)
    return CheckoutResult(
        session_id=session["id"],
        session_url=session["url"] or "",
        payment_id=payment.id,
        amount=amount,
    )


# ------------------------------------------------------------
# Webhooks
# ------------------------------------------------------------
def construct_event(payload: bytes, signature: Optional[str]):
    """Verify the Stripe-Signature header; BadRequestError on any mismatch."""
    if not signature:
        raise BadRequestError("Missing stripe-signature header")
    if not settings.stripe_webhook_secret:
        raise ServiceUnavailableError("Payments are not configured")

    try:
        return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("stripe webhook signature verification failed: %s", e)
        raise BadRequestError("Invalid signature")


def _payment_for_intent(db: Session, intent: Dict[str, Any]) -> Optional[Payment]:
    payment = db.query(Payment).filter(Payment.stripe_payment_id == intent["id"]).first()
    if payment is None:
        payment_id = (intent.get("metadata") or {}).get("paymentId")
        if payment_id:
            payment = db.get(Payment, payment_id)
    return payment


def _maybe_accept(estimate: Estimate) -> None:
    if estimate.status == EstimateStatus.SENT.value and completed_total(estimate) == 0:
        estimate.status = EstimateStatus.ACCEPTED.value


def _on_checkout_completed(db: Session, session: Dict[str, Any]) -> None:
    metadata = session.get("metadata") or {}
    payment = db.get(Payment, metadata.get("paymentId")) if metadata.get("paymentId") else None
    if payment is None:
        logger.error("checkout.session.completed without known payment session=%s", session.get("id"))
        return

    estimate = _lock_estimate(db, payment.estimate_id)
    payment.status = PaymentStatus.PROCESSING.value
    payment.stripe_checkout_id = session["id"]
    if session.get("payment_intent"):
        payment.stripe_payment_id = session["payment_intent"]
    payment.meta = {
        **(payment.meta or {}),
        "checkoutSessionId": session["id"],
        "paymentIntentId": session.get("payment_intent"),
        "amountTotal": session.get("amount_total"),
        "currency": session.get("currency"),
    }
    if estimate is not None:
        _maybe_accept(estimate)


def _on_checkout_expired(db: Session, session: Dict[str, Any]) -> None:
    payment_id = (session.get("metadata") or {}).get("paymentId")
    payment = db.get(Payment, payment_id) if payment_id else None
    if payment is None:
        return
    payment.status = PaymentStatus.FAILED.value
    payment.meta = {
        **(payment.meta or {}),
        "error": "Checkout session expired",
        "checkoutSessionId": session.get("id"),
    }


def _on_payment_succeeded(db: Session, intent: Dict[str, Any]) -> None:
    payment = _payment_for_intent(db, intent)
    if payment is None:
        logger.error("payment not found for payment intent %s", intent["id"])
        return

    estimate = _lock_estimate(db, payment.estimate_id)
    if estimate is not None and payment.type == PaymentType.DEPOSIT.value:
        _maybe_accept(estimate)

    payment.status = PaymentStatus.COMPLETED.value
    payment.stripe_payment_id = intent["id"]
    payment.paid_at = _now()
    payment.meta = {
        **(payment.meta or {}),
        "paymentIntentId": intent["id"],
        "amountReceived": intent.get("amount_received"),
    }


def _on_payment_failed(db: Session, intent: Dict[str, Any]) -> None:
    payment = _payment_for_intent(db, intent)
    if payment is None:
        return

    _lock_estimate(db, payment.estimate_id)
    last_error = intent.get("last_payment_error") or {}
    payment.status = PaymentStatus.FAILED.value
    payment.meta = {
        **(payment.meta or {}),
        "error": last_error.get("message") or "Payment failed",
        "paymentIntentId": intent["id"],
    }


def _on_charge_refunded(db: Session, charge: Dict[str, Any]) -> None:
    intent_id = charge.get("payment_intent")
    if not intent_id:
        return
    payment = db.query(Payment).filter(Payment.stripe_payment_id == intent_id).first()
    if payment is None:
        return

    _lock_estimate(db, payment.estimate_id)
    payment.status = PaymentStatus.REFUNDED.value
    payment.meta = {
        **(payment.meta or {}),
        "chargeId": charge.get("id"),
        "amountRefunded": charge.get("amount_refunded"),
        "refundedAt": _now().isoformat(),
    }


_HANDLERS = {
    "checkout.session.completed": _on_checkout_completed,
    "checkout.session.expired": _on_checkout_expired,
    "payment_intent.succeeded": _on_payment_succeeded,
    "payment_intent.payment_failed": _on_payment_failed,
    "charge.refunded": _on_charge_refunded,
}


def handle_event(db: Session, event: Dict[str, Any]) -> bool:
    """Apply one webhook event. Returns False for event types we ignore."""
    event_type = event["type"]
    webhook_counter.labels(event_type=event_type).inc()

    handler = _HANDLERS.get(event_type)
    if handler is None:
        logger.info("unhandled stripe event type %s", event_type)
        return False

    handler(db, event["data"]["object"])
    db.commit()
    logger.info("stripe event %s processed id=%s", event_type, event.get("id"))
    return True


def check_stripe() -> None:
    stripe.Customer.list(api_key=_stripe_key(), limit=1)
