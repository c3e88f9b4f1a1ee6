# app/routers/checkout.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, get_owned_estimate
from app.core.logging_config import logger
from app.core.rate_limit import enforce_rate_limit, exempt
from app.db import get_db
from app.models import ContractorUser, Estimate
from app.schemas.estimates import CheckoutRequest
from app.services import payments

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/estimates/{estimate_id}/checkout")
def create_checkout(
    response: Response,
    payload: Optional[CheckoutRequest] = Body(None),
    estimate: Estimate = Depends(get_owned_estimate),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(
        "strict",
        f"checkout:{user.contractor_id}",
        response,
        message="Too many payment requests. Please try again later.",
    )

    payload = payload or CheckoutRequest()
    result = payments.create_checkout_session(
        db,
        estimate,
        payload.type,
        idempotency_key=payload.idempotency_key,
    )
    logger.info(
        "checkout_created",
        estimate_id=estimate.id,
        payment_id=result.payment_id,
        reused=result.reused,
    )
    return {"url": result.session_url, "sessionId": result.session_id}


@router.post("/webhooks/stripe")
@exempt
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    # signature is computed over the raw bytes
    payload = await request.body()
    event = payments.construct_event(payload, request.headers.get("stripe-signature"))

    handled = await run_in_threadpool(payments.handle_event, db, event)
    logger.info("stripe_webhook", event_type=event["type"], handled=handled)
    return {"received": True}
