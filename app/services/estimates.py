# app/services/estimates.py
"""
Estimate lifecycle: draft from the latest takeoff, edit + recalc, send by
public link, and record the project outcome.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.models import Estimate, EstimateStatus, Lead, LeadStatus
from app.schemas.ai import EstimateLineItem, GeneratedEstimate, PricingGuidelines, ScopeOfWork
from app.schemas.estimates import EstimateFeedback, EstimateUpdate
from app.services.ai.client import UsageRecorder
from app.services.ai.estimate_generator import generate_estimate, recalculate_estimate
from app.services.ai_usage import record_usage
from app.services.lead_analysis import latest_takeoff
from app.services.lead_scoring import confidence_level

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
CLOSED_STATUSES = (EstimateStatus.ACCEPTED.value, EstimateStatus.DECLINED.value)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def public_estimate_url(token: str) -> str:
    return f"{settings.site_url.rstrip('/')}/e/{token}"


def draft_estimate(
    db: Session, lead: Lead, pricing: Optional[PricingGuidelines] = None
) -> Tuple[Estimate, GeneratedEstimate]:
    takeoff = latest_takeoff(db, lead.id)
    if not takeoff:
        raise BadRequestError("No analysis available. Run photo analysis first.")

    raw_scope = (takeoff.data or {}).get("scopeOfWork")
    if not raw_scope:
        raise BadRequestError("Invalid takeoff data")
    try:
        scope = ScopeOfWork.model_validate(raw_scope)
    except PydanticValidationError as e:
        raise BadRequestError("Invalid takeoff data") from e

    usage = UsageRecorder()
    generated = generate_estimate(scope, lead.trade_type, pricing, usage=usage)

    estimate = Estimate(
        lead_id=lead.id,
        contractor_id=lead.contractor_id,
        line_items=[i.model_dump(by_alias=True, exclude_none=True) for i in generated.line_items],
        subtotal=money(generated.subtotal),
        margin=money(generated.margin_percentage),
        contingency=money(generated.contingency_percentage),
        total=money(generated.total),
        confidence=confidence_level(takeoff.confidence),
        status=EstimateStatus.DRAFT.value,
    )
    db.add(estimate)
    lead.status = LeadStatus.ESTIMATED.value
    db.flush()
    record_usage(
        db, usage, contractor_id=lead.contractor_id, lead_id=lead.id, estimate_id=estimate.id
    )
    db.commit()
    db.refresh(estimate)

    logger.info("estimate drafted id=%s lead=%s total=%s", estimate.id, lead.id, estimate.total)
    return estimate, generated


def get_lead_estimate(db: Session, lead: Lead, estimate_id: Optional[str]) -> Estimate:
    if not estimate_id:
        raise BadRequestError("estimateId query parameter is required")
    estimate = (
        db.query(Estimate)
        .filter(Estimate.id == estimate_id, Estimate.lead_id == lead.id)
        .first()
    )
    if not estimate:
        raise NotFoundError("Estimate")
    return estimate


def update_estimate(db: Session, estimate: Estimate, payload: EstimateUpdate) -> Estimate:
    if payload.changes_pricing:
        items = payload.line_items
        if items is None:
            items = [EstimateLineItem.model_validate(i) for i in estimate.line_items]
        margin = (
            payload.margin_percentage
            if payload.margin_percentage is not None
            else float(estimate.margin)
        )
        contingency = (
            payload.contingency_percentage
            if payload.contingency_percentage is not None
            else float(estimate.contingency)
        )
        totals = recalculate_estimate(items, margin, contingency)

        estimate.line_items = [i.model_dump(by_alias=True, exclude_none=True) for i in items]
        estimate.subtotal = money(totals.subtotal)
        estimate.margin = money(margin)
        estimate.contingency = money(contingency)
        estimate.total = money(totals.total)

    if payload.status:
        estimate.status = payload.status

    db.commit()
    db.refresh(estimate)
    return estimate


def send_estimate(db: Session, estimate: Estimate) -> Estimate:
    if estimate.status in CLOSED_STATUSES:
        raise ConflictError(f"Estimate has already been {estimate.status.lower()}")

    if not estimate.public_token:
        estimate.public_token = secrets.token_urlsafe(24)
    estimate.expires_at = datetime.now(timezone.utc) + timedelta(days=settings.estimate_link_days)
    estimate.status = EstimateStatus.SENT.value
    db.commit()
    db.refresh(estimate)

    logger.info("estimate sent id=%s expires=%s", estimate.id, estimate.expires_at)
    return estimate


def record_feedback(db: Session, estimate: Estimate, payload: EstimateFeedback) -> Estimate:
    estimate.project_outcome = payload.project_outcome
    estimate.actual_cost = money(payload.actual_cost) if payload.actual_cost is not None else None
    estimate.completed_at = payload.completed_at
    estimate.feedback_notes = payload.feedback_notes

    variance = variance_percent = None
    if estimate.actual_cost is not None:
        total = Decimal(estimate.total)
        variance = estimate.actual_cost - total
        if total > 0:
            variance_percent = money(variance / total * 100)
    estimate.variance = variance
    estimate.variance_percent = variance_percent

    db.commit()
    db.refresh(estimate)
    return estimate
