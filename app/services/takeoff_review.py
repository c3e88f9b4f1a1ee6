# app/services/takeoff_review.py
"""
Accuracy review of a stored takeoff. When the lead's latest estimate carries a
recorded outcome (actual cost), the review compares against it.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import BadRequestError
from app.core.logging_config import logger
from app.models import Estimate, Takeoff
from app.schemas.ai import TakeoffReview
from app.services.ai import review_analyzer
from app.services.ai.client import UsageRecorder
from app.services.ai_usage import record_usage


def _latest_estimate(db: Session, lead_id: str) -> Optional[Estimate]:
    return (
        db.query(Estimate)
        .filter(Estimate.lead_id == lead_id)
        .order_by(Estimate.created_at.desc())
        .first()
    )


def review_takeoff(db: Session, takeoff: Takeoff) -> TakeoffReview:
    data = takeoff.data or {}
    if not data.get("scopeOfWork"):
        raise BadRequestError("Takeoff has no scope of work to review")

    outcome = {}
    estimate = _latest_estimate(db, takeoff.lead_id)
    if estimate is not None and estimate.actual_cost is not None:
        outcome = {
            "estimated_total": estimate.total,
            "actual_cost": estimate.actual_cost,
            "variance": estimate.variance,
            "feedback_notes": estimate.feedback_notes,
        }

    usage = UsageRecorder()
    review = review_analyzer.analyze_takeoff_accuracy(
        data,
        takeoff.trade_type,
        photo_count=len(data.get("photoAnalyses") or []),
        usage=usage,
        **outcome,
    )

    takeoff.reviewed_at = datetime.now(timezone.utc)
    takeoff.overall_accuracy = review.overall_accuracy
    takeoff.accuracy_feedback = [f.model_dump(by_alias=True) for f in review.feedback]
    takeoff.review_notes = review.summary

    record_usage(
        db,
        usage,
        contractor_id=takeoff.lead.contractor_id,
        lead_id=takeoff.lead_id,
        estimate_id=estimate.id if estimate is not None else None,
        metadata={"takeoffId": takeoff.id},
    )
    db.commit()
    db.refresh(takeoff)

    logger.info(
        "takeoff_reviewed",
        takeoff_id=takeoff.id,
        accuracy=review.overall_accuracy,
        with_outcome=bool(outcome),
    )
    return review


def stored_review(takeoff: Takeoff) -> dict:
    if takeoff.reviewed_at is None:
        return {"hasReview": False}

    return {
        "hasReview": True,
        "reviewedAt": takeoff.reviewed_at.isoformat(),
        "overallAccuracy": takeoff.overall_accuracy,
        "feedback": takeoff.accuracy_feedback or [],
        "summary": takeoff.review_notes,
    }
