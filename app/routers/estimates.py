# app/routers/estimates.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Response
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, get_owned_estimate, get_owned_lead
from app.core.logging_config import logger
from app.core.rate_limit import enforce_rate_limit
from app.db import get_db
from app.models import ContractorUser, Estimate, Lead
from app.schemas.estimates import (
    EstimateFeedback,
    EstimateOut,
    EstimateUpdate,
    GenerateEstimateRequest,
)
from app.services import estimates as estimate_service
from app.services.email import notify_estimate_sent
from app.services.proposal_pdf import proposal_filename, render_proposal_pdf

router = APIRouter(tags=["estimates"])


# ----------------------------------------------------
# Draft + edit (per lead)
# ----------------------------------------------------
@router.post("/api/leads/{lead_id}/estimate")
def generate_estimate(
    response: Response,
    payload: Optional[GenerateEstimateRequest] = Body(None),
    lead: Lead = Depends(get_owned_lead),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(
        "moderate",
        f"estimate:{user.contractor_id}",
        response,
        message="Too many estimate requests. Please try again later.",
    )

    pricing = payload.pricing_guidelines if payload else None
    estimate, generated = estimate_service.draft_estimate(db, lead, pricing)
    return {
        "success": True,
        "estimateId": estimate.id,
        "estimate": {**generated.dump(), "id": estimate.id, "status": estimate.status},
    }


@router.patch("/api/leads/{lead_id}/estimate")
def update_estimate(
    payload: EstimateUpdate,
    estimate_id: Optional[str] = Query(None, alias="estimateId"),
    lead: Lead = Depends(get_owned_lead),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.get_lead_estimate(db, lead, estimate_id)
    estimate = estimate_service.update_estimate(db, estimate, payload)
    return {"success": True, "estimate": EstimateOut.model_validate(estimate).dump()}


# ----------------------------------------------------
# Lifecycle (per estimate)
# ----------------------------------------------------
@router.get("/api/estimates/{estimate_id}")
def get_estimate(estimate: Estimate = Depends(get_owned_estimate)):
    return {"estimate": EstimateOut.model_validate(estimate).dump()}


@router.get("/api/estimates/{estimate_id}/pdf")
def download_proposal(estimate: Estimate = Depends(get_owned_estimate)):
    return Response(
        content=render_proposal_pdf(estimate),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{proposal_filename(estimate)}"'},
    )


@router.post("/api/estimates/{estimate_id}/send")
def send_estimate(
    background: BackgroundTasks,
    estimate: Estimate = Depends(get_owned_estimate),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.send_estimate(db, estimate)
    background.add_task(notify_estimate_sent, estimate.id)

    logger.info("estimate_sent", estimate_id=estimate.id, lead_id=estimate.lead_id)
    return {
        "success": True,
        "estimate": EstimateOut.model_validate(estimate).dump(),
        "publicUrl": estimate_service.public_estimate_url(estimate.public_token),
    }


@router.post("/api/estimates/{estimate_id}/feedback")
def submit_feedback(
    payload: EstimateFeedback,
    estimate: Estimate = Depends(get_owned_estimate),
    db: Session = Depends(get_db),
):
    estimate = estimate_service.record_feedback(db, estimate, payload)
    return {"success": True, "estimate": EstimateOut.model_validate(estimate).dump()}
