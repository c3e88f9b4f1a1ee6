# app/routers/analyze.py
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, get_owned_lead
from app.core.errors import NotFoundError
from app.core.rate_limit import enforce_rate_limit
from app.db import get_db
from app.models import ContractorUser, Lead
from app.schemas.leads import TakeoffOut
from app.services.lead_analysis import analyze_lead, analyze_lead_documents, latest_takeoff

router = APIRouter(prefix="/api/leads", tags=["analysis"])


@router.post("/{lead_id}/analyze")
def run_analysis(
    response: Response,
    lead: Lead = Depends(get_owned_lead),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(
        "moderate",
        f"analyze:{user.contractor_id}",
        response,
        message="Too many analysis requests. Please try again later.",
    )

    result = analyze_lead(db, lead)
    summary = result.photos.summary
    return {
        "success": True,
        "takeoffId": result.takeoff.id,
        "score": result.score,
        "summary": {
            "photoCount": len(result.photos.photos),
            "confidence": summary.overall_confidence,
            "primaryTrades": summary.primary_trades,
            "workItemCount": summary.total_work_items,
        },
        "scopeOfWork": result.scope.dump(),
    }


@router.post("/{lead_id}/documents/analyze")
def run_document_analysis(
    response: Response,
    lead: Lead = Depends(get_owned_lead),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(
        "moderate",
        f"analyze:{user.contractor_id}",
        response,
        message="Too many analysis requests. Please try again later.",
    )

    result = analyze_lead_documents(db, lead)
    return {
        "success": True,
        "takeoffId": result.takeoff.id,
        "score": result.score,
        "sourceType": result.takeoff.source_type,
        "summary": {
            "documentCount": len(result.plans),
            "skippedDocumentIds": result.skipped_document_ids,
            "confidence": result.confidence,
            "totalSquareFootage": result.square_footage,
        },
        "scopeOfWork": result.scope.dump(),
    }


@router.get("/{lead_id}/analyze")
def get_analysis(
    lead: Lead = Depends(get_owned_lead),
    db: Session = Depends(get_db),
):
    takeoff = latest_takeoff(db, lead.id)
    if not takeoff:
        raise NotFoundError("Analysis")

    return TakeoffOut(
        takeoff_id=takeoff.id,
        confidence=takeoff.confidence,
        source_type=takeoff.source_type,
        document_ids=takeoff.document_ids,
        data=takeoff.data,
        created_at=takeoff.created_at,
    ).dump()
