# app/routers/public_estimate.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.deps import verify_public_estimate_token
from app.core.rate_limit import rate_limit_by_ip
from app.db import get_db
from app.schemas.estimates import PublicContractorOut, PublicEstimateOut, PublicLeadOut
from app.services.payments import completed_total

router = APIRouter(prefix="/api/public/estimates", tags=["public_estimate"])


@router.get("/{token}", dependencies=[Depends(rate_limit_by_ip("lenient"))])
def public_estimate(token: str, db: Session = Depends(get_db)):
    """Homeowner view behind the emailed link; no login."""
    estimate = verify_public_estimate_token(db, token)

    view = PublicEstimateOut(
        line_items=estimate.line_items,
        subtotal=estimate.subtotal,
        margin=estimate.margin,
        contingency=estimate.contingency,
        total=estimate.total,
        status=estimate.status,
        expires_at=estimate.expires_at,
        created_at=estimate.created_at,
        contractor=PublicContractorOut.model_validate(estimate.contractor),
        lead=PublicLeadOut.model_validate(estimate.lead),
        amount_paid=completed_total(estimate),
    )
    return {"estimate": view.dump()}
