# app/routers/takeoffs.py
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, get_owned_takeoff
from app.core.rate_limit import enforce_rate_limit
from app.db import get_db
from app.models import ContractorUser, Takeoff
from app.services.takeoff_review import review_takeoff, stored_review

router = APIRouter(prefix="/api/takeoffs", tags=["takeoffs"])


@router.post("/{takeoff_id}/review")
def run_review(
    response: Response,
    takeoff: Takeoff = Depends(get_owned_takeoff),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(
        "moderate",
        f"review:{user.contractor_id}",
        response,
        message="Too many review requests. Please try again later.",
    )

    review = review_takeoff(db, takeoff)
    return {"success": True, "takeoffId": takeoff.id, "analysis": review.dump()}


@router.get("/{takeoff_id}/review")
def get_review(takeoff: Takeoff = Depends(get_owned_takeoff)):
    return stored_review(takeoff)
