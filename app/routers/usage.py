# app/routers/usage.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, get_owned_lead
from app.config import settings
from app.core.errors import BadRequestError
from app.db import get_db
from app.models import ContractorUser, Lead
from app.schemas.usage import AIUsageOut, UsageReport
from app.services import ai_usage

router = APIRouter(tags=["usage"])


def _report(data: dict) -> dict:
    data["usage"] = [AIUsageOut.model_validate(row) for row in data["usage"]]
    return UsageReport.model_validate(data).dump()


@router.get("/api/usage")
def contractor_usage(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
):
    if start and end and start > end:
        raise BadRequestError("start must be before end")

    report = ai_usage.contractor_usage(db, user.contractor_id, start, end)
    if settings.ai_monthly_budget_usd is not None:
        budget = Decimal(str(settings.ai_monthly_budget_usd))
        report["budget"] = ai_usage.budget_status(db, user.contractor_id, budget)
    return _report(report)


@router.get("/api/leads/{lead_id}/usage")
def lead_usage(
    lead: Lead = Depends(get_owned_lead),
    db: Session = Depends(get_db),
):
    return _report(ai_usage.lead_usage(db, lead.id))
