# app/routers/leads.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user
from app.config import settings
from app.core.logging_config import logger
from app.core.rate_limit import rate_limit_by_ip
from app.db import get_db
from app.models import ContractorUser, Lead, LeadStatus
from app.observability.metrics import leads_created_counter
from app.schemas.intake import LeadSubmission
from app.schemas.leads import LeadOut, LeadSummaryOut
from app.services import intake_service
from app.services.email import notify_new_lead
from app.services.lead_analysis import analyze_documents_in_background, analyze_lead_in_background

router = APIRouter(prefix="/api/leads", tags=["leads"])


@router.post("", dependencies=[Depends(rate_limit_by_ip("strict"))])
def create_lead(
    payload: LeadSubmission,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Public homeowner intake. Photos/documents were uploaded beforehand via presign."""
    lead, contractor = intake_service.create_lead(db, payload)
    leads_created_counter.labels(trade_type=lead.trade_type).inc()

    photo_count = len(payload.photos)
    background.add_task(notify_new_lead, lead.id, photo_count)
    if photo_count and settings.auto_analyze_on_intake:
        background.add_task(analyze_lead_in_background, lead.id)
    # runs after the photo pass so plans fold into the photo takeoff
    if payload.documents and settings.auto_analyze_on_intake:
        background.add_task(analyze_documents_in_background, lead.id)

    logger.info(
        "intake_submitted",
        lead_id=lead.id,
        contractor=contractor.slug,
        photo_count=photo_count,
        document_count=len(payload.documents),
        trade_type=lead.trade_type,
    )
    return {"lead": LeadOut.model_validate(lead).dump()}


@router.get("")
def list_leads(
    status: Optional[LeadStatus] = Query(None),
    db: Session = Depends(get_db),
    user: ContractorUser = Depends(get_current_contractor_user),
):
    q = db.query(Lead).filter(Lead.contractor_id == user.contractor_id)
    if status:
        q = q.filter(Lead.status == status.value)
    leads = q.order_by(Lead.created_at.desc()).limit(200).all()
    return {"leads": [LeadSummaryOut.model_validate(l).dump() for l in leads]}
