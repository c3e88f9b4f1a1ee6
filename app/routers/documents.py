# app/routers/documents.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user
from app.config import settings
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.core.logging_config import logger
from app.db import get_db
from app.models import ContractorUser, Document, Lead
from app.schemas.leads import DocumentCreate, DocumentOut

router = APIRouter(prefix="/api/leads/{lead_id}/documents", tags=["documents"])


def _tenant_lead(db: Session, lead_id: str, user: ContractorUser) -> Lead:
    # other tenants' leads look exactly like missing ones here
    lead = (
        db.query(Lead)
        .filter(Lead.id == lead_id, Lead.contractor_id == user.contractor_id)
        .first()
    )
    if not lead:
        raise NotFoundError("Lead")
    return lead


@router.get("")
def list_documents(
    lead_id: str,
    db: Session = Depends(get_db),
    user: ContractorUser = Depends(get_current_contractor_user),
):
    lead = _tenant_lead(db, lead_id, user)
    docs = (
        db.query(Document)
        .filter(Document.lead_id == lead.id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return {"documents": [DocumentOut.model_validate(d).dump() for d in docs]}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_document(
    lead_id: str,
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    user: ContractorUser = Depends(get_current_contractor_user),
):
    lead = _tenant_lead(db, lead_id, user)

    count = db.query(Document).filter(Document.lead_id == lead.id).count()
    if count >= settings.max_documents_per_lead:
        raise BadRequestError(
            f"A lead can have at most {settings.max_documents_per_lead} documents"
        )

    doc = Document(
        lead_id=lead.id,
        url=payload.url,
        key=payload.key,
        file_name=payload.file_name,
        file_type=payload.file_type,
        file_size_bytes=payload.file_size_bytes,
        meta=payload.meta,
    )
    db.add(doc)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("document_key_conflict", lead_id=lead.id, key=payload.key)
        raise ConflictError("This file is already attached to a lead") from e
    db.refresh(doc)

    logger.info("document_added", lead_id=lead.id, document_id=doc.id, file_type=doc.file_type)
    return {"document": DocumentOut.model_validate(doc).dump()}


@router.delete("")
def delete_document(
    lead_id: str,
    document_id: Optional[str] = Query(None, alias="documentId"),
    db: Session = Depends(get_db),
    user: ContractorUser = Depends(get_current_contractor_user),
):
    if not document_id:
        raise BadRequestError("Document ID required")

    doc = (
        db.query(Document)
        .join(Lead, Document.lead_id == Lead.id)
        .filter(
            Document.id == document_id,
            Document.lead_id == lead_id,
            Lead.contractor_id == user.contractor_id,
        )
        .first()
    )
    if not doc:
        raise NotFoundError("Document")

    db.delete(doc)
    db.commit()
    logger.info("document_deleted", lead_id=lead_id, document_id=document_id)
    return {"success": True}
