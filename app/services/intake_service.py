"""
Homeowner intake: turn a validated submission into a Lead with its photos
and documents. Files were already uploaded by the browser with presigned
POSTs; only their keys/urls/metadata arrive here.
"""
import logging
from typing import Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models import Contractor, Document, DocumentType, Lead, LeadStatus, Photo
from app.schemas.intake import AttachmentMeta, LeadSubmission

logger = logging.getLogger(__name__)


def document_type_for(content_type: str) -> str:
    ct = (content_type or "").lower()
    if ct == "application/pdf":
        return DocumentType.PDF.value
    if ct.startswith("image/"):
        return DocumentType.IMAGE.value
    if any(tag in ct for tag in ("dwg", "dxf", "acad")):
        return DocumentType.DWG.value
    return DocumentType.OTHER.value


def _attachment_meta(item: AttachmentMeta) -> dict:
    meta = {"name": item.name, "type": item.type, "size": item.size}
    if item.id:
        meta["clientId"] = item.id
    return meta


def get_contractor_by_slug(db: Session, slug: str) -> Contractor:
    contractor = db.query(Contractor).filter(Contractor.slug == slug).first()
    if not contractor:
        raise NotFoundError("Contractor")
    return contractor


def create_lead(db: Session, payload: LeadSubmission) -> Tuple[Lead, Contractor]:
    contractor = get_contractor_by_slug(db, payload.contractor_slug)

    lead = Lead(
        contractor_id=contractor.id,
        homeowner_name=payload.homeowner_name.strip(),
        homeowner_email=str(payload.homeowner_email).lower(),
        homeowner_phone=payload.homeowner_phone.strip(),
        address=payload.address.strip(),
        trade_type=payload.project_type,
        budget_cents=payload.budget_cents,
        timeline=payload.timeline,
        notes=payload.description,
        status=LeadStatus.NEW.value,
    )
    lead.photos = [
        Photo(url=str(p.url), key=p.key, meta=_attachment_meta(p)) for p in payload.photos
    ]
    lead.documents = [
        Document(
            url=str(d.url),
            key=d.key,
            file_name=d.name,
            file_type=document_type_for(d.type),
            file_size_bytes=d.size,
            meta=_attachment_meta(d),
        )
        for d in payload.documents
    ]

    db.add(lead)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("duplicate upload key on intake contractor=%s: %s", contractor.slug, e)
        raise ConflictError("One of the uploaded files is already attached to a lead") from e

    db.refresh(lead)
    logger.info(
        "lead created id=%s contractor=%s photos=%d documents=%d",
        lead.id,
        contractor.slug,
        len(payload.photos),
        len(payload.documents),
    )
    return lead, contractor
