# app/routers/uploads.py
"""
Presigned uploads. The browser sends files straight to S3; the API only
hands out short-lived, size- and type-bound upload grants.
"""
from typing import Any, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.deps import get_current_contractor_user, verify_lead_ownership
from app.config import settings
from app.core.logging_config import logger
from app.core.rate_limit import rate_limit_by_ip
from app.db import get_db
from app.models import ContractorUser
from app.observability.metrics import upload_size_hist
from app.schemas.uploads import (
    PresignDocumentRequest,
    PresignedPut,
    PresignedUpload,
    PresignPhotoRequest,
    PresignPutRequest,
    max_document_bytes,
    max_photo_bytes,
)
from app.services import s3
from app.services.intake_service import get_contractor_by_slug
from app.services.s3_keys import (
    build_lead_upload_key,
    build_temp_document_key,
    build_temp_photo_key,
)

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


def _document_conditions(content_type: str) -> List[Any]:
    if content_type == "application/pdf":
        return [["eq", "$Content-Type", "application/pdf"]]
    if content_type.startswith("image/"):
        return [["starts-with", "$Content-Type", "image/"]]
    # DWG/DXF/ACAD variants
    return [["starts-with", "$Content-Type", "application/"]]


def _presigned_upload(key: str, content_type: str, file_size: int, max_bytes: int, conditions) -> dict:
    post = s3.create_presigned_post(key, content_type, max_bytes=max_bytes, conditions=conditions)
    upload = PresignedUpload(
        url=post["url"],
        fields=post["fields"],
        key=key,
        bucket=s3.get_bucket(),
        max_file_size=max_bytes,
        public_url=s3.build_public_url(key),
        content_type=content_type,
        file_size=file_size,
    )
    return {"upload": upload.dump()}


@router.post("/presign", dependencies=[Depends(rate_limit_by_ip("strict"))])
def presign_photo(req: PresignPhotoRequest, db: Session = Depends(get_db)):
    contractor = get_contractor_by_slug(db, req.contractor_slug)
    key = build_temp_photo_key(contractor.slug, req.lead_temp_id, req.file_name)

    upload_size_hist.observe(req.file_size)
    logger.info("presign_photo", contractor=contractor.slug, key=key, size=req.file_size)
    return _presigned_upload(
        key,
        req.content_type,
        req.file_size,
        max_photo_bytes(),
        [["starts-with", "$Content-Type", "image/"]],
    )


@router.post("/presign-document", dependencies=[Depends(rate_limit_by_ip("strict"))])
def presign_document(req: PresignDocumentRequest, db: Session = Depends(get_db)):
    contractor = get_contractor_by_slug(db, req.contractor_slug)
    key = build_temp_document_key(contractor.slug, req.lead_temp_id, req.file_name)

    upload_size_hist.observe(req.file_size)
    logger.info("presign_document", contractor=contractor.slug, key=key, size=req.file_size)
    return _presigned_upload(
        key,
        req.content_type,
        req.file_size,
        max_document_bytes(),
        _document_conditions(req.content_type),
    )


@router.post("/presign-put")
def presign_put(
    req: PresignPutRequest,
    db: Session = Depends(get_db),
    user: ContractorUser = Depends(get_current_contractor_user),
):
    lead, _ = verify_lead_ownership(db, req.lead_id, user)
    key = build_lead_upload_key(lead.contractor.slug, lead.id, req.file_name)
    url = s3.create_presigned_put(key, req.content_type)

    upload_size_hist.observe(req.file_size)
    return {
        "upload": PresignedPut(
            url=url,
            headers={"Content-Type": req.content_type},
            key=key,
            bucket=s3.get_bucket(),
            public_url=s3.build_public_url(key),
            expires_in_seconds=settings.PRESIGN_EXPIRES_SECONDS,
        ).dump()
    }
