# app/schemas/uploads.py
from typing import Any, Dict

from pydantic import Field, field_validator

from app.config import settings
from app.schemas.base import CamelModel

MB = 1024 * 1024

DOCUMENT_CONTENT_TYPES = (
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "application/dwg",
    "application/dxf",
    "application/vnd.dwg",
    "application/acad",
)


def max_photo_bytes() -> int:
    return settings.max_photo_mb * MB


def max_document_bytes() -> int:
    return settings.max_document_mb * MB


class _PresignBase(CamelModel):
    contractor_slug: str = Field(min_length=1)
    lead_temp_id: str = Field(min_length=1, pattern=r"^[a-zA-Z0-9_-]+$")
    content_type: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int = Field(gt=0)


class PresignPhotoRequest(_PresignBase):
    @field_validator("content_type")
    @classmethod
    def image_only(cls, v: str) -> str:
        if not v.startswith("image/"):
            raise ValueError("Only image uploads are allowed.")
        return v

    @field_validator("file_size")
    @classmethod
    def within_limit(cls, v: int) -> int:
        if v > max_photo_bytes():
            raise ValueError(f"File size exceeds {settings.max_photo_mb}MB limit.")
        return v


class PresignDocumentRequest(_PresignBase):
    @field_validator("content_type")
    @classmethod
    def supported_type(cls, v: str) -> str:
        if v not in DOCUMENT_CONTENT_TYPES:
            raise ValueError(f"Content type must be one of: {', '.join(DOCUMENT_CONTENT_TYPES)}")
        return v

    @field_validator("file_size")
    @classmethod
    def within_limit(cls, v: int) -> int:
        if v > max_document_bytes():
            raise ValueError(f"File size exceeds {settings.max_document_mb}MB limit.")
        return v


class PresignPutRequest(CamelModel):
    lead_id: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    file_size: int = Field(gt=0)

    @field_validator("content_type")
    @classmethod
    def supported_type(cls, v: str) -> str:
        if not (v.startswith("image/") or v in DOCUMENT_CONTENT_TYPES):
            raise ValueError("Unsupported content type")
        return v

    @field_validator("file_size")
    @classmethod
    def within_limit(cls, v: int) -> int:
        if v > max_document_bytes():
            raise ValueError(f"File size exceeds {settings.max_document_mb}MB limit.")
        return v


class PresignedUpload(CamelModel):
    url: str
    fields: Dict[str, Any]
    key: str
    bucket: str
    max_file_size: int
    public_url: str
    content_type: str
    file_size: int


class PresignedPut(CamelModel):
    url: str
    method: str = "PUT"
    headers: Dict[str, str]
    key: str
    bucket: str
    public_url: str
    expires_in_seconds: int
