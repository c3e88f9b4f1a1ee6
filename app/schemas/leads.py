# app/schemas/leads.py
"""Response shapes for leads and their attachments."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from app.schemas.base import CamelModel


class PhotoOut(CamelModel):
    id: str
    lead_id: str
    url: str
    key: str
    meta: Optional[dict] = Field(None, serialization_alias="metadata")
    created_at: Optional[datetime] = None


class DocumentOut(CamelModel):
    id: str
    lead_id: str
    url: str
    key: str
    file_name: str
    file_type: str
    file_size_bytes: int
    meta: Optional[dict] = Field(None, serialization_alias="metadata")
    created_at: Optional[datetime] = None


class LeadOut(CamelModel):
    id: str
    contractor_id: str
    homeowner_name: str
    homeowner_email: str
    homeowner_phone: str
    address: str
    trade_type: str
    budget_cents: Optional[int] = None
    timeline: Optional[str] = None
    notes: Optional[str] = None
    status: str
    score: Optional[float] = None
    created_at: Optional[datetime] = None
    photos: List[PhotoOut] = []
    documents: List[DocumentOut] = []


class LeadSummaryOut(CamelModel):
    id: str
    homeowner_name: str
    address: str
    trade_type: str
    status: str
    score: Optional[float] = None
    created_at: Optional[datetime] = None


class DocumentCreate(CamelModel):
    url: str = Field(min_length=1)
    key: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_type: Literal["PDF", "IMAGE", "DWG", "OTHER"]
    file_size_bytes: int = Field(gt=0)
    meta: Optional[dict] = Field(None, validation_alias="metadata")


class TakeoffOut(CamelModel):
    takeoff_id: str
    confidence: Optional[float] = None
    source_type: Optional[str] = None
    document_ids: Optional[List[str]] = None
    data: dict
    created_at: Optional[datetime] = None
