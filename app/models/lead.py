# app/models/lead.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class LeadStatus(str, enum.Enum):
    NEW = "NEW"
    QUALIFIED = "QUALIFIED"
    DECLINED = "DECLINED"
    ESTIMATED = "ESTIMATED"


class DocumentType(str, enum.Enum):
    PDF = "PDF"
    IMAGE = "IMAGE"
    DWG = "DWG"
    OTHER = "OTHER"


def _uuid() -> str:
    return str(uuid.uuid4())


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    # multi-tenant
    contractor_id: Mapped[str] = mapped_column(
        ForeignKey("contractors.id", ondelete="CASCADE"), index=True, nullable=False
    )

    # homeowner contact
    homeowner_name: Mapped[str] = mapped_column(String(200), nullable=False)
    homeowner_email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)
    homeowner_phone: Mapped[str] = mapped_column(String(50), nullable=False)

    # project
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    trade_type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    budget_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timeline: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # status/meta
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeadStatus.NEW.value
    )
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    contractor: Mapped["Contractor"] = relationship("Contractor")

    photos: Mapped[List["Photo"]] = relationship(
        "Photo",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Photo.created_at",
    )
    documents: Mapped[List["Document"]] = relationship(
        "Document",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Document.created_at",
    )
    takeoffs: Mapped[List["Takeoff"]] = relationship(
        "Takeoff",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def budget(self) -> Optional[float]:
        return self.budget_cents / 100 if self.budget_cents is not None else None

    def __repr__(self) -> str:
        return f"<Lead id={self.id} contractor={self.contractor_id} status={self.status}>"


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    lead_id: Mapped[str] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    # storage key, e.g. "contractors/{slug}/temp/{leadTempId}/{uuid}-{name}"
    key: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="photos")

    def __repr__(self) -> str:
        return f"<Photo lead_id={self.lead_id} key={self.key!r}>"


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    lead_id: Mapped[str] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    key: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(10), index=True, nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="documents")
