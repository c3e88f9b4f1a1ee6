# app/models/estimate.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class EstimateStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"


class Confidence(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ProjectOutcome(str, enum.Enum):
    WON = "WON"
    LOST = "LOST"
    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"


class Estimate(Base):
    __tablename__ = "estimates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lead_id: Mapped[str] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    contractor_id: Mapped[str] = mapped_column(
        ForeignKey("contractors.id", ondelete="CASCADE"), index=True, nullable=False
    )

    line_items: Mapped[list] = mapped_column(JSON, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    margin: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    contingency: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), index=True, nullable=False, default=EstimateStatus.DRAFT.value
    )

    # public link for homeowners (no login)
    public_token: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # project outcome feedback
    project_outcome: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    feedback_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variance: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)
    variance_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead")
    contractor: Mapped["Contractor"] = relationship("Contractor")
    payments: Mapped[List["Payment"]] = relationship(
        "Payment",
        back_populates="estimate",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Estimate id={self.id} lead={self.lead_id} status={self.status}>"
