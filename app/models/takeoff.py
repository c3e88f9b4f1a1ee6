# app/models/takeoff.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class TakeoffSource(str, enum.Enum):
    PHOTO = "PHOTO"
    DOCUMENT = "DOCUMENT"
    HYBRID = "HYBRID"


class Takeoff(Base):
    """Snapshot of the AI photo and plan analysis and scope of work for a lead."""

    __tablename__ = "takeoffs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lead_id: Mapped[str] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    trade_type: Mapped[str] = mapped_column(String(50), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[str] = mapped_column(String(100), nullable=False)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TakeoffSource.PHOTO.value
    )
    document_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # {photoAnalyses?, planAnalyses?, summary?, scopeOfWork, analyzedAt}
    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    # accuracy review
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    overall_accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy_feedback: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # sub-second resolution; latest_takeoff orders by it
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True,
        nullable=False,
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="takeoffs")
