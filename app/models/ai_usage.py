# app/models/ai_usage.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base


class AIUsage(Base):
    """One language-model call: tokens and estimated USD cost, billed to a contractor."""

    __tablename__ = "ai_usage"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    contractor_id: Mapped[str] = mapped_column(
        ForeignKey("contractors.id", ondelete="CASCADE"), index=True, nullable=False
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("leads.id", ondelete="SET NULL"), index=True, nullable=True
    )
    estimate_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("estimates.id", ondelete="SET NULL"), nullable=True
    )

    operation: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AIUsage {self.operation} tokens={self.total_tokens} contractor={self.contractor_id}>"
