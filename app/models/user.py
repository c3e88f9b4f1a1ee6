# app/models/user.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class UserRole(str, enum.Enum):
    OWNER = "OWNER"
    ESTIMATOR = "ESTIMATOR"
    PM = "PM"
    ADMIN = "ADMIN"


class ContractorUser(Base):
    """Login identity (by email) mapped onto a contractor tenant."""

    __tablename__ = "contractor_users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    contractor_id: Mapped[str] = mapped_column(
        ForeignKey("contractors.id", ondelete="CASCADE"), index=True, nullable=False
    )
    email: Mapped[str] = mapped_column(
        String(320), unique=True, index=True, nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.PM.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    contractor: Mapped["Contractor"] = relationship("Contractor", back_populates="users")
