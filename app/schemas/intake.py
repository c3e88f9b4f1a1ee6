# app/schemas/intake.py
import math
import re
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import AnyHttpUrl, EmailStr, Field, field_validator

from app.schemas.base import CamelModel

_NON_NUMERIC = re.compile(r"[^0-9.]")


class AttachmentMeta(CamelModel):
    """A file the browser already uploaded to S3 with a presigned POST."""

    id: Optional[str] = None
    key: str
    url: AnyHttpUrl
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    size: int = Field(ge=0)


class LeadIntake(CamelModel):
    homeowner_name: str = Field(min_length=2)
    homeowner_email: EmailStr
    homeowner_phone: str = Field(min_length=7, max_length=20)
    address: str = Field(min_length=5)
    project_type: str = Field(min_length=1)
    budget: Optional[float] = Field(None, ge=0)
    timeline: Optional[str] = None
    description: str = Field(min_length=10, max_length=2000)
    photos: List[AttachmentMeta] = Field(default_factory=list, max_length=10)
    documents: List[AttachmentMeta] = Field(default_factory=list, max_length=10)

    @field_validator("budget", mode="before")
    @classmethod
    def parse_budget(cls, v: Any):
        # "$12,500" -> 12500.0 ; "" -> absent
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return v if math.isfinite(v) else None
        if isinstance(v, str):
            cleaned = _NON_NUMERIC.sub("", v.strip())
            if not cleaned:
                return None
            try:
                return float(cleaned)
            except ValueError:
                return None
        return None

    @field_validator("timeline")
    @classmethod
    def validate_timeline(cls, v: Optional[str]):
        if not v:
            return None
        for parse in (date.fromisoformat, datetime.fromisoformat):
            try:
                parse(v)
                return v
            except ValueError:
                continue
        raise ValueError("Timeline date is invalid")

    @property
    def budget_cents(self) -> Optional[int]:
        return int(round(self.budget * 100)) if self.budget is not None else None


class LeadSubmission(LeadIntake):
    contractor_slug: str = Field(min_length=1)
