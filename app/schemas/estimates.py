# app/schemas/estimates.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field

from app.schemas.ai import EstimateLineItem, PricingGuidelines
from app.schemas.base import CamelModel


class GenerateEstimateRequest(CamelModel):
    pricing_guidelines: Optional[PricingGuidelines] = None


class EstimateUpdate(CamelModel):
    line_items: Optional[List[EstimateLineItem]] = Field(None, min_length=1)
    margin_percentage: Optional[float] = Field(None, ge=0, le=100)
    contingency_percentage: Optional[float] = Field(None, ge=0, le=100)
    status: Optional[Literal["DRAFT", "SENT", "ACCEPTED", "DECLINED"]] = None

    @property
    def changes_pricing(self) -> bool:
        return (
            self.line_items is not None
            or self.margin_percentage is not None
            or self.contingency_percentage is not None
        )


class EstimateFeedback(CamelModel):
    project_outcome: Literal["WON", "LOST", "IN_PROGRESS", "CANCELLED"]
    actual_cost: Optional[float] = Field(None, gt=0)
    completed_at: Optional[datetime] = None
    feedback_notes: Optional[str] = None


class CheckoutRequest(CamelModel):
    type: Literal["DEPOSIT", "FINAL", "MILESTONE"] = "DEPOSIT"
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)


class EstimateOut(CamelModel):
    id: str
    lead_id: str
    contractor_id: str
    line_items: list
    subtotal: Decimal
    margin: Decimal
    contingency: Decimal
    total: Decimal
    confidence: str
    status: str
    public_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    project_outcome: Optional[str] = None
    actual_cost: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    feedback_notes: Optional[str] = None
    variance: Optional[Decimal] = None
    variance_percent: Optional[Decimal] = None
    created_at: Optional[datetime] = None


class PublicContractorOut(CamelModel):
    company_name: str
    email: str
    phone: Optional[str] = None
    deposit_percentage: Decimal


class PublicLeadOut(CamelModel):
    homeowner_name: str
    address: str
    trade_type: str


class PublicEstimateOut(CamelModel):
    """What a homeowner sees through the public link; no tenant ids."""

    line_items: list
    subtotal: Decimal
    margin: Decimal
    contingency: Decimal
    total: Decimal
    status: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    contractor: PublicContractorOut
    lead: PublicLeadOut
    amount_paid: Decimal = Decimal("0")
