# app/schemas/usage.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from app.schemas.base import CamelModel


class AIUsageOut(CamelModel):
    id: str
    lead_id: Optional[str] = None
    estimate_id: Optional[str] = None
    operation: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated_cost: Decimal
    meta: Optional[dict] = Field(None, serialization_alias="metadata")
    created_at: Optional[datetime] = None


class OperationUsage(CamelModel):
    operation: str
    count: int
    total_tokens: int
    total_cost: Decimal


class BudgetStatus(CamelModel):
    exceeded: bool
    usage: Decimal
    budget: Decimal


class UsageReport(CamelModel):
    usage: List[AIUsageOut]
    total_cost: Decimal
    total_tokens: int
    by_operation: List[OperationUsage] = []
    budget: Optional[BudgetStatus] = None
