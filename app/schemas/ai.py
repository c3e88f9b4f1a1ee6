# app/schemas/ai.py
"""Shapes of the JSON the language model must return, plus derived results."""
from typing import List, Literal, Optional

from pydantic import Field

from app.schemas.base import CamelModel


# ------------------------------------------------------------
# Photo analysis
# ------------------------------------------------------------
class Dimensions(CamelModel):
    approximate: str
    confidence: Literal["low", "medium", "high"]


class Damage(CamelModel):
    severity: Literal["minor", "moderate", "severe"]
    description: str = Field(min_length=1)


class PhotoAnalysis(CamelModel):
    trade_type: List[str] = Field(min_length=1)
    conditions: List[str]
    dimensions: Optional[Dimensions] = None
    materials: List[str]
    damage: Optional[Damage] = None
    access_constraints: List[str]
    work_items: List[str] = Field(min_length=1)
    safety_hazards: Optional[List[str]] = None
    confidence: float = Field(ge=0, le=1)
    notes: str


class AnalysisSummary(CamelModel):
    overall_confidence: float = Field(ge=0, le=1)
    primary_trades: List[str]
    total_work_items: int = Field(ge=0)
    has_safety_hazards: bool


class AnalyzedPhoto(CamelModel):
    url: str
    analysis: PhotoAnalysis


class MultiplePhotoAnalysis(CamelModel):
    photos: List[AnalyzedPhoto]
    summary: AnalysisSummary


# ------------------------------------------------------------
# Scope of work
# ------------------------------------------------------------
class ScopeLineItem(CamelModel):
    category: str = Field(min_length=1)
    description: str = Field(min_length=1)
    notes: Optional[str] = None


class ScopeOfWork(CamelModel):
    summary: str = Field(min_length=10)
    line_items: List[ScopeLineItem] = Field(min_length=1)
    potential_issues: List[str]
    missing_information: List[str]
    recommendations: List[str]


# ------------------------------------------------------------
# Estimate
# ------------------------------------------------------------
class EstimateLineItem(CamelModel):
    category: str = Field(min_length=1)
    description: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1)
    unit_cost: float = Field(ge=0)
    total_cost: float = Field(ge=0)
    notes: Optional[str] = None


class EstimateDraft(CamelModel):
    """What the model returns; totals are computed locally."""

    line_items: List[EstimateLineItem] = Field(min_length=1)
    assumptions: List[str] = []
    exclusions: List[str] = []


class EstimateTotals(CamelModel):
    subtotal: float
    margin_amount: float
    contingency_amount: float
    total: float


class GeneratedEstimate(CamelModel):
    line_items: List[EstimateLineItem]
    subtotal: float
    margin_percentage: float
    margin_amount: float
    contingency_percentage: float
    contingency_amount: float
    total: float
    assumptions: List[str]
    exclusions: List[str]


class PricingGuidelines(CamelModel):
    margin_percentage: Optional[float] = Field(None, ge=0, le=100)
    contingency_percentage: Optional[float] = Field(None, ge=0, le=100)
    labor_rate_per_hour: Optional[float] = Field(None, gt=0)


# ------------------------------------------------------------
# Plan / document analysis
# ------------------------------------------------------------
class PlanRoom(CamelModel):
    room_name: str = Field(min_length=1)
    length: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)
    area: Optional[float] = Field(None, ge=0)
    unit: str = "feet"
    confidence: Literal["low", "medium", "high"]
    notes: Optional[str] = None


class PlanQuantity(CamelModel):
    item: str = Field(min_length=1)
    quantity: float = Field(ge=0)
    unit: str
    category: str
    notes: Optional[str] = None


class StructuralElements(CamelModel):
    walls: Optional[float] = Field(None, ge=0)
    doors: Optional[int] = Field(None, ge=0)
    windows: Optional[int] = Field(None, ge=0)
    stairs: Optional[int] = Field(None, ge=0)


class PlanAnalysis(CamelModel):
    document_type: Literal["floor_plan", "elevation", "section", "detail", "site_plan", "other"]
    scale: Optional[str] = None
    rooms: List[PlanRoom] = []
    quantities: List[PlanQuantity] = []
    structural_elements: Optional[StructuralElements] = None
    materials: List[str] = []
    annotations: List[str] = []
    scope_items: List[str] = []
    potential_issues: List[str] = []
    missing_information: List[str] = []
    confidence: float = Field(ge=0, le=1)
    notes: str = ""

    @property
    def square_footage(self) -> float:
        return sum(r.area or 0 for r in self.rooms)


class AnalyzedPlan(CamelModel):
    document_id: str
    file_name: str
    analysis: PlanAnalysis


# ------------------------------------------------------------
# Takeoff accuracy review
# ------------------------------------------------------------
class ReviewFeedbackItem(CamelModel):
    category: str = Field(min_length=1)
    issue: str = Field(min_length=1)
    severity: Literal["low", "medium", "high"]
    suggestion: str


class TakeoffReview(CamelModel):
    overall_accuracy: float = Field(ge=0, le=100)
    feedback: List[ReviewFeedbackItem]
    strengths: List[str]
    areas_for_improvement: List[str]
    summary: str = Field(min_length=1)
