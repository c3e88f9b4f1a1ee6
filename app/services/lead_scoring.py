# app/services/lead_scoring.py
import math
from typing import Optional

from app.models import Confidence
from app.schemas.ai import AnalysisSummary


def calculate_lead_score(
    summary: AnalysisSummary,
    *,
    budget: Optional[float] = None,
    timeline: Optional[str] = None,
    notes: Optional[str] = None,
) -> int:
    """
    Lead quality score, 0..100.

    - analysis confidence: up to 40
    - work items identified (5+ is complete): up to 20
    - budget / timeline / a real description: 10 each
    - visible safety hazards: -10
    """
    score = summary.overall_confidence * 40
    score += min(summary.total_work_items / 5, 1) * 20

    if budget:
        score += 10
    if timeline:
        score += 10
    if notes and len(notes) > 20:
        score += 10
    if summary.has_safety_hazards:
        score -= 10

    return max(0, min(100, math.floor(score + 0.5)))  # half-up, not banker's rounding


def calculate_plan_lead_score(
    confidence: float,
    square_footage: float,
    *,
    budget: Optional[float] = None,
    timeline: Optional[str] = None,
    notes: Optional[str] = None,
) -> int:
    """
    Lead quality score when architectural plans were analyzed, 0..100.

    Plans are a strong signal on their own (flat 20). Project size adds 5 above
    500 sq ft and 10 above 1000. Confidence and the contact fields weigh the same
    as in the photo score.
    """
    score = confidence * 40 + 20

    if square_footage > 1000:
        score += 10
    elif square_footage > 500:
        score += 5

    if budget:
        score += 10
    if timeline:
        score += 10
    if notes and len(notes) > 20:
        score += 10

    return max(0, min(100, math.floor(score + 0.5)))


def confidence_level(takeoff_confidence: Optional[float]) -> str:
    if not takeoff_confidence:  # 0 means the analysis produced nothing usable
        return Confidence.MEDIUM.value
    if takeoff_confidence > 0.8:
        return Confidence.HIGH.value
    if takeoff_confidence > 0.5:
        return Confidence.MEDIUM.value
    return Confidence.LOW.value
