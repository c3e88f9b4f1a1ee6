# app/services/ai/review_analyzer.py
"""Second-opinion review of a stored takeoff, optionally against the real project outcome."""
import logging
from decimal import Decimal
from typing import Optional

from app.config import settings
from app.schemas.ai import TakeoffReview
from app.services.ai import client as ai_client
from app.services.ai.client import AIError, UsageRecorder

logger = logging.getLogger(__name__)


def _money(value) -> str:
    return f"${Decimal(str(value)):,.2f}"


def build_review_prompt(
    takeoff_data: dict,
    trade_type: str,
    *,
    photo_count: int = 0,
    estimated_total=None,
    actual_cost=None,
    variance=None,
    feedback_notes: Optional[str] = None,
) -> str:
    scope = (takeoff_data or {}).get("scopeOfWork") or {}
    items = scope.get("lineItems") or []
    item_lines = "\n".join(
        f"{i}. {li.get('category')}: {li.get('description')}"
        + (f" ({li['notes']})" if li.get("notes") else "")
        for i, li in enumerate(items, start=1)
    ) or "None identified"

    outcome = ""
    if estimated_total is not None and actual_cost is not None:
        outcome += (
            "\nActual Project Outcome:\n"
            f"- Estimated Total: {_money(estimated_total)}\n"
            f"- Actual Cost: {_money(actual_cost)}\n"
            f"- Variance: {_money(variance) if variance is not None else 'N/A'}\n"
        )
    if feedback_notes:
        outcome += f"- Feedback Notes: {feedback_notes}\n"

    compare = "- How does the estimate compare to actual costs?\n" if outcome else ""

    return f"""You are an experienced construction estimator reviewing a takeoff for accuracy and completeness.

Trade Type: {trade_type}
Photos analyzed: {photo_count}

Scope of Work Summary:
{scope.get('summary') or 'Not provided'}

Line Items Identified:
{item_lines}

Potential Issues Noted:
{chr(10).join(scope.get('potentialIssues') or []) or 'None listed'}
{outcome}
Analyze this takeoff and provide:
1. Overall Accuracy Score (0-100) based on completeness, detail and realistic assumptions
2. Feedback items by area (Measurements, Materials, Labor, Scope), each with severity (low/medium/high) and a suggestion
3. Strengths of this takeoff
4. Areas for improvement
5. A 2-3 sentence summary

Evaluation criteria:
- Are measurements and quantities realistic?
- Are all necessary materials and labor items included?
- Are there obvious gaps or missing items?
{compare}
Respond ONLY with valid JSON:
{{
  "overallAccuracy": 0,
  "feedback": [{{"category": "string", "issue": "string", "severity": "low" | "medium" | "high", "suggestion": "string"}}],
  "strengths": ["string"],
  "areasForImprovement": ["string"],
  "summary": "string"
}}"""


def analyze_takeoff_accuracy(
    takeoff_data: dict,
    trade_type: str,
    *,
    photo_count: int = 0,
    estimated_total=None,
    actual_cost=None,
    variance=None,
    feedback_notes: Optional[str] = None,
    usage: Optional[UsageRecorder] = None,
) -> TakeoffReview:
    prompt = build_review_prompt(
        takeoff_data,
        trade_type,
        photo_count=photo_count,
        estimated_total=estimated_total,
        actual_cost=actual_cost,
        variance=variance,
        feedback_notes=feedback_notes,
    )
    try:
        text = ai_client.create_message(
            content=prompt,
            operation="takeoff_review",
            model=settings.ai_model_text,
            max_tokens=4096,
            timeout=settings.ai_scope_timeout_seconds,
            usage=usage,
        )
        return ai_client.parse_json_response(text, TakeoffReview)
    except AIError as e:
        logger.error("takeoff review failed reason=%s", e.reason)
        raise
    except Exception as e:
        logger.exception("takeoff review error")
        raise AIError(f"Failed to analyze takeoff: {e}", "REVIEW_FAILED")
