# app/services/ai/estimate_generator.py
"""
Priced estimate from a scope of work.

The model only proposes line items (quantities, units, unit costs); subtotal,
margin, contingency and total are always computed here so edited estimates
and generated ones use the same math.
"""
import logging
from typing import List, Optional

from app.config import settings
from app.schemas.ai import (
    EstimateDraft,
    EstimateLineItem,
    EstimateTotals,
    GeneratedEstimate,
    PricingGuidelines,
    ScopeOfWork,
)
from app.services.ai import client as ai_client
from app.services.ai.client import AIError, UsageRecorder

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_PERCENTAGE = 20.0
DEFAULT_CONTINGENCY_PERCENTAGE = 10.0
DEFAULT_LABOR_RATE = 75.0


def recalculate_estimate(
    line_items: List[EstimateLineItem],
    margin_percentage: float,
    contingency_percentage: float,
) -> EstimateTotals:
    subtotal = sum(item.total_cost for item in line_items)
    margin_amount = subtotal * (margin_percentage / 100)
    contingency_amount = subtotal * (contingency_percentage / 100)
    return EstimateTotals(
        subtotal=subtotal,
        margin_amount=margin_amount,
        contingency_amount=contingency_amount,
        total=subtotal + margin_amount + contingency_amount,
    )


def build_estimate_prompt(
    scope: ScopeOfWork,
    trade_type: str,
    margin: float,
    contingency: float,
    labor_rate: float,
    region: Optional[str] = None,
) -> str:
    items = "\n".join(
        f"- {li.category}: {li.description}" + (f" ({li.notes})" if li.notes else "")
        for li in scope.line_items
    )
    region_line = f"Region: {region}\n" if region else ""

    return f"""You are a construction estimator creating a detailed cost estimate.

Trade Type: {trade_type}
{region_line}
Scope of Work:
{scope.summary}

Line Items:
{items}

Pricing Guidelines:
- Target margin: {margin}%
- Contingency: {contingency}%
- Labor rate: ${labor_rate}/hour

Create detailed line items with realistic quantities, units and costs for this {trade_type} project.
For each line item give category, description, quantity, unit, unit cost, total cost
(quantity x unit cost) and optional notes. Break down labor and materials separately,
be conservative with quantities and include common hidden costs (permits, disposal, prep work).
Also list the assumptions made and the exclusions (what is NOT included).

Respond ONLY with valid JSON:
{{
  "lineItems": [
    {{"category": "string", "description": "string", "quantity": 1, "unit": "string",
      "unitCost": 0, "totalCost": 0, "notes": "optional string"}}
  ],
  "assumptions": ["string"],
  "exclusions": ["string"]
}}"""


def generate_estimate(
    scope: ScopeOfWork,
    trade_type: str,
    pricing: Optional[PricingGuidelines] = None,
    region: Optional[str] = None,
    usage: Optional[UsageRecorder] = None,
) -> GeneratedEstimate:
    pricing = pricing or PricingGuidelines()
    margin = (
        pricing.margin_percentage
        if pricing.margin_percentage is not None
        else DEFAULT_MARGIN_PERCENTAGE
    )
    contingency = (
        pricing.contingency_percentage
        if pricing.contingency_percentage is not None
        else DEFAULT_CONTINGENCY_PERCENTAGE
    )
    labor_rate = pricing.labor_rate_per_hour or DEFAULT_LABOR_RATE

    prompt = build_estimate_prompt(scope, trade_type, margin, contingency, labor_rate, region)
    try:
        text = ai_client.create_message(
            content=prompt,
            operation="estimate",
            model=settings.ai_model_text,
            max_tokens=4096,
            timeout=settings.ai_scope_timeout_seconds,
            usage=usage,
        )
        draft = ai_client.parse_json_response(text, EstimateDraft)
    except AIError as e:
        logger.error("estimate generation failed reason=%s", e.reason)
        raise
    except Exception as e:
        logger.exception("estimate generation error")
        raise AIError(f"Failed to generate estimate: {e}", "ESTIMATE_GENERATION_FAILED")

    totals = recalculate_estimate(draft.line_items, margin, contingency)
    return GeneratedEstimate(
        line_items=draft.line_items,
        subtotal=totals.subtotal,
        margin_percentage=margin,
        margin_amount=totals.margin_amount,
        contingency_percentage=contingency,
        contingency_amount=totals.contingency_amount,
        total=totals.total,
        assumptions=draft.assumptions,
        exclusions=draft.exclusions,
    )
