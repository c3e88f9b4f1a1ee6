# app/services/ai/scope_generator.py
import logging
from typing import List, Optional

from app.config import settings
from app.schemas.ai import AnalyzedPlan, PhotoAnalysis, ScopeOfWork
from app.services.ai import client as ai_client
from app.services.ai.client import AIError, UsageRecorder

logger = logging.getLogger(__name__)


def _photo_section(analyses: List[PhotoAnalysis]) -> str:
    if not analyses:
        return ""

    blocks = ["Photo Analysis Results:"]
    for i, a in enumerate(analyses, start=1):
        lines = [
            f"Photo {i}:",
            f"- Trades: {', '.join(a.trade_type)}",
            f"- Conditions: {', '.join(a.conditions)}",
            f"- Materials: {', '.join(a.materials)}",
        ]
        if a.dimensions:
            lines.append(
                f"- Dimensions: {a.dimensions.approximate} (confidence: {a.dimensions.confidence})"
            )
        if a.damage:
            lines.append(f"- Damage: {a.damage.severity} - {a.damage.description}")
        lines.append(f"- Access Constraints: {', '.join(a.access_constraints) or 'None noted'}")
        lines.append(f"- Work Items: {'; '.join(a.work_items)}")
        if a.safety_hazards:
            lines.append(f"- Safety Hazards: {', '.join(a.safety_hazards)}")
        lines.append(f"- Notes: {a.notes}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def _plan_section(plans: List[AnalyzedPlan]) -> str:
    if not plans:
        return ""

    blocks = ["Construction Plan Analysis:"]
    for p in plans:
        a = p.analysis
        lines = [f"{p.file_name} ({a.document_type}" + (f", scale {a.scale}" if a.scale else "") + "):"]
        for room in a.rooms:
            size = f"{room.area} sq ft" if room.area else "size not shown"
            lines.append(f"- Room: {room.room_name}, {size} (confidence: {room.confidence})")
        for q in a.quantities:
            lines.append(f"- {q.item}: {q.quantity} {q.unit}")
        if a.materials:
            lines.append(f"- Materials: {', '.join(a.materials)}")
        if a.scope_items:
            lines.append(f"- Scope Items: {'; '.join(a.scope_items)}")
        if a.potential_issues:
            lines.append(f"- Issues: {'; '.join(a.potential_issues)}")
        if a.notes:
            lines.append(f"- Notes: {a.notes}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_scope_prompt(
    *,
    homeowner_name: str,
    address: str,
    trade_type: str,
    budget: Optional[float] = None,
    timeline: Optional[str] = None,
    notes: Optional[str] = None,
    photo_analyses: Optional[List[PhotoAnalysis]] = None,
    plan_analyses: Optional[List[AnalyzedPlan]] = None,
) -> str:
    info = [
        f"- Homeowner: {homeowner_name}",
        f"- Address: {address}",
        f"- Requested Trade Type: {trade_type}",
    ]
    if budget:
        info.append(f"- Budget: ${budget}")
    if timeline:
        info.append(f"- Timeline: {timeline}")
    if notes:
        info.append(f"- Homeowner Notes: {notes}")

    return f"""You are a construction project manager creating a preliminary scope of work for a residential remodeling estimate.

Project Information:
{chr(10).join(info)}

{_photo_section(photo_analyses or [])}

{_plan_section(plan_analyses or [])}

Based on this information, create a comprehensive scope of work for the contractor.
1. Write a brief summary (2-3 sentences) of the project
2. Create detailed line items organized by category (e.g. Demolition, Installation, Finishing)
3. Identify potential issues or complications
4. Flag any missing information needed for an accurate estimate
5. Provide recommendations for the contractor

Respond ONLY with valid JSON:
{{
  "summary": "string",
  "lineItems": [{{"category": "string", "description": "string", "notes": "optional string"}}],
  "potentialIssues": ["string"],
  "missingInformation": ["string"],
  "recommendations": ["string"]
}}"""


def generate_scope_of_work(
    *,
    homeowner_name: str,
    address: str,
    trade_type: str,
    budget: Optional[float] = None,
    timeline: Optional[str] = None,
    notes: Optional[str] = None,
    photo_analyses: Optional[List[PhotoAnalysis]] = None,
    plan_analyses: Optional[List[AnalyzedPlan]] = None,
    usage: Optional[UsageRecorder] = None,
) -> ScopeOfWork:
    prompt = build_scope_prompt(
        homeowner_name=homeowner_name,
        address=address,
        trade_type=trade_type,
        budget=budget,
        timeline=timeline,
        notes=notes,
        photo_analyses=photo_analyses,
        plan_analyses=plan_analyses,
    )
    try:
        text = ai_client.create_message(
            content=prompt,
            operation="scope",
            model=settings.ai_model_text,
            max_tokens=4096,
            timeout=settings.ai_scope_timeout_seconds,
            usage=usage,
        )
        return ai_client.parse_json_response(text, ScopeOfWork)
    except AIError as e:
        logger.error("scope generation failed reason=%s", e.reason)
        raise
    except Exception as e:
        logger.exception("scope generation error")
        raise AIError(f"Failed to generate scope: {e}", "SCOPE_GENERATION_FAILED")
