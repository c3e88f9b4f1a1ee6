# app/services/ai/photo_analyzer.py
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import List, Optional

from app.config import settings
from app.schemas.ai import AnalysisSummary, AnalyzedPhoto, MultiplePhotoAnalysis, PhotoAnalysis
from app.services.ai import client as ai_client
from app.services.ai.client import AIError, UsageRecorder

logger = logging.getLogger(__name__)

PHOTO_PROMPT = """You are a construction expert analyzing a photo for an estimate.
Carefully examine this construction/property photo and extract the following information:

1. Trade Type(s): relevant trades (electrical, plumbing, HVAC, roofing, flooring, painting, drywall, framing, ...)
2. Conditions: current state of the area (age, wear, damage level)
3. Dimensions: approximate dimensions if visible, with a confidence level (low/medium/high)
4. Materials: materials present (wood siding, asphalt shingles, copper pipes, ceramic tile, ...)
5. Damage: if present, severity (minor/moderate/severe) and what is damaged
6. Access Constraints: anything that makes the job harder (high ceiling, tight space, second story, ...)
7. Work Items: specific tasks that would need to be done
8. Safety Hazards: visible safety concerns (mold, asbestos, electrical hazards, structural issues)
9. Overall Confidence: how confident you are in this analysis (0.0 to 1.0)
10. Notes: any other observations relevant to the contractor

Respond ONLY with valid JSON matching this structure:
{
  "tradeType": ["string"],
  "conditions": ["string"],
  "dimensions": {"approximate": "string", "confidence": "low" | "medium" | "high"},
  "materials": ["string"],
  "damage": {"severity": "minor" | "moderate" | "severe", "description": "string"},
  "accessConstraints": ["string"],
  "workItems": ["string"],
  "safetyHazards": ["string"],
  "confidence": 0.85,
  "notes": "string"
}

If information is not visible or applicable, omit that field (except tradeType, conditions,
materials, accessConstraints, workItems, confidence and notes which are required)."""


def analyze_construction_photo(
    image_url: str, usage: Optional[UsageRecorder] = None
) -> PhotoAnalysis:
    content = [
        {"type": "image", "source": {"type": "url", "url": image_url}},
        {"type": "text", "text": PHOTO_PROMPT},
    ]
    try:
        text = ai_client.create_message(
            content=content,
            operation="photo_analysis",
            model=settings.ai_model_vision,
            max_tokens=2048,
            timeout=settings.ai_vision_timeout_seconds,
            usage=usage,
        )
        return ai_client.parse_json_response(text, PhotoAnalysis)
    except AIError as e:
        logger.error("photo analysis failed url=%s reason=%s", image_url, e.reason)
        raise
    except Exception as e:
        logger.exception("photo analysis error url=%s", image_url)
        raise AIError(f"Failed to analyze photo: {e}", "ANALYSIS_FAILED")


def summarize_analyses(analyses: List[PhotoAnalysis]) -> AnalysisSummary:
    trades: List[str] = []
    for a in analyses:
        for trade in a.trade_type:
            if trade not in trades:
                trades.append(trade)

    return AnalysisSummary(
        overall_confidence=(
            sum(a.confidence for a in analyses) / len(analyses) if analyses else 0.0
        ),
        primary_trades=trades,
        total_work_items=sum(len(a.work_items) for a in analyses),
        has_safety_hazards=any(a.safety_hazards for a in analyses),
    )


def analyze_multiple_photos(
    image_urls: List[str], usage: Optional[UsageRecorder] = None
) -> MultiplePhotoAnalysis:
    """Analyze all photos in parallel; one failing photo fails the batch."""
    analyses: List[PhotoAnalysis] = []
    if image_urls:
        workers = max(1, min(settings.ai_max_parallel_photos, len(image_urls)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            analyses = list(pool.map(partial(analyze_construction_photo, usage=usage), image_urls))

    return MultiplePhotoAnalysis(
        photos=[AnalyzedPhoto(url=u, analysis=a) for u, a in zip(image_urls, analyses)],
        summary=summarize_analyses(analyses),
    )
