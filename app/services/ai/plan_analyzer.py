# app/services/ai/plan_analyzer.py
"""
Construction plans and drawings uploaded with a lead.

PDFs go to the model as document blocks, images as image blocks. CAD files
(DWG/DXF) and anything else cannot be read by the model and are skipped by
the caller.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from app.config import settings
from app.models import Document, DocumentType
from app.schemas.ai import AnalyzedPlan, PlanAnalysis
from app.services.ai import client as ai_client
from app.services.ai.client import AIError, UsageRecorder

logger = logging.getLogger(__name__)

ANALYZABLE_TYPES = (DocumentType.PDF.value, DocumentType.IMAGE.value)

PLAN_PROMPT = """You are a construction estimator analyzing architectural plans and drawings for a residential remodeling project.

Document Information:
- File Name: {file_name}
- File Type: {file_type}

Carefully examine this construction plan/drawing and extract:

1. Document Type: floor plan, elevation, section, detail, site plan or other
2. Scale: the drawing scale if indicated (e.g. 1/4" = 1'0")
3. Room Dimensions: per room, name, length, width, height and area in square feet, with a confidence level (low/medium/high)
4. Quantities: doors, windows, walls (linear feet), stairs and other significant elements
5. Materials: flooring, wall finishes, ceilings, trim and fixtures that are specified
6. Annotations: text notes, callouts or specifications on the plan
7. Scope Items: work the plan implies
8. Potential Issues: unclear dimensions, missing information, costly or complex elements, code concerns
9. Missing Information: what you would need for an accurate estimate
10. Overall Confidence: 0.0 to 1.0
11. Notes: anything else relevant to the contractor

Use dimensions exactly as printed when they are shown. Dimensions derived from
the scale get "low" or "medium" confidence. Be conservative when uncertain.

Respond ONLY with valid JSON matching this structure:
{{
  "documentType": "floor_plan" | "elevation" | "section" | "detail" | "site_plan" | "other",
  "scale": "optional string",
  "rooms": [{{"roomName": "string", "length": 12.5, "width": 10.0, "height": 8.0, "area": 125.0,
              "unit": "feet", "confidence": "low" | "medium" | "high", "notes": "optional string"}}],
  "quantities": [{{"item": "string", "quantity": 5, "unit": "each" | "linear feet" | "square feet",
                   "category": "doors" | "windows" | "walls" | "other", "notes": "optional string"}}],
  "structuralElements": {{"walls": 45, "doors": 8, "windows": 12, "stairs": 1}},
  "materials": ["string"],
  "annotations": ["string"],
  "scopeItems": ["string"],
  "potentialIssues": ["string"],
  "missingInformation": ["string"],
  "confidence": 0.85,
  "notes": "string"
}}"""


def is_analyzable(doc: Document) -> bool:
    return doc.file_type in ANALYZABLE_TYPES


def _source_block(url: str, file_type: str) -> dict:
    block_type = "document" if file_type == DocumentType.PDF.value else "image"
    return {"type": block_type, "source": {"type": "url", "url": url}}


def analyze_plan_document(
    url: str,
    file_name: str,
    file_type: str,
    usage: Optional[UsageRecorder] = None,
) -> PlanAnalysis:
    content = [
        _source_block(url, file_type),
        {"type": "text", "text": PLAN_PROMPT.format(file_name=file_name, file_type=file_type)},
    ]
    try:
        text = ai_client.create_message(
            content=content,
            operation="plan_analysis",
            model=settings.ai_model_vision,
            max_tokens=4096,
            timeout=settings.ai_plan_timeout_seconds,
            usage=usage,
        )
        return ai_client.parse_json_response(text, PlanAnalysis)
    except AIError as e:
        logger.error("plan analysis failed file=%s reason=%s", file_name, e.reason)
        raise
    except Exception as e:
        logger.exception("plan analysis error file=%s", file_name)
        raise AIError(f"Failed to analyze plan document: {e}", "ANALYSIS_FAILED", retryable=True)


def analyze_multiple_plans(
    documents: Sequence[Document], usage: Optional[UsageRecorder] = None
) -> List[AnalyzedPlan]:
    """Analyze documents in parallel; one failure fails the batch."""
    if not documents:
        return []

    def _one(doc: Document) -> AnalyzedPlan:
        analysis = analyze_plan_document(doc.url, doc.file_name, doc.file_type, usage=usage)
        return AnalyzedPlan(document_id=doc.id, file_name=doc.file_name, analysis=analysis)

    workers = max(1, min(settings.ai_max_parallel_photos, len(documents)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_one, documents))
