# app/services/lead_analysis.py
"""
Run the photo -> scope and plan -> scope pipelines for a lead and persist the
result as a Takeoff.

Used synchronously by the analyze routes and as background tasks right after
intake when the homeowner attached photos or plans. A plan analysis that
follows a photo analysis folds the photo findings in (a HYBRID takeoff).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import BadRequestError
from app.core.logging_config import logger
from app.db import SessionLocal
from app.models import Lead, LeadStatus, Takeoff, TakeoffSource
from app.schemas.ai import AnalyzedPlan, MultiplePhotoAnalysis, PhotoAnalysis, ScopeOfWork
from app.services.ai import photo_analyzer, plan_analyzer, scope_generator
from app.services.ai.client import UsageRecorder
from app.services.ai_usage import record_usage
from app.services.lead_scoring import calculate_lead_score, calculate_plan_lead_score

AI_PROVIDER = "anthropic"


@dataclass
class LeadAnalysis:
    takeoff: Takeoff
    score: int
    photos: MultiplePhotoAnalysis
    scope: ScopeOfWork


@dataclass
class DocumentAnalysis:
    takeoff: Takeoff
    score: int
    plans: List[AnalyzedPlan]
    scope: ScopeOfWork
    confidence: float
    square_footage: float
    skipped_document_ids: List[str] = field(default_factory=list)


def analyze_lead(db: Session, lead: Lead, *, qualify: bool = True) -> LeadAnalysis:
    if not lead.photos:
        raise BadRequestError("No photos available for analysis")

    photo_urls = [p.url for p in lead.photos]
    logger.info("lead_analysis_started", lead_id=lead.id, photo_count=len(photo_urls))

    usage = UsageRecorder()
    results = photo_analyzer.analyze_multiple_photos(photo_urls, usage=usage)
    scope = scope_generator.generate_scope_of_work(
        homeowner_name=lead.homeowner_name,
        address=lead.address,
        trade_type=lead.trade_type,
        budget=lead.budget,
        timeline=lead.timeline,
        notes=lead.notes,
        photo_analyses=[p.analysis for p in results.photos],
        usage=usage,
    )

    takeoff = Takeoff(
        lead_id=lead.id,
        trade_type=lead.trade_type,
        provider=AI_PROVIDER,
        version=settings.ai_model_vision,
        confidence=results.summary.overall_confidence,
        source_type=TakeoffSource.PHOTO.value,
        data={
            "photoAnalyses": [
                p.model_dump(by_alias=True, exclude_none=True) for p in results.photos
            ],
            "summary": results.summary.model_dump(by_alias=True),
            "scopeOfWork": scope.model_dump(by_alias=True, exclude_none=True),
            "analyzedAt": datetime.now(timezone.utc).isoformat(),
        },
    )

    score = calculate_lead_score(
        results.summary,
        budget=lead.budget,
        timeline=lead.timeline,
        notes=lead.notes,
    )
    lead.score = score
    if qualify:
        lead.status = LeadStatus.QUALIFIED.value

    db.add(takeoff)
    record_usage(db, usage, contractor_id=lead.contractor_id, lead_id=lead.id)
    db.commit()
    db.refresh(takeoff)

    logger.info("lead_analysis_finished", lead_id=lead.id, takeoff_id=takeoff.id, score=score)
    return LeadAnalysis(takeoff=takeoff, score=score, photos=results, scope=scope)


def analyze_lead_in_background(lead_id: str) -> None:
    """Background variant: own session, failures are logged only."""
    db = SessionLocal()
    try:
        lead = db.get(Lead, lead_id)
        if lead is None or not lead.photos:
            return
        analyze_lead(db, lead, qualify=False)
    except Exception as e:
        db.rollback()
        logger.error("lead_analysis_failed", lead_id=lead_id, error=str(e), exc_info=e)
    finally:
        db.close()


def latest_takeoff(db: Session, lead_id: str):
    return (
        db.query(Takeoff)
        .filter(Takeoff.lead_id == lead_id)
        .order_by(Takeoff.created_at.desc())
        .first()
    )


def _previous_photo_findings(previous: Optional[Takeoff]):
    """(photo entries, photo analyses, photo confidence) from the latest takeoff, if any."""
    entries = ((previous.data or {}).get("photoAnalyses") if previous else None) or []
    if not entries:
        return [], [], 0.0

    analyses = [PhotoAnalysis.model_validate(e["analysis"]) for e in entries]
    summary = (previous.data or {}).get("summary") or {}
    confidence = summary.get("overallConfidence", previous.confidence or 0.0)
    return entries, analyses, float(confidence)


def analyze_lead_documents(db: Session, lead: Lead, *, qualify: bool = True) -> DocumentAnalysis:
    documents = list(lead.documents)
    if not documents:
        raise BadRequestError("No documents available for analysis")

    readable = [d for d in documents if plan_analyzer.is_analyzable(d)]
    skipped = [d.id for d in documents if not plan_analyzer.is_analyzable(d)]
    if not readable:
        raise BadRequestError("None of the documents can be analyzed. Upload a PDF or image.")

    logger.info(
        "document_analysis_started",
        lead_id=lead.id,
        document_count=len(readable),
        skipped=len(skipped),
    )

    usage = UsageRecorder()
    plans = plan_analyzer.analyze_multiple_plans(readable, usage=usage)

    photo_entries, photo_analyses, photo_confidence = _previous_photo_findings(
        latest_takeoff(db, lead.id)
    )

    scope = scope_generator.generate_scope_of_work(
        homeowner_name=lead.homeowner_name,
        address=lead.address,
        trade_type=lead.trade_type,
        budget=lead.budget,
        timeline=lead.timeline,
        notes=lead.notes,
        photo_analyses=photo_analyses or None,
        plan_analyses=plans,
        usage=usage,
    )

    plan_confidence = sum(p.analysis.confidence for p in plans) / len(plans)
    confidence = (plan_confidence + photo_confidence) / 2 if photo_analyses else plan_confidence
    square_footage = sum(p.analysis.square_footage for p in plans)

    data = {
        "planAnalyses": [p.model_dump(by_alias=True, exclude_none=True) for p in plans],
        "scopeOfWork": scope.model_dump(by_alias=True, exclude_none=True),
        "analyzedAt": datetime.now(timezone.utc).isoformat(),
    }
    if photo_entries:
        data["photoAnalyses"] = photo_entries

    takeoff = Takeoff(
        lead_id=lead.id,
        trade_type=lead.trade_type,
        provider=AI_PROVIDER,
        version=settings.ai_model_vision,
        confidence=confidence,
        source_type=(TakeoffSource.HYBRID if photo_analyses else TakeoffSource.DOCUMENT).value,
        document_ids=[p.document_id for p in plans],
        data=data,
    )

    score = calculate_plan_lead_score(
        confidence,
        square_footage,
        budget=lead.budget,
        timeline=lead.timeline,
        notes=lead.notes,
    )
    lead.score = score
    if qualify and lead.status == LeadStatus.NEW.value:
        lead.status = LeadStatus.QUALIFIED.value

    db.add(takeoff)
    record_usage(db, usage, contractor_id=lead.contractor_id, lead_id=lead.id)
    db.commit()
    db.refresh(takeoff)

    logger.info(
        "document_analysis_finished",
        lead_id=lead.id,
        takeoff_id=takeoff.id,
        source_type=takeoff.source_type,
        score=score,
    )
    return DocumentAnalysis(
        takeoff=takeoff,
        score=score,
        plans=plans,
        scope=scope,
        confidence=confidence,
        square_footage=square_footage,
        skipped_document_ids=skipped,
    )


def analyze_documents_in_background(lead_id: str) -> None:
    """Background variant of analyze_lead_documents: own session, failures are logged only."""
    db = SessionLocal()
    try:
        lead = db.get(Lead, lead_id)
        if lead is None or not any(plan_analyzer.is_analyzable(d) for d in lead.documents):
            return
        analyze_lead_documents(db, lead, qualify=False)
    except Exception as e:
        db.rollback()
        logger.error("document_analysis_failed", lead_id=lead_id, error=str(e), exc_info=e)
    finally:
        db.close()
