# app/services/ai_usage.py
"""
Token and cost accounting for language-model calls.

Calls report their token counts into a UsageRecorder while they run; the
caller turns those into AIUsage rows in the same transaction that stores the
result, so a rolled-back analysis leaves no billing rows behind.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import AIUsage
from app.services.ai.client import UsageRecorder

logger = logging.getLogger(__name__)

PER_MILLION = Decimal(1_000_000)
COST_PLACES = Decimal("0.000001")

# USD per 1M tokens (input, output)
MODEL_PRICING: Dict[str, tuple] = {
    "claude-3-5-sonnet-20241022": (Decimal("3.00"), Decimal("15.00")),
    "claude-3-5-haiku-20241022": (Decimal("0.80"), Decimal("4.00")),
}
FALLBACK_MODEL = "claude-3-5-sonnet-20241022"


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> Decimal:
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("no pricing for model %s, using %s rates", model, FALLBACK_MODEL)
        pricing = MODEL_PRICING[FALLBACK_MODEL]

    input_rate, output_rate = pricing
    cost = (input_tokens * input_rate + output_tokens * output_rate) / PER_MILLION
    return cost.quantize(COST_PLACES)


def record_usage(
    db: Session,
    recorder: Optional[UsageRecorder],
    *,
    contractor_id: str,
    lead_id: Optional[str] = None,
    estimate_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> List[AIUsage]:
    """Stage one AIUsage row per recorded call; the caller commits."""
    if recorder is None:
        return []

    rows = []
    for entry in recorder.entries:
        row = AIUsage(
            contractor_id=contractor_id,
            lead_id=lead_id,
            estimate_id=estimate_id,
            operation=entry.operation,
            model=entry.model,
            input_tokens=entry.input_tokens,
            output_tokens=entry.output_tokens,
            total_tokens=entry.input_tokens + entry.output_tokens,
            estimated_cost=estimate_cost(entry.model, entry.input_tokens, entry.output_tokens),
            meta=metadata,
        )
        db.add(row)
        rows.append(row)
        logger.info(
            "ai usage %s tokens=%d cost=%s contractor=%s",
            entry.operation,
            row.total_tokens,
            row.estimated_cost,
            contractor_id,
        )
    return rows


def _window(query, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.filter(AIUsage.created_at >= start)
    if end is not None:
        query = query.filter(AIUsage.created_at <= end)
    return query


def _decimal(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(COST_PLACES)


def contractor_usage(
    db: Session,
    contractor_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    base = _window(db.query(AIUsage).filter(AIUsage.contractor_id == contractor_id), start, end)
    recent = base.order_by(AIUsage.created_at.desc()).limit(100).all()

    totals = _window(
        db.query(func.sum(AIUsage.estimated_cost), func.sum(AIUsage.total_tokens)).filter(
            AIUsage.contractor_id == contractor_id
        ),
        start,
        end,
    ).one()

    grouped = _window(
        db.query(
            AIUsage.operation,
            func.count(AIUsage.id),
            func.sum(AIUsage.total_tokens),
            func.sum(AIUsage.estimated_cost),
        ).filter(AIUsage.contractor_id == contractor_id),
        start,
        end,
    ).group_by(AIUsage.operation).all()

    return {
        "usage": recent,
        "total_cost": _decimal(totals[0]),
        "total_tokens": int(totals[1] or 0),
        "by_operation": [
            {
                "operation": operation,
                "count": count,
                "total_tokens": int(tokens or 0),
                "total_cost": _decimal(cost),
            }
            for operation, count, tokens, cost in sorted(grouped, key=lambda g: g[0])
        ],
    }


def lead_usage(db: Session, lead_id: str) -> dict:
    rows = (
        db.query(AIUsage)
        .filter(AIUsage.lead_id == lead_id)
        .order_by(AIUsage.created_at.desc())
        .all()
    )
    return {
        "usage": rows,
        "total_cost": _decimal(sum((r.estimated_cost for r in rows), Decimal(0))),
        "total_tokens": sum(r.total_tokens for r in rows),
    }


def budget_status(db: Session, contractor_id: str, monthly_budget: Decimal) -> dict:
    """Spend since the first of the current month (UTC) against a budget."""
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    spent = (
        db.query(func.sum(AIUsage.estimated_cost))
        .filter(AIUsage.contractor_id == contractor_id, AIUsage.created_at >= month_start)
        .scalar()
    )
    spent = _decimal(spent)
    return {"exceeded": spent >= monthly_budget, "usage": spent, "budget": monthly_budget}
