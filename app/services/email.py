# app/services/email.py
from __future__ import annotations

import json
import logging
from typing import Optional, Dict, Any

import requests

from app.config import settings
from app.db import SessionLocal
from app.models import Contractor, Estimate, Lead
from app.templates import render_template

logger = logging.getLogger(__name__)

POSTMARK_SEND_URL = "https://api.postmarkapp.com/email"


class EmailError(RuntimeError):
    pass


def send_postmark_email(
    *,
    to: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    message_stream: str = "outbound",  # Postmark default stream
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Returns Postmark MessageID on success.
    Raises EmailError on failure.
    """
    if not settings.POSTMARK_SERVER_TOKEN:
        raise EmailError("postmark_not_configured: POSTMARK_SERVER_TOKEN missing")
    if not settings.POSTMARK_FROM:
        raise EmailError("postmark_not_configured: POSTMARK_FROM missing")

    payload: Dict[str, Any] = {
        "From": settings.POSTMARK_FROM,
        "To": to,
        "Subject": subject,
        "HtmlBody": html_body,
        "MessageStream": message_stream,
    }
    if settings.POSTMARK_REPLY_TO:
        payload["ReplyTo"] = settings.POSTMARK_REPLY_TO
    if text_body:
        payload["TextBody"] = text_body
    if metadata:
        payload["Metadata"] = metadata

    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "X-Postmark-Server-Token": settings.POSTMARK_SERVER_TOKEN,
    }

    try:
        r = requests.post(
            POSTMARK_SEND_URL,
            headers=headers,
            data=json.dumps(payload),
            timeout=15,
        )
    except requests.RequestException as e:
        raise EmailError(f"postmark_network_error:{type(e).__name__}:{e}")

    if r.status_code >= 300:
        # Postmark returns JSON with Message/ErrorCode
        try:
            data = r.json()
        except ValueError:
            data = {"raw": r.text}
        raise EmailError(f"postmark_send_failed:{r.status_code}:{data}")

    data = r.json()
    message_id = str(data.get("MessageID") or "")
    if not message_id:
        raise EmailError(f"postmark_send_failed:no_message_id:{data}")

    return message_id


# ------------------------------------------------------------
# Notifications (best effort: run after the response, never raise)
# ------------------------------------------------------------
def _send_quietly(kind: str, **kwargs) -> bool:
    try:
        message_id = send_postmark_email(**kwargs)
    except EmailError as e:
        logger.warning("email %s to %s not sent: %s", kind, kwargs.get("to"), e)
        return False
    logger.info("email %s sent to %s message_id=%s", kind, kwargs.get("to"), message_id)
    return True


def send_new_lead_notification(contractor: Contractor, lead: Lead, photo_count: int) -> bool:
    html = render_template(
        "new_lead.html",
        {
            "lead": lead,
            "photo_count": photo_count,
            "dashboard_url": f"{settings.site_url}/dashboard/leads/{lead.id}",
        },
    )
    return _send_quietly(
        "new_lead",
        to=contractor.email,
        subject=f"New Lead: {lead.homeowner_name} - {lead.trade_type}",
        html_body=html,
        metadata={"lead_id": lead.id},
    )


def send_homeowner_confirmation(contractor: Contractor, lead: Lead) -> bool:
    html = render_template("homeowner_confirmation.html", {"lead": lead, "contractor": contractor})
    return _send_quietly(
        "homeowner_confirmation",
        to=lead.homeowner_email,
        subject="We received your project inquiry",
        html_body=html,
        metadata={"lead_id": lead.id},
    )


def send_estimate_email(contractor: Contractor, lead: Lead, estimate: Estimate) -> bool:
    estimate_url = f"{settings.site_url}/e/{estimate.public_token}"
    html = render_template(
        "estimate_sent.html",
        {"lead": lead, "contractor": contractor, "estimate": estimate, "estimate_url": estimate_url},
    )
    return _send_quietly(
        "estimate_sent",
        to=lead.homeowner_email,
        subject=f"Your estimate from {contractor.company_name}",
        html_body=html,
        metadata={"estimate_id": estimate.id},
    )


# Background task entry points: they outlive the request session, so
# reload by id with a fresh one.
def notify_new_lead(lead_id: str, photo_count: int) -> None:
    db = SessionLocal()
    try:
        lead = db.get(Lead, lead_id)
        if lead is None:
            return
        send_new_lead_notification(lead.contractor, lead, photo_count)
        send_homeowner_confirmation(lead.contractor, lead)
    finally:
        db.close()


def notify_estimate_sent(estimate_id: str) -> None:
    db = SessionLocal()
    try:
        estimate = db.get(Estimate, estimate_id)
        if estimate is None:
            return
        send_estimate_email(estimate.contractor, estimate.lead, estimate)
    finally:
        db.close()
