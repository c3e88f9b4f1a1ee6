# app/auth/deps.py
"""
Session + ownership guard.

Every contractor-facing route resolves the caller to a ContractorUser and
then checks that the lead, estimate or takeoff it touches belongs to the caller's
contractor. Failures raise AuthorizationError which the error handlers
render as 401/403/404.
"""
from datetime import datetime, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.jwt import decode_token
from app.config import settings
from app.core.errors import AuthorizationError
from app.db import get_db
from app.models import ContractorUser, Estimate, Lead, Takeoff

security = HTTPBearer(auto_error=False)  # no auto 403, we raise our own 401


def _extract_token(
    request: Request, creds: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    # 1) cookie
    cookie_token = request.cookies.get(settings.session_cookie_name)
    if cookie_token:
        return cookie_token

    # 2) Authorization header
    if creds and creds.credentials:
        return creds.credentials

    return None


def get_authenticated_contractor_user(db: Session, token: Optional[str]) -> ContractorUser:
    if not token:
        raise AuthorizationError("Authentication required", "UNAUTHORIZED", 401)

    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise AuthorizationError("Invalid or expired session", "UNAUTHORIZED", 401)

    email = payload.get("email")
    if not email:
        raise AuthorizationError("User email not found", "UNAUTHORIZED", 401)

    user = db.query(ContractorUser).filter(ContractorUser.email == email).first()
    if not user:
        raise AuthorizationError("User is not associated with a contractor", "FORBIDDEN", 403)

    return user


def get_current_contractor_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> ContractorUser:
    user = get_authenticated_contractor_user(db, _extract_token(request, creds))
    request.state.user_id = user.id
    return user


def verify_lead_ownership(
    db: Session, lead_id: str, user: ContractorUser
) -> Tuple[Lead, ContractorUser]:
    lead = db.get(Lead, lead_id)
    if not lead:
        raise AuthorizationError("Lead not found", "NOT_FOUND", 404)

    if lead.contractor_id != user.contractor_id:
        raise AuthorizationError("You do not have access to this lead", "FORBIDDEN", 403)

    return lead, user


def verify_estimate_ownership(
    db: Session, estimate_id: str, user: ContractorUser
) -> Tuple[Estimate, ContractorUser]:
    estimate = db.get(Estimate, estimate_id)
    if not estimate:
        raise AuthorizationError("Estimate not found", "NOT_FOUND", 404)

    if estimate.contractor_id != user.contractor_id:
        raise AuthorizationError("You do not have access to this estimate", "FORBIDDEN", 403)

    return estimate, user


def verify_takeoff_ownership(
    db: Session, takeoff_id: str, user: ContractorUser
) -> Tuple[Takeoff, ContractorUser]:
    takeoff = db.get(Takeoff, takeoff_id)
    if not takeoff:
        raise AuthorizationError("Takeoff not found", "NOT_FOUND", 404)

    # takeoffs are owned through their lead
    if takeoff.lead.contractor_id != user.contractor_id:
        raise AuthorizationError("You do not have access to this takeoff", "FORBIDDEN", 403)

    return takeoff, user


def verify_public_estimate_token(db: Session, token: str) -> Estimate:
    """Homeowner access by unguessable link; no session involved."""
    estimate = db.query(Estimate).filter(Estimate.public_token == token).first()
    if not estimate:
        raise AuthorizationError("Estimate not found", "NOT_FOUND", 404)

    if estimate.expires_at is not None:
        expires_at = estimate.expires_at
        if expires_at.tzinfo is None:  # SQLite drops tzinfo
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            raise AuthorizationError("This estimate link has expired", "FORBIDDEN", 403)

    return estimate


# ------------------------------------------------------------
# Route dependencies
# ------------------------------------------------------------
def get_owned_lead(
    lead_id: str,
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
) -> Lead:
    lead, _ = verify_lead_ownership(db, lead_id, user)
    return lead


def get_owned_estimate(
    estimate_id: str,
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
) -> Estimate:
    estimate, _ = verify_estimate_ownership(db, estimate_id, user)
    return estimate


def get_owned_takeoff(
    takeoff_id: str,
    user: ContractorUser = Depends(get_current_contractor_user),
    db: Session = Depends(get_db),
) -> Takeoff:
    takeoff, _ = verify_takeoff_ownership(db, takeoff_id, user)
    return takeoff
