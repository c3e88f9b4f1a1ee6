import json
import os

# env before any app import: settings are read once at import time
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///./test_scopeguard.db"
os.environ["AUTO_ANALYZE_ON_INTAKE"] = "false"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SITE_URL"] = "https://app.scopeguard.test"
os.environ["S3_BUCKET"] = "scopeguard-test"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_dummy"
os.environ["ANTHROPIC_API_KEY"] = "test-key"
# Dummy creds so boto3 can sign presigned URLs offline
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import stripe
from fastapi.testclient import TestClient

from app.auth.jwt import create_session_token
from app.core.rate_limit import get_rate_limiters, limiter
from app.db import Base, SessionLocal, engine
from app.main import app
from app.models import (
    Contractor,
    ContractorUser,
    Document,
    Estimate,
    EstimateStatus,
    Lead,
    Photo,
    Takeoff,
    UserRole,
)
from app.services.ai import client as ai_client

# ------------------------------------------------------------
# Canned model replies
# ------------------------------------------------------------
PHOTO_ANALYSIS = {
    "tradeType": ["roofing"],
    "conditions": ["missing shingles", "worn flashing"],
    "dimensions": {"approximate": "about 1,800 sq ft of roof", "confidence": "medium"},
    "materials": ["asphalt shingles"],
    "damage": {"severity": "moderate", "description": "Storm damage on the north slope"},
    "accessConstraints": ["two-story eave"],
    "workItems": ["tear off damaged shingles", "replace flashing"],
    "safetyHazards": ["steep pitch"],
    "confidence": 0.9,
    "notes": "Clear daylight photo.",
}

SCOPE_OF_WORK = {
    "summary": "Repair storm damage on the north roof slope and replace flashing.",
    "lineItems": [
        {"category": "Demolition", "description": "Tear off damaged shingles"},
        {"category": "Roofing", "description": "Install new shingles and flashing"},
    ],
    "potentialIssues": ["Decking may be soft under the damaged area"],
    "missingInformation": ["Exact roof pitch"],
    "recommendations": ["Inspect decking after tear off"],
}

ESTIMATE_DRAFT = {
    "lineItems": [
        {
            "category": "Demolition",
            "description": "Tear off damaged shingles",
            "quantity": 10,
            "unit": "sq",
            "unitCost": 60,
            "totalCost": 600,
        },
        {
            "category": "Roofing",
            "description": "Install shingles and flashing",
            "quantity": 10,
            "unit": "sq",
            "unitCost": 140,
            "totalCost": 1400,
        },
    ],
    "assumptions": ["Single layer of existing shingles"],
    "exclusions": ["Decking replacement"],
}

PLAN_ANALYSIS = {
    "documentType": "floor_plan",
    "scale": "1/4\" = 1'0\"",
    "rooms": [
        {"roomName": "Kitchen", "length": 20, "width": 30, "area": 600, "confidence": "high"},
        {"roomName": "Dining", "length": 20, "width": 25, "area": 500, "confidence": "medium"},
    ],
    "quantities": [{"item": "Interior door", "quantity": 3, "unit": "each", "category": "doors"}],
    "materials": ["LVP flooring"],
    "annotations": ["Remove wall between kitchen and dining"],
    "scopeItems": ["Demolish partition wall", "Install new flooring"],
    "potentialIssues": ["Wall may be load bearing"],
    "missingInformation": ["Ceiling height"],
    "confidence": 0.7,
    "notes": "Clean CAD export.",
}

TAKEOFF_REVIEW = {
    "overallAccuracy": 82,
    "feedback": [
        {
            "category": "Materials",
            "issue": "No allowance for drip edge",
            "severity": "medium",
            "suggestion": "Add drip edge along the eaves",
        }
    ],
    "strengths": ["Clear demolition scope"],
    "areasForImprovement": ["Measure the roof pitch on site"],
    "summary": "Solid takeoff with a small materials gap.",
}

AI_REPLIES = {
    "photo_analysis": PHOTO_ANALYSIS,
    "plan_analysis": PLAN_ANALYSIS,
    "scope": SCOPE_OF_WORK,
    "estimate": ESTIMATE_DRAFT,
    "takeoff_review": TAKEOFF_REVIEW,
}

# tokens reported by the fake client for every call
FAKE_INPUT_TOKENS = 1200
FAKE_OUTPUT_TOKENS = 300


# ------------------------------------------------------------
# App / DB
# ------------------------------------------------------------
@pytest.fixture(scope="session", autouse=True)
def _create_test_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_state():
    get_rate_limiters().store.reset()
    limiter.reset()
    ai_client.breaker.reset()
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ------------------------------------------------------------
# Tenants
# ------------------------------------------------------------
def _make_contractor(db, slug: str, deposit: str = "25") -> ContractorUser:
    contractor = Contractor(
        slug=slug,
        company_name=f"{slug.title()} Roofing",
        email=f"office@{slug}.test",
        phone="555-0100",
        deposit_percentage=Decimal(deposit),
    )
    db.add(contractor)
    db.flush()
    user = ContractorUser(
        contractor_id=contractor.id,
        email=f"owner@{slug}.test",
        role=UserRole.OWNER.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user: ContractorUser) -> dict:
    token = create_session_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_a(db):
    return _make_contractor(db, "acme")


@pytest.fixture
def user_b(db):
    return _make_contractor(db, "bravo")


@pytest.fixture
def auth_headers(user_a):
    return _headers(user_a)


@pytest.fixture
def other_headers(user_b):
    return _headers(user_b)


# ------------------------------------------------------------
# Factories
# ------------------------------------------------------------
@pytest.fixture
def make_lead(db):
    def _make(user: ContractorUser, photos: int = 2, **fields) -> Lead:
        lead = Lead(
            contractor_id=user.contractor_id,
            homeowner_name=fields.pop("homeowner_name", "Jane Homeowner"),
            homeowner_email=fields.pop("homeowner_email", "jane@example.com"),
            homeowner_phone=fields.pop("homeowner_phone", "555-123-4567"),
            address=fields.pop("address", "12 Elm Street, Springfield"),
            trade_type=fields.pop("trade_type", "roofing"),
            notes=fields.pop("notes", "Storm took off a bunch of shingles last week."),
            **fields,
        )
        lead.photos = [
            Photo(
                url=f"https://scopeguard-test.s3.amazonaws.com/p{i}.jpg",
                key=f"contractors/test/temp/{os.urandom(4).hex()}/p{i}.jpg",
                meta={"name": f"p{i}.jpg", "type": "image/jpeg", "size": 1000},
            )
            for i in range(photos)
        ]
        db.add(lead)
        db.commit()
        db.refresh(lead)
        return lead

    return _make


@pytest.fixture
def make_document(db):
    def _make(lead: Lead, file_type: str = "PDF", file_name: str = "plans.pdf") -> Document:
        doc = Document(
            lead_id=lead.id,
            url=f"https://scopeguard-test.s3.amazonaws.com/{file_name}",
            key=f"contractors/test/documents/{os.urandom(4).hex()}/{file_name}",
            file_name=file_name,
            file_type=file_type,
            file_size_bytes=250_000,
        )
        db.add(doc)
        db.commit()
        db.refresh(doc)
        return doc

    return _make


@pytest.fixture
def make_takeoff(db):
    def _make(lead: Lead, scope=SCOPE_OF_WORK, confidence: float = 0.9) -> Takeoff:
        data = {"photoAnalyses": [], "summary": {}, "analyzedAt": "2026-01-01T00:00:00+00:00"}
        if scope is not None:
            data["scopeOfWork"] = scope
        takeoff = Takeoff(
            lead_id=lead.id,
            trade_type=lead.trade_type,
            provider="anthropic",
            version="test-model",
            confidence=confidence,
            data=data,
        )
        db.add(takeoff)
        db.commit()
        db.refresh(takeoff)
        return takeoff

    return _make


@pytest.fixture
def make_estimate(db):
    def _make(
        lead: Lead,
        total: str = "1000.00",
        status: str = EstimateStatus.SENT.value,
        expires_in_days: int = 30,
        public_token: str = None,
    ) -> Estimate:
        estimate = Estimate(
            lead_id=lead.id,
            contractor_id=lead.contractor_id,
            line_items=ESTIMATE_DRAFT["lineItems"],
            subtotal=Decimal(total),
            margin=Decimal("0"),
            contingency=Decimal("0"),
            total=Decimal(total),
            confidence="HIGH",
            status=status,
            public_token=public_token or f"tok-{os.urandom(8).hex()}",
            expires_at=datetime.now(timezone.utc) + timedelta(days=expires_in_days),
        )
        db.add(estimate)
        db.commit()
        db.refresh(estimate)
        return estimate

    return _make


# ------------------------------------------------------------
# External services
# ------------------------------------------------------------
@pytest.fixture
def fake_ai(monkeypatch):
    """Route canned JSON by operation; returns the list of operations called."""
    calls = []

    def _create_message(*, content, operation, model, max_tokens=4096, timeout=None, usage=None):
        calls.append(operation)
        if usage is not None:
            usage.add(operation, model, FAKE_INPUT_TOKENS, FAKE_OUTPUT_TOKENS)
        return "Here is the analysis:\n" + json.dumps(AI_REPLIES[operation])

    monkeypatch.setattr(ai_client, "create_message", _create_message)
    return calls


@pytest.fixture
def fake_stripe(monkeypatch):
    created = {"customers": [], "sessions": []}

    def _customer_create(**kwargs):
        created["customers"].append(kwargs)
        return {"id": f"cus_test_{len(created['customers'])}"}

    def _session_create(**kwargs):
        created["sessions"].append(kwargs)
        n = len(created["sessions"])
        return {"id": f"cs_test_{n}", "url": f"https://checkout.stripe.test/cs_test_{n}"}

    monkeypatch.setattr(stripe.Customer, "create", _customer_create)
    monkeypatch.setattr(stripe.checkout.Session, "create", _session_create)
    return created
