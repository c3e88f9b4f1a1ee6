from decimal import Decimal

from app.config import settings
from app.models import AIUsage
from app.services.ai.client import UsageRecorder
from app.services.ai_usage import estimate_cost, record_usage

SONNET = "claude-3-5-sonnet-20241022"
HAIKU = "claude-3-5-haiku-20241022"


def test_cost_uses_per_model_rates():
    # (1200 * $3 + 300 * $15) / 1M
    assert estimate_cost(SONNET, 1200, 300) == Decimal("0.008100")
    assert estimate_cost(HAIKU, 1200, 300) == Decimal("0.002160")


def test_unknown_model_is_priced_like_sonnet():
    assert estimate_cost("some-new-model", 1200, 300) == estimate_cost(SONNET, 1200, 300)


def test_record_usage_stages_one_row_per_call(db, user_a):
    recorder = UsageRecorder()
    recorder.add("photo_analysis", SONNET, 100, 10)
    recorder.add("scope", SONNET, 200, 20)

    rows = record_usage(db, recorder, contractor_id=user_a.contractor_id)
    assert [r.total_tokens for r in rows] == [110, 220]
    # nothing is written until the caller commits
    db.rollback()
    assert db.query(AIUsage).count() == 0


def test_analysis_records_usage_per_call(client, db, user_a, make_lead, auth_headers, fake_ai):
    lead = make_lead(user_a, photos=2)
    assert client.post(f"/api/leads/{lead.id}/analyze", headers=auth_headers).status_code == 200

    rows = db.query(AIUsage).filter(AIUsage.lead_id == lead.id).all()
    assert sorted(r.operation for r in rows) == ["photo_analysis", "photo_analysis", "scope"]
    assert all(r.contractor_id == user_a.contractor_id for r in rows)

    r = client.get(f"/api/leads/{lead.id}/usage", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["totalTokens"] == 3 * 1500
    assert Decimal(body["totalCost"]) == Decimal("0.0243")
    assert len(body["usage"]) == 3
    assert body["usage"][0]["leadId"] == lead.id


def test_estimate_draft_records_usage_against_estimate(client, db, user_a, make_lead, make_takeoff, auth_headers, fake_ai):
    lead = make_lead(user_a)
    make_takeoff(lead)

    r = client.post(f"/api/leads/{lead.id}/estimate", headers=auth_headers)
    assert r.status_code == 200, r.text

    row = db.query(AIUsage).one()
    assert row.operation == "estimate"
    assert row.estimate_id == r.json()["estimateId"]


def test_contractor_report_groups_by_operation(client, user_a, make_lead, auth_headers, fake_ai):
    lead = make_lead(user_a, photos=2)
    client.post(f"/api/leads/{lead.id}/analyze", headers=auth_headers)

    body = client.get("/api/usage", headers=auth_headers).json()
    assert body["totalTokens"] == 4500
    assert [(g["operation"], g["count"]) for g in body["byOperation"]] == [
        ("photo_analysis", 2),
        ("scope", 1),
    ]
    assert body["budget"] is None


def test_contractor_report_is_tenant_scoped(client, user_a, make_lead, auth_headers, other_headers, fake_ai):
    lead = make_lead(user_a, photos=1)
    client.post(f"/api/leads/{lead.id}/analyze", headers=auth_headers)

    body = client.get("/api/usage", headers=other_headers).json()
    assert body["usage"] == []
    assert body["totalTokens"] == 0
    assert client.get(f"/api/leads/{lead.id}/usage", headers=other_headers).status_code == 403


def test_monthly_budget_is_reported(client, user_a, make_lead, auth_headers, fake_ai, monkeypatch):
    monkeypatch.setattr(settings, "ai_monthly_budget_usd", 0.01)
    lead = make_lead(user_a, photos=2)
    client.post(f"/api/leads/{lead.id}/analyze", headers=auth_headers)

    budget = client.get("/api/usage", headers=auth_headers).json()["budget"]
    assert budget["exceeded"] is True
    assert Decimal(budget["usage"]) == Decimal("0.0243")
    assert Decimal(budget["budget"]) == Decimal("0.01")


def test_inverted_range_is_400(client, user_a, auth_headers):
    r = client.get(
        "/api/usage",
        params={"start": "2026-02-01T00:00:00Z", "end": "2026-01-01T00:00:00Z"},
        headers=auth_headers,
    )
    assert r.status_code == 400
