from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.models import Estimate, Lead
from app.services import email as email_service


def _estimate_path(lead_id: str) -> str:
    return f"/api/leads/{lead_id}/estimate"


# ------------------------------------------------------------
# Draft
# ------------------------------------------------------------
def test_generate_estimate_from_latest_takeoff(client, db, user_a, make_lead, make_takeoff, auth_headers, fake_ai):
    lead = make_lead(user_a)
    make_takeoff(lead, confidence=0.9)

    r = client.post(_estimate_path(lead.id), headers=auth_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["estimate"]["subtotal"] == 2000
    assert body["estimate"]["total"] == 2600
    assert body["estimate"]["status"] == "DRAFT"

    db.expire_all()
    estimate = db.get(Estimate, body["estimateId"])
    assert estimate.status == "DRAFT"
    assert estimate.confidence == "HIGH"
    assert estimate.margin == Decimal("20.00")
    assert estimate.total == Decimal("2600.00")
    assert db.get(Lead, lead.id).status == "ESTIMATED"


def test_generate_estimate_with_pricing_guidelines(client, user_a, make_lead, make_takeoff, auth_headers, fake_ai):
    lead = make_lead(user_a)
    make_takeoff(lead)
    r = client.post(
        _estimate_path(lead.id),
        json={"pricingGuidelines": {"marginPercentage": 0, "contingencyPercentage": 0}},
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json()["estimate"]["total"] == 2000


def test_generate_estimate_requires_takeoff(client, user_a, make_lead, auth_headers, fake_ai):
    lead = make_lead(user_a)
    r = client.post(_estimate_path(lead.id), headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "No analysis available. Run photo analysis first."


def test_generate_estimate_requires_scope(client, user_a, make_lead, make_takeoff, auth_headers, fake_ai):
    lead = make_lead(user_a)
    make_takeoff(lead, scope=None)
    r = client.post(_estimate_path(lead.id), headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Invalid takeoff data"


# ------------------------------------------------------------
# Edit
# ------------------------------------------------------------
def test_patch_recomputes_totals(client, db, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, total="2000.00", status="DRAFT")

    r = client.patch(
        _estimate_path(lead.id),
        params={"estimateId": estimate.id},
        json={"marginPercentage": 10, "contingencyPercentage": 5},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    out = r.json()["estimate"]
    assert Decimal(out["subtotal"]) == Decimal("2000.00")
    assert Decimal(out["total"]) == Decimal("2300.00")
    assert Decimal(out["margin"]) == Decimal("10.00")


def test_patch_replaces_line_items(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, status="DRAFT")
    items = [
        {
            "category": "Gutters",
            "description": "Replace 40 ft of gutter",
            "quantity": 40,
            "unit": "ft",
            "unitCost": 12.5,
            "totalCost": 500,
        }
    ]
    r = client.patch(
        _estimate_path(lead.id),
        params={"estimateId": estimate.id},
        json={"lineItems": items},
        headers=auth_headers,
    )
    assert r.status_code == 200
    out = r.json()["estimate"]
    assert Decimal(out["total"]) == Decimal("500.00")
    assert out["lineItems"][0]["category"] == "Gutters"


def test_patch_status_only(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, status="DRAFT")
    r = client.patch(
        _estimate_path(lead.id),
        params={"estimateId": estimate.id},
        json={"status": "DECLINED"},
        headers=auth_headers,
    )
    assert r.json()["estimate"]["status"] == "DECLINED"
    assert Decimal(r.json()["estimate"]["total"]) == Decimal("1000.00")


def test_patch_requires_estimate_id(client, user_a, make_lead, auth_headers):
    lead = make_lead(user_a)
    r = client.patch(_estimate_path(lead.id), json={"status": "SENT"}, headers=auth_headers)
    assert r.status_code == 400


def test_patch_estimate_on_other_lead_is_404(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    other_lead = make_lead(user_a)
    estimate = make_estimate(other_lead)
    r = client.patch(
        _estimate_path(lead.id),
        params={"estimateId": estimate.id},
        json={"status": "SENT"},
        headers=auth_headers,
    )
    assert r.status_code == 404


def test_patch_rejects_negative_line_item_cost(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead)
    bad = [{"category": "X", "description": "Y", "quantity": 1, "unit": "ea", "unitCost": -1, "totalCost": -1}]
    r = client.patch(
        _estimate_path(lead.id),
        params={"estimateId": estimate.id},
        json={"lineItems": bad},
        headers=auth_headers,
    )
    assert r.status_code == 422


# ------------------------------------------------------------
# Send + public link
# ------------------------------------------------------------
def test_send_assigns_public_token_and_emails(client, db, user_a, make_lead, make_estimate, auth_headers, monkeypatch):
    sent = []
    monkeypatch.setattr(
        email_service, "send_postmark_email", lambda **kw: sent.append(kw) or "msg-1"
    )
    lead = make_lead(user_a)
    estimate = make_estimate(lead, status="DRAFT", public_token="draft-token")
    db.query(Estimate).filter(Estimate.id == estimate.id).update(
        {"public_token": None, "expires_at": None}
    )
    db.commit()

    r = client.post(f"/api/estimates/{estimate.id}/send", headers=auth_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    token = body["estimate"]["publicToken"]
    assert token
    assert body["estimate"]["status"] == "SENT"
    assert body["publicUrl"] == f"https://app.scopeguard.test/e/{token}"

    db.expire_all()
    expires_at = db.get(Estimate, estimate.id).expires_at.replace(tzinfo=timezone.utc)
    assert expires_at - datetime.now(timezone.utc) > timedelta(days=29)

    assert sent and sent[0]["to"] == "jane@example.com"
    assert token in sent[0]["html_body"]


def test_send_accepted_estimate_is_409(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, status="ACCEPTED")
    r = client.post(f"/api/estimates/{estimate.id}/send", headers=auth_headers)
    assert r.status_code == 409


def test_public_estimate_view(client, user_a, make_lead, make_estimate):
    lead = make_lead(user_a)
    make_estimate(lead, public_token="public-abc")

    r = client.get("/api/public/estimates/public-abc")
    assert r.status_code == 200
    view = r.json()["estimate"]
    assert view["contractor"]["companyName"] == "Acme Roofing"
    assert view["lead"]["homeownerName"] == "Jane Homeowner"
    assert Decimal(view["amountPaid"]) == 0
    assert "contractorId" not in view
    assert "id" not in view


def test_public_estimate_unknown_token_is_404(client):
    assert client.get("/api/public/estimates/nope").status_code == 404


def test_public_estimate_expired_is_403(client, user_a, make_lead, make_estimate):
    lead = make_lead(user_a)
    make_estimate(lead, public_token="old-link", expires_in_days=-1)
    r = client.get("/api/public/estimates/old-link")
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


# ------------------------------------------------------------
# Feedback
# ------------------------------------------------------------
def test_feedback_computes_variance(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead, total="1000.00", status="ACCEPTED")

    r = client.post(
        f"/api/estimates/{estimate.id}/feedback",
        json={"projectOutcome": "WON", "actualCost": 1150, "feedbackNotes": "Decking was rotten"},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    out = r.json()["estimate"]
    assert out["projectOutcome"] == "WON"
    assert Decimal(out["variance"]) == Decimal("150.00")
    assert Decimal(out["variancePercent"]) == Decimal("15.00")


def test_feedback_without_actual_cost(client, user_a, make_lead, make_estimate, auth_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead)
    r = client.post(
        f"/api/estimates/{estimate.id}/feedback",
        json={"projectOutcome": "LOST"},
        headers=auth_headers,
    )
    assert r.status_code == 200
    out = r.json()["estimate"]
    assert out["variance"] is None
    assert out["variancePercent"] is None
