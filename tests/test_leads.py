from app.models import Document, Lead, Photo
from app.services import email as email_service

LEADS_PATH = "/api/leads"


def _submission(**overrides):
    payload = {
        "contractorSlug": "acme",
        "homeownerName": "Jane Homeowner",
        "homeownerEmail": "Jane@Example.com",
        "homeownerPhone": "555-123-4567",
        "address": "12 Elm Street, Springfield",
        "projectType": "roofing",
        "budget": "$12,500",
        "timeline": "2026-06-01",
        "description": "Storm took off a bunch of shingles on the north side.",
        "photos": [
            {
                "key": "contractors/acme/temp/abc123/1111-roof.jpg",
                "url": "https://scopeguard-test.s3.amazonaws.com/contractors/acme/temp/abc123/1111-roof.jpg",
                "name": "roof.jpg",
                "type": "image/jpeg",
                "size": 204800,
            }
        ],
        "documents": [
            {
                "key": "contractors/acme/temp/abc123/documents/2222-plan.pdf",
                "url": "https://scopeguard-test.s3.amazonaws.com/contractors/acme/temp/abc123/documents/2222-plan.pdf",
                "name": "plan.pdf",
                "type": "application/pdf",
                "size": 1024,
            }
        ],
    }
    payload.update(overrides)
    return payload


def test_create_lead_persists_lead_photos_and_documents(client, db, user_a):
    r = client.post(LEADS_PATH, json=_submission())
    assert r.status_code == 200, r.text

    lead = r.json()["lead"]
    assert lead["contractorId"] == user_a.contractor_id
    assert lead["homeownerEmail"] == "jane@example.com"
    assert lead["budgetCents"] == 1_250_000
    assert lead["status"] == "NEW"
    assert len(lead["photos"]) == 1
    assert lead["photos"][0]["metadata"]["name"] == "roof.jpg"
    assert lead["documents"][0]["fileType"] == "PDF"

    assert db.query(Lead).count() == 1
    assert db.query(Photo).count() == 1
    assert db.query(Document).count() == 1
    assert "X-RateLimit-Limit" in r.headers


def test_create_lead_unknown_contractor_is_404(client):
    r = client.post(LEADS_PATH, json=_submission(contractorSlug="nobody"))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_create_lead_validation_errors(client, user_a):
    r = client.post(
        LEADS_PATH,
        json=_submission(homeownerEmail="not-an-email", description="short"),
    )
    assert r.status_code == 422
    body = r.json()["error"]
    assert body["code"] == "VALIDATION_ERROR"
    fields = {d["field"] for d in body["details"]}
    assert any("homeownerEmail" in f for f in fields)
    assert any("description" in f for f in fields)


def test_create_lead_rejects_bad_timeline(client, user_a):
    r = client.post(LEADS_PATH, json=_submission(timeline="next spring-ish"))
    assert r.status_code == 422


def test_blank_budget_is_absent(client, user_a):
    r = client.post(LEADS_PATH, json=_submission(budget=""))
    assert r.status_code == 200
    assert r.json()["lead"]["budgetCents"] is None


def test_reused_upload_key_is_conflict(client, user_a):
    assert client.post(LEADS_PATH, json=_submission()).status_code == 200
    r = client.post(LEADS_PATH, json=_submission())
    assert r.status_code == 409


def test_create_lead_sends_notifications(client, user_a, monkeypatch):
    sent = []
    monkeypatch.setattr(
        email_service, "send_postmark_email", lambda **kw: sent.append(kw) or "msg-1"
    )

    r = client.post(LEADS_PATH, json=_submission())
    assert r.status_code == 200
    recipients = {m["to"] for m in sent}
    assert "office@acme.test" in recipients
    assert "jane@example.com" in recipients


def test_list_leads_is_tenant_scoped(client, user_a, user_b, make_lead, auth_headers, other_headers):
    make_lead(user_a)
    make_lead(user_a, status="QUALIFIED")
    make_lead(user_b)

    r = client.get(LEADS_PATH, headers=auth_headers)
    assert r.status_code == 200
    assert len(r.json()["leads"]) == 2

    r = client.get(LEADS_PATH, params={"status": "QUALIFIED"}, headers=auth_headers)
    assert [l["status"] for l in r.json()["leads"]] == ["QUALIFIED"]

    r = client.get(LEADS_PATH, headers=other_headers)
    assert len(r.json()["leads"]) == 1


def test_list_leads_requires_session(client):
    r = client.get(LEADS_PATH)
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"
