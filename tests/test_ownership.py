from datetime import datetime, timedelta, timezone

import jwt

from app.auth.jwt import create_session_token
from app.config import settings


def test_missing_session_is_401(client, user_a, make_lead):
    lead = make_lead(user_a)
    r = client.get(f"/api/leads/{lead.id}/analyze")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"


def test_garbage_token_is_401(client, user_a, make_lead):
    lead = make_lead(user_a)
    r = client.get(f"/api/leads/{lead.id}/analyze", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_expired_token_is_401(client, user_a, make_lead):
    lead = make_lead(user_a)
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = jwt.encode(
        {"sub": user_a.id, "email": user_a.email, "exp": int(past.timestamp())},
        settings.jwt_secret,
        algorithm="HS256",
    )
    r = client.get(f"/api/leads/{lead.id}/analyze", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_unknown_user_is_403(client, user_a, make_lead):
    lead = make_lead(user_a)
    token = create_session_token(user_id="ghost", email="ghost@nowhere.test")
    r = client.get(f"/api/leads/{lead.id}/analyze", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


def test_session_cookie_is_accepted(client, user_a, make_lead, make_takeoff):
    lead = make_lead(user_a)
    make_takeoff(lead)
    token = create_session_token(user_id=user_a.id, email=user_a.email)

    r = client.get(
        f"/api/leads/{lead.id}/analyze",
        headers={"Cookie": f"{settings.session_cookie_name}={token}"},
    )
    assert r.status_code == 200


def test_cross_tenant_lead_access_is_403(client, user_a, make_lead, make_estimate, other_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead)

    assert client.get(f"/api/leads/{lead.id}/analyze", headers=other_headers).status_code == 403
    assert client.post(f"/api/leads/{lead.id}/estimate", headers=other_headers).status_code == 403
    r = client.patch(
        f"/api/leads/{lead.id}/estimate",
        params={"estimateId": estimate.id},
        json={"status": "DECLINED"},
        headers=other_headers,
    )
    assert r.status_code == 403


def test_cross_tenant_estimate_access_is_403(client, user_a, make_lead, make_estimate, other_headers):
    lead = make_lead(user_a)
    estimate = make_estimate(lead)

    for method, path in [
        ("get", f"/api/estimates/{estimate.id}"),
        ("post", f"/api/estimates/{estimate.id}/send"),
        ("post", f"/api/estimates/{estimate.id}/checkout"),
    ]:
        r = getattr(client, method)(path, headers=other_headers)
        assert r.status_code == 403, path

    r = client.post(
        f"/api/estimates/{estimate.id}/feedback",
        json={"projectOutcome": "WON"},
        headers=other_headers,
    )
    assert r.status_code == 403


def test_unknown_estimate_is_404(client, user_a, auth_headers):
    assert client.get("/api/estimates/missing", headers=auth_headers).status_code == 404
