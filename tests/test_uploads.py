import base64
import json
import re

PRESIGN_PATH = "/api/uploads/presign"
PRESIGN_DOCUMENT_PATH = "/api/uploads/presign-document"
PRESIGN_PUT_PATH = "/api/uploads/presign-put"


def _photo(**overrides):
    payload = {
        "contractorSlug": "acme",
        "leadTempId": "tmp_abc-123",
        "contentType": "image/jpeg",
        "fileName": "My Roof (1).JPG",
        "fileSize": 512_000,
    }
    payload.update(overrides)
    return payload


def _policy(fields: dict) -> dict:
    return json.loads(base64.b64decode(fields["policy"]))


def test_presign_photo_returns_post_grant(client, user_a):
    r = client.post(PRESIGN_PATH, json=_photo())
    assert r.status_code == 200, r.text
    upload = r.json()["upload"]

    assert re.fullmatch(
        r"contractors/acme/temp/tmp_abc-123/[0-9a-f-]{36}-my-roof-1-\.jpg", upload["key"]
    )
    assert upload["bucket"] == "scopeguard-test"
    assert upload["maxFileSize"] == 15 * 1024 * 1024
    assert upload["publicUrl"].endswith(upload["key"])
    assert upload["fields"]["key"] == upload["key"]
    assert upload["contentType"] == "image/jpeg"

    conditions = _policy(upload["fields"])["conditions"]
    assert ["content-length-range", 1, 15 * 1024 * 1024] in conditions
    assert ["starts-with", "$Content-Type", "image/"] in conditions


def test_every_presign_yields_a_new_key(client, user_a):
    a = client.post(PRESIGN_PATH, json=_photo()).json()["upload"]["key"]
    b = client.post(PRESIGN_PATH, json=_photo()).json()["upload"]["key"]
    assert a != b


def test_presign_rejects_non_images(client, user_a):
    r = client.post(PRESIGN_PATH, json=_photo(contentType="application/pdf"))
    assert r.status_code == 422


def test_presign_rejects_oversized_photo(client, user_a):
    r = client.post(PRESIGN_PATH, json=_photo(fileSize=16 * 1024 * 1024))
    assert r.status_code == 422


def test_presign_rejects_bad_temp_id(client, user_a):
    r = client.post(PRESIGN_PATH, json=_photo(leadTempId="../escape"))
    assert r.status_code == 422


def test_presign_unknown_contractor_is_404(client):
    r = client.post(PRESIGN_PATH, json=_photo(contractorSlug="ghost"))
    assert r.status_code == 404


def test_presign_document(client, user_a):
    r = client.post(
        PRESIGN_DOCUMENT_PATH,
        json=_photo(contentType="application/pdf", fileName="Site Plan.pdf", fileSize=20 * 1024 * 1024),
    )
    assert r.status_code == 200, r.text
    upload = r.json()["upload"]
    assert "/documents/" in upload["key"]
    assert upload["key"].endswith("-site-plan.pdf")
    assert upload["maxFileSize"] == 50 * 1024 * 1024

    conditions = _policy(upload["fields"])["conditions"]
    assert ["eq", "$Content-Type", "application/pdf"] in conditions


def test_presign_document_rejects_unsupported_type(client, user_a):
    r = client.post(PRESIGN_DOCUMENT_PATH, json=_photo(contentType="application/zip"))
    assert r.status_code == 422


def test_presign_put_for_owned_lead(client, user_a, make_lead, auth_headers):
    lead = make_lead(user_a)
    r = client.post(
        PRESIGN_PUT_PATH,
        json={"leadId": lead.id, "fileName": "after.png", "contentType": "image/png", "fileSize": 1000},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    upload = r.json()["upload"]
    assert upload["method"] == "PUT"
    assert upload["key"].startswith(f"contractors/acme/leads/{lead.id}/")
    assert upload["headers"] == {"Content-Type": "image/png"}
    assert "X-Amz-Signature" in upload["url"] or "Signature" in upload["url"]


def test_presign_put_requires_session(client, user_a, make_lead):
    lead = make_lead(user_a)
    r = client.post(
        PRESIGN_PUT_PATH,
        json={"leadId": lead.id, "fileName": "a.png", "contentType": "image/png", "fileSize": 1},
    )
    assert r.status_code == 401


def test_presign_put_other_tenant_is_403(client, user_a, make_lead, other_headers):
    lead = make_lead(user_a)
    r = client.post(
        PRESIGN_PUT_PATH,
        json={"leadId": lead.id, "fileName": "a.png", "contentType": "image/png", "fileSize": 1},
        headers=other_headers,
    )
    assert r.status_code == 403
