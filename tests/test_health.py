from app.services import health, payments


def test_health_reports_each_dependency(client, monkeypatch):
    monkeypatch.setattr(payments, "check_stripe", lambda: None)

    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] in ("healthy", "degraded")
    assert set(body["checks"]) == {"database", "stripe", "s3"}
    assert body["checks"]["database"]["status"] in ("up", "degraded")
    assert body["checks"]["s3"]["status"] == "up"
    assert body["environment"] == "test"
    assert r.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert r.headers["X-Response-Time"].endswith("ms")


def test_health_is_503_when_a_check_is_down(client, monkeypatch):
    def _down():
        raise RuntimeError("stripe unreachable")

    monkeypatch.setattr(payments, "check_stripe", _down)

    r = client.get("/api/health")
    assert r.status_code == 503
    body = r.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["stripe"] == {
        "status": "down",
        "responseTime": body["checks"]["stripe"]["responseTime"],
        "error": "stripe unreachable",
    }


def test_head_health_checks_database_only(client, monkeypatch):
    monkeypatch.setattr(payments, "check_stripe", lambda: 1 / 0)

    r = client.head("/api/health")
    assert r.status_code == 200
    assert r.content == b""


def test_head_health_503_when_database_down(client, monkeypatch):
    monkeypatch.setattr(health, "check_database", lambda: {"status": "down", "responseTime": 1})
    assert client.head("/api/health").status_code == 503


def test_overall_status_rules():
    up = {"status": "up"}
    assert health.overall_status({"a": up, "b": up}) == "healthy"
    assert health.overall_status({"a": up, "b": {"status": "degraded"}}) == "degraded"
    assert health.overall_status({"a": {"status": "degraded"}, "b": {"status": "down"}}) == "unhealthy"


def test_metrics_endpoint(client):
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "scopeguard_leads_created_total" in r.text
