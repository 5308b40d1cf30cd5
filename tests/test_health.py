def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status_code"] == 200
    assert payload["status"] == "success"
    assert payload["message"] == "Service is healthy"
    assert payload["data"]["status"] == "ok"
    assert payload["data"]["service"] == "ADAShield"
    assert payload["data"]["features"] == {"ai": True, "batch_scans": True}
    assert payload["data"]["quotaVersion"]


def test_health_check_under_api_prefix(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["message"] == "Service is healthy"


def test_health_reports_disabled_flag(client, monkeypatch):
    from app.platform.config import settings

    monkeypatch.setattr(settings, "FEATURE_AI_ENABLED", False)

    response = client.get("/health")
    assert response.json()["data"]["features"]["ai"] is False


def test_root_info(client):
    response = client.get("/")
    assert response.status_code == 200
    payload = response.json()
    assert payload["app_name"] == "ADAShield API"
    assert payload["version"] == "1.0.0"
    assert payload["docs_url"] == "/docs"
    assert payload["api_base"] == "/api/v1"
