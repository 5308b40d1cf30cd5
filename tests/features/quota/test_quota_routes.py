import asyncio

from app.features.quota.services.quota_table import compute_checksum
from app.features.quota.services.usage import get_usage_store


def test_get_quota_table(client):
    response = client.get("/api/v1/quotas")
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["tiers"]["free"] == {
        "maxUrlsPerBatch": 5,
        "maxAiUrlsPerBatch": 5,
        "maxAiUrlsPerDay": 10,
    }
    assert data["checksum"] == compute_checksum(data)


def test_usage_for_fresh_session(client, session_headers):
    response = client.get("/api/v1/quotas/usage", headers=session_headers)
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["tier"] == "free"
    assert data["used"] == 0
    assert data["remaining"] == 10
    assert data["limit"] == 10
    assert data["resetsAt"]


def test_usage_reflects_recorded_ai_urls(client, session_id, session_headers):
    asyncio.run(get_usage_store().record(session_id, 4))

    data = client.get("/api/v1/quotas/usage", headers=session_headers).json()["data"]

    assert data["used"] == 4
    assert data["remaining"] == 6


def test_evaluate_accepts_batch_within_limits(client, session_headers):
    urls = [f"https://example.com/{i}" for i in range(5)]

    response = client.post(
        "/api/v1/quotas/evaluate",
        json={"urls": urls, "aiEnabledUrls": urls},
        headers=session_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"accepted": True}


def test_evaluate_reports_batch_size_violation(client, session_headers):
    urls = [f"https://example.com/{i}" for i in range(6)]

    response = client.post("/api/v1/quotas/evaluate", json={"urls": urls}, headers=session_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["accepted"] is False
    assert data["violation"]["code"] == "BATCH_SIZE_EXCEEDED"
    assert data["violation"]["current"] == 6
    assert data["violation"]["max"] == 5


def test_evaluate_does_not_consume_quota(client, session_id, session_headers):
    urls = ["https://example.com/a", "https://example.com/b"]

    for _ in range(3):
        client.post(
            "/api/v1/quotas/evaluate",
            json={"urls": urls, "ai_enabled_urls": urls},
            headers=session_headers,
        )

    data = client.get("/api/v1/quotas/usage", headers=session_headers).json()["data"]
    assert data["used"] == 0


def test_evaluate_rejects_ai_urls_outside_batch(client, session_headers):
    response = client.post(
        "/api/v1/quotas/evaluate",
        json={"urls": ["https://example.com"], "aiEnabledUrls": ["https://other.com"]},
        headers=session_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_evaluate_requires_urls(client, session_headers):
    response = client.post("/api/v1/quotas/evaluate", json={"urls": []}, headers=session_headers)

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_evaluate_normalizes_urls_like_batch_submission(client, session_headers):
    body = {"urls": ["example.com"], "aiEnabledUrls": ["https://example.com"]}

    dry_run = client.post("/api/v1/quotas/evaluate", json=body, headers=session_headers)
    created = client.post("/api/v1/batches", json=body, headers=session_headers)

    assert dry_run.status_code == 200
    assert dry_run.json()["data"] == {"accepted": True}
    assert created.status_code == 201
    assert created.json()["data"]["aiUrls"] == 1


def test_evaluate_rejects_invalid_url_like_batch_submission(client, session_headers):
    body = {"urls": ["https://example.com", "ftp://example.com/file"]}

    dry_run = client.post("/api/v1/quotas/evaluate", json=body, headers=session_headers)
    created = client.post("/api/v1/batches", json=body, headers=session_headers)

    assert dry_run.status_code == created.status_code == 400
    assert dry_run.json()["code"] == created.json()["code"] == "INVALID_URL"


def test_evaluate_and_submission_agree_on_daily_limit(client, session_id, session_headers):
    asyncio.run(get_usage_store().record(session_id, 8))
    urls = ["example.com/a", "example.com/b", "example.com/c"]
    body = {"urls": urls, "aiEnabledUrls": urls}

    dry_run = client.post("/api/v1/quotas/evaluate", json=body, headers=session_headers)
    created = client.post("/api/v1/batches", json=body, headers=session_headers)

    violation = dry_run.json()["data"]["violation"]
    assert violation["code"] == created.json()["code"] == "DAILY_AI_LIMIT_EXCEEDED"
    assert violation["remaining"] == created.json()["data"]["remaining"] == 2
    assert created.status_code == 429


def test_evaluate_reports_ai_disabled(client, session_headers, monkeypatch):
    from app.platform.config import settings

    monkeypatch.setattr(settings, "FEATURE_AI_ENABLED", False)
    urls = ["https://example.com"]

    response = client.post(
        "/api/v1/quotas/evaluate",
        json={"urls": urls, "aiEnabledUrls": urls},
        headers=session_headers,
    )

    assert response.status_code == 403
    assert response.json()["code"] == "AI_DISABLED"
