import asyncio

from app.features.quota.services.usage import get_usage_store


def test_create_single_scan(client, session_headers):
    response = client.post("/api/v1/scans", json={"url": "example.com"}, headers=session_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["url"] == "https://example.com"
    assert data["status"] == "QUEUED"
    assert data["aiEnabled"] is False

    status_response = client.get(f"/api/v1/scans/{data['scanId']}")
    assert status_response.json()["data"]["status"] == "QUEUED"


def test_ai_scan_counts_against_daily_allowance(client, session_id, session_headers):
    response = client.post(
        "/api/v1/scans",
        json={"url": "https://example.com", "aiEnabled": True},
        headers=session_headers,
    )

    assert response.status_code == 201
    assert response.json()["data"]["aiEnabled"] is True
    usage = asyncio.run(get_usage_store().get_usage(session_id))
    assert usage.ai_urls_used_today == 1


def test_ai_scan_refused_at_daily_limit(client, session_id, session_headers):
    asyncio.run(get_usage_store().record(session_id, 10))

    response = client.post(
        "/api/v1/scans",
        json={"url": "https://example.com", "aiEnabled": True},
        headers=session_headers,
    )

    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "DAILY_AI_LIMIT_EXCEEDED"
    assert body["data"]["remaining"] == 0


def test_create_scan_invalid_url(client, session_headers):
    response = client.post("/api/v1/scans", json={"url": "ftp://example.com"}, headers=session_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_URL"


def test_list_scans_pages_with_cursor(client, session_headers):
    created = []
    for i in range(3):
        response = client.post(
            "/api/v1/scans", json={"url": f"https://example.com/{i}"}, headers=session_headers
        )
        created.append(response.json()["data"]["scanId"])
    client.post("/api/v1/scans", json={"url": "https://other.com"}, headers={"X-Session-Id": "other-scans"})

    first = client.get("/api/v1/scans", params={"limit": 2}, headers=session_headers).json()["data"]
    second = client.get(
        "/api/v1/scans",
        params={"limit": 2, "cursor": first["nextCursor"]},
        headers=session_headers,
    ).json()["data"]

    assert len(first["scans"]) == 2
    assert first["nextCursor"] is not None
    assert len(second["scans"]) == 1
    assert second["nextCursor"] is None
    listed = [scan["scanId"] for scan in first["scans"] + second["scans"]]
    assert sorted(listed) == sorted(created)


def test_list_scans_includes_batch_scans(client, session_headers):
    client.post("/api/v1/batches", json={"urls": ["https://example.com/a"]}, headers=session_headers)

    data = client.get("/api/v1/scans", headers=session_headers).json()["data"]

    assert [scan["url"] for scan in data["scans"]] == ["https://example.com/a"]
    assert data["nextCursor"] is None


def test_list_scans_rejects_oversized_page(client, session_headers):
    response = client.get("/api/v1/scans", params={"limit": 101}, headers=session_headers)

    assert response.status_code == 422
