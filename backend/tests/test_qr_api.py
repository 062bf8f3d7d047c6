"""
Tests for the /api/qr endpoints.
"""

import pytest
import httpx
from httpx import ASGITransport
from urllib.parse import parse_qs, urlparse

from qrorder.config import Settings
from qrorder.main import create_app

from conftest import SECRET, admin_headers, staff_headers


@pytest.mark.asyncio
async def test_scan_redirects_with_fresh_token(async_client, app, mock_broadcaster):
    response = await async_client.get("/api/qr/scan/table-1")
    assert response.status_code == 302

    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}" == "http://frontend.test"
    token = parse_qs(location.query)["token"][0]
    assert await app.state.sessions.validate(token) is not None
    mock_broadcaster.table_session_issued.assert_awaited_once_with("rest-main", "table-1")


@pytest.mark.asyncio
async def test_scan_unknown_table_redirects_with_error(async_client, mock_broadcaster):
    response = await async_client.get("/api/qr/scan/nope")
    assert response.status_code == 302
    assert response.headers["location"] == "http://frontend.test?error=table_not_found"
    mock_broadcaster.table_session_issued.assert_not_awaited()


@pytest.mark.asyncio
async def test_validate_valid_token(async_client, app):
    session = await app.state.sessions.issue("table-1")

    response = await async_client.get(f"/api/qr/validate/{session.token}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tableNumber"] == 1
    assert data["tableName"] == "Window"
    assert data["restaurant"]["nameFr"] == "Café Central"


@pytest.mark.asyncio
async def test_validate_invalid_token_is_localized_400(async_client):
    response = await async_client.get("/api/qr/validate/bogus")
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "INVALID_QR"
    assert set(body["messages"]) == {"en", "fr", "ar"}


@pytest.mark.asyncio
async def test_generate_requires_staff_identity(async_client):
    response = await async_client.post("/api/qr/generate/table-1")
    assert response.status_code == 401

    response = await async_client.post(
        "/api/qr/generate/table-1", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_generate_returns_session_and_png(async_client, seeded):
    response = await async_client.post("/api/qr/generate/table-1", headers=staff_headers(seeded.waiter_a))
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["tableId"] == "table-1"
    assert data["scanUrl"] == "http://api.test/api/qr/scan/table-1"
    assert data["qrCode"].startswith("data:image/png;base64,")
    assert data["token"]


@pytest.mark.asyncio
async def test_generate_for_other_restaurant_table_is_404(async_client):
    response = await async_client.post("/api/qr/generate/table-other", headers=admin_headers())
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_inactive_staff_token_is_rejected(async_client, seeded):
    response = await async_client.post("/api/qr/refresh-all", headers=staff_headers(seeded.retired))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_staff_token_for_wrong_restaurant_is_rejected(async_client, seeded):
    response = await async_client.post(
        "/api/qr/refresh-all", headers=staff_headers(seeded.waiter_a, restaurant_id="rest-other")
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_all_rotates_and_broadcasts(async_client, app, mock_broadcaster):
    old = await app.state.sessions.issue("table-1")

    response = await async_client.post("/api/qr/refresh-all", headers=admin_headers())
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["count"] == 2
    assert data["failedTableIds"] == []
    assert await app.state.sessions.validate(old.token) is None
    mock_broadcaster.sessions_rotated.assert_awaited_once_with("rest-main", 2)


@pytest.mark.asyncio
async def test_cleanup_without_key_outside_production(async_client):
    response = await async_client.post("/api/qr/cleanup")
    assert response.status_code == 200
    assert response.json()["data"]["deleted"] == 0


@pytest.mark.asyncio
async def test_cleanup_requires_key_in_production(storage, seeded):
    settings = Settings(environment="production", jwt_secret_key=SECRET, cron_api_key="cron-key")
    app = create_app(settings, storage)
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for headers in ({}, {"X-API-Key": "wrong"}):
            response = await client.post("/api/qr/cleanup", headers=headers)
            assert response.status_code == 401
            body = response.json()
            assert body["success"] is False
            assert body["code"] == "UNAUTHORIZED"
        response = await client.post("/api/qr/cleanup", headers={"X-API-Key": "cron-key"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
