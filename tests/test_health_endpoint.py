import pytest
from httpx import ASGITransport, AsyncClient

from helpers import seed_app_settings


@pytest.mark.asyncio
async def test_root_and_versioned_healthz(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        root = await client.get("/healthz")
        versioned = await client.get("/api/v1/healthz")

    assert root.status_code == 200
    assert root.json()["status"] == "ok"
    assert "version" in root.json()
    assert versioned.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readyz_degraded_without_settings_row(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["reward_settings"]["status"] == "degraded"


@pytest.mark.asyncio
async def test_readyz_reports_settings_version(app_with_db) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        await seed_app_settings(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "ready"
    settings_component = payload["components"]["reward_settings"]
    assert settings_component["status"] == "ready"
    assert settings_component["detail"].startswith("Settings version")
