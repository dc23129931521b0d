"""
BlockServed - Health & App Wiring Tests
"""

import logging

import pytest
from httpx import AsyncClient

from blockserved.core.database import check_db
from blockserved.main import DATABASE_DRIVERS, app, lifespan, missing_packages


@pytest.mark.anyio
async def test_health(client: AsyncClient, settings):
    response = await client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] is True
    assert data["version"] == settings.app_version


@pytest.mark.anyio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.anyio
async def test_request_id_is_generated(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.headers["X-Request-Id"]


@pytest.mark.anyio
async def test_unknown_route_is_json(client: AsyncClient):
    response = await client.get("/api/stage/nope")
    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.anyio
async def test_invalid_execute_body_is_400(client: AsyncClient):
    response = await client.post("/api/stage/execute/TXN_1_x", json={"blockchainTxHash": "0x1", "energyUsed": -5})
    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["field"] == "energyUsed"


# =============================================================================
# Startup
# =============================================================================

def test_missing_packages_checks_configured_driver(monkeypatch):
    assert missing_packages("sqlite+aiosqlite:///./blockserved.db") == []

    monkeypatch.setitem(DATABASE_DRIVERS, "postgresql+asyncpg", "no_such_driver_pkg")
    assert missing_packages("postgresql+asyncpg://u:p@db/blockserved") == ["no_such_driver_pkg (Database Driver)"]


@pytest.mark.anyio
async def test_lifespan_prepares_directories_and_schema(setup_test_database, settings):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        async with lifespan(app):
            assert settings.staged_path.is_dir()
            assert settings.documents_path.is_dir()
            assert await check_db() is True
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
