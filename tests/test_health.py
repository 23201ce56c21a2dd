"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["version_store"] == "ok"
    assert data["broadcaster"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_is_cacheable(client):
    """No-store headers are only stamped on the versions endpoints."""
    resp = await client.get("/api/health")
    assert "Surrogate-Control" not in resp.headers
