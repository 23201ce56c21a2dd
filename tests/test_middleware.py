"""Tests for middleware — request IDs and no-store headers."""

import pytest


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/health")
    r2 = await client.get("/api/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    # Each request gets a unique ID
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get(
        "/api/versions",
        headers={"X-Request-ID": custom_id},
    )
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_store_on_error_responses(client):
    """A 401 from the bump hook is not cacheable either."""
    r = await client.post("/api/versions/venues/bump")
    assert r.status_code == 401
    assert r.headers["Cache-Control"].startswith("no-store")
    assert r.headers["Pragma"] == "no-cache"
    assert r.headers["Expires"] == "0"
