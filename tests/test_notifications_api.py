"""Notification API tests — operator pushes that don't bump a version."""

import json

import pytest


@pytest.mark.asyncio
async def test_system_message(client, broadcaster, auth_headers):
    async with broadcaster.subscribe() as frames:
        r = await client.post(
            "/api/notifications",
            json={"type": "system-message", "message": "Maintenance at 6pm"},
            headers=auth_headers,
        )
        frame = json.loads(await frames.__anext__())

    assert r.status_code == 202
    body = r.json()
    assert body["type"] == "system-message"
    assert body["message"] == "Maintenance at 6pm"
    assert frame == {
        "type": "system-message",
        "message": "Maintenance at 6pm",
        "timestamp": body["timestamp"],
    }


@pytest.mark.asyncio
async def test_refresh_defaults_to_all(client, auth_headers):
    r = await client.post(
        "/api/notifications",
        json={"type": "refresh-required"},
        headers=auth_headers,
    )
    assert r.status_code == 202
    assert r.json()["entity"] == "all"


@pytest.mark.asyncio
async def test_refresh_entity_is_canonicalized(client, auth_headers):
    r = await client.post(
        "/api/notifications",
        json={"type": "refresh-required", "entity": "categories"},
        headers=auth_headers,
    )
    assert r.json()["entity"] == "event_categories"


@pytest.mark.asyncio
async def test_system_message_requires_text(client, auth_headers):
    r = await client.post(
        "/api/notifications",
        json={"type": "system-message"},
        headers=auth_headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_unknown_type_rejected(client, auth_headers):
    r = await client.post(
        "/api/notifications",
        json={"type": "data-update", "entity": "venues"},
        headers=auth_headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_notifications_require_token(client):
    r = await client.post(
        "/api/notifications",
        json={"type": "refresh-required"},
    )
    assert r.status_code == 401
