"""WebSocket push channel tests.

Learn: Starlette's TestClient drives WebSockets synchronously. Inside
`with TestClient(app)` the lifespan runs and every request and socket
share one event loop, so a bump POSTed through the same client reaches
the LocalBroadcaster queue the socket handler is reading.
"""

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from vampsync.auth.jwt import create_session_token
from vampsync.config import Settings
from vampsync.main import create_app
from vampsync.realtime.broadcast import LocalBroadcaster
from vampsync.realtime.websocket import WELCOME_TEXT
from vampsync.versions.store import MemoryVersionStore


@pytest.fixture()
def test_client(app):
    with TestClient(app) as c:
        yield c


def test_welcome_message(test_client):
    with test_client.websocket_connect("/ws") as ws:
        welcome = ws.receive_json()
    assert welcome["type"] == "system-message"
    assert welcome["message"] == WELCOME_TEXT
    assert welcome["timestamp"] > 0


def test_bump_is_pushed(test_client, auth_headers):
    with test_client.websocket_connect("/ws") as ws:
        ws.receive_json()
        r = test_client.post("/api/versions/plannerAssignments/bump", headers=auth_headers)
        assert r.status_code == 200

        pushed = ws.receive_json()
    assert pushed["type"] == "data-update"
    assert pushed["entity"] == "planner_assignments"


def test_refresh_request_is_pushed(test_client, auth_headers):
    with test_client.websocket_connect("/ws") as ws:
        ws.receive_json()
        test_client.post(
            "/api/notifications",
            json={"type": "refresh-required", "entity": "all"},
            headers=auth_headers,
        )
        pushed = ws.receive_json()
    assert pushed["type"] == "refresh-required"
    assert pushed["entity"] == "all"


def test_ping_pong(test_client):
    with test_client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "ping"})
        pong = ws.receive_json()
    assert pong["type"] == "pong"
    assert pong["timestamp"] > 0


def test_garbage_frames_are_ignored(test_client):
    with test_client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("{{{")
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_valid_token_accepted(test_client):
    token = create_session_token("user-1")
    with test_client.websocket_connect(f"/ws?token={token}") as ws:
        assert ws.receive_json()["type"] == "system-message"


def test_invalid_token_rejected(test_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with test_client.websocket_connect("/ws?token=bogus") as ws:
            ws.receive_json()
    assert exc.value.code == 4001


def test_token_required_outside_development():
    config = Settings(environment="production", jwt_secret="x" * 48)
    app = create_app(
        config=config,
        version_store=MemoryVersionStore(),
        broadcaster=LocalBroadcaster(),
    )
    with TestClient(app) as c:
        with pytest.raises(WebSocketDisconnect) as exc:
            with c.websocket_connect("/ws") as ws:
                ws.receive_json()
    assert exc.value.code == 4001


def test_server_keepalive_pings():
    app = create_app(
        config=Settings(ws_keepalive_seconds=0.05),
        version_store=MemoryVersionStore(),
        broadcaster=LocalBroadcaster(),
    )
    with TestClient(app) as c:
        with c.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert ws.receive_json()["type"] == "ping"
