"""WebSocket endpoint — push "something changed" events to clients.

Learn: Each client connects to /ws?token=JWT. The handler:
1. Authenticates via the session token query param (required outside
   development)
2. Sends a welcome system-message
3. Subscribes to the broadcaster and forwards every frame
4. Pings the client every ws_keepalive_seconds and answers client pings,
   so proxies don't reap idle sockets

One connection per browser tab (or embedded client session).
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from vampsync.realtime.broadcast import Broadcaster
from vampsync.sync import messages
from vampsync.sync.messages import MessageType

logger = structlog.get_logger()
router = APIRouter()

WELCOME_TEXT = "Connected to VAMP data server. You will receive real-time updates."


@router.websocket("/ws")
async def updates_websocket(websocket: WebSocket):
    """Push channel for data-update / refresh-required / system-message events.

    Learn: Three concurrent tasks run:
    1. Broadcast listener — reads fan-out frames, sends to the WebSocket
    2. Client listener — reads from the WebSocket (ping → pong)
    3. Keepalive — sends a ping frame every ws_keepalive_seconds

    When any of them finishes, the others are cancelled.
    """
    # ── Authentication ──────────────────────────────────────
    config = websocket.app.state.config
    token = websocket.query_params.get("token")
    user_id = None

    if not token and config.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        from vampsync.auth.jwt import TokenError, verify_token

        try:
            user_id = verify_token(token)["sub"]
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    clock = websocket.app.state.version_service.clock
    log = logger.bind(user_id=user_id)
    log.info("ws.connected")

    async with broadcaster.subscribe() as frames:
        await websocket.send_text(messages.system_message(WELCOME_TEXT, clock.now()).to_json())

        async def broadcast_listener():
            """Forward broadcast frames to the WebSocket client."""
            try:
                async for frame in frames:
                    await websocket.send_text(frame)
            except asyncio.CancelledError:
                pass

        async def client_listener():
            """Handle incoming WebSocket frames (keepalive only)."""
            try:
                while True:
                    data = await websocket.receive_text()
                    try:
                        msg = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(msg, dict) and msg.get("type") == MessageType.PING.value:
                        pong = messages.UpdateMessage(type=MessageType.PONG, timestamp=clock.now())
                        await websocket.send_text(pong.to_json())
            except (WebSocketDisconnect, asyncio.CancelledError):
                pass

        async def keepalive():
            """Ping the client so idle sockets stay open."""
            try:
                while True:
                    await asyncio.sleep(config.ws_keepalive_seconds)
                    ping = messages.UpdateMessage(type=MessageType.PING, timestamp=clock.now())
                    await websocket.send_text(ping.to_json())
            except (WebSocketDisconnect, asyncio.CancelledError):
                pass

        tasks = [
            asyncio.create_task(broadcast_listener()),
            asyncio.create_task(client_listener()),
            asyncio.create_task(keepalive()),
        ]

        try:
            # Wait for any to finish (usually client disconnect)
            done, pending = await asyncio.wait(
                tasks,
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
        finally:
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close()
            log.info("ws.disconnected")
