"""NotificationChannel — the client end of the push channel.

Learn: One live WebSocket per session. State machine:

  DISCONNECTED ─init()→ CONNECTING ─handshake→ CONNECTED
        ↑                    ↑                     │ error / server close
        │                    └── backoff elapsed ──┤
        └──── close() / attempts exhausted ── RECONNECTING

Every transition that a connectivity indicator cares about is emitted to
subscribers as a connection-status message, on the same stream as the
server's data messages.

Delivery is at-most-once: frames sent while disconnected are gone. The
reconciler polls independently, so nothing here retries or replays.

init() while a connection task is alive is a no-op. Views mounting and
unmounting repeatedly must never end up with parallel sockets.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode, urlsplit

import structlog
import websockets
from websockets.exceptions import WebSocketException

from vampsync.errors import MalformedMessageError
from vampsync.sync import messages
from vampsync.sync.messages import MessageClock, MessageType, UpdateMessage

logger = structlog.get_logger()

Subscriber = Callable[[UpdateMessage], None]
Connector = Callable[[str], Any]
Sleeper = Callable[[float], Awaitable[None]]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def reconnect_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Capped exponential backoff: base, 2·base, 4·base, … ≤ cap."""
    return min(base * (2 ** attempt), cap)


def with_token(url: str, token: Optional[str]) -> str:
    if not token:
        return url
    sep = "&" if urlsplit(url).query else "?"
    return f"{url}{sep}{urlencode({'token': token})}"


class NotificationChannel:
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        max_attempts: int = 10,
        connect: Connector = websockets.connect,
        sleep: Sleeper = asyncio.sleep,
        clock: Optional[MessageClock] = None,
    ):
        self._url = with_token(url, token)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._max_attempts = max_attempts
        self._connect = connect
        self._sleep = sleep
        self._clock = clock or MessageClock()

        self._state = ChannelState.DISCONNECTED
        self._task: Optional[asyncio.Task] = None
        self._attempts = 0
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ─── Subscriptions ───────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback` for every message. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, message: UpdateMessage) -> None:
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception:
                logger.exception("channel.subscriber_error", type=message.type.value)

    def _emit_status(self, connected: bool, reconnecting: bool) -> None:
        self._emit(messages.connection_status(connected, reconnecting, self._clock.now()))

    # ─── Lifecycle ───────────────────────────────────────

    def init(self) -> None:
        """Open the channel. No-op if a connection task is already alive."""
        if self.is_running:
            return
        self._attempts = 0
        self._task = asyncio.create_task(self._run(), name="vampsync-channel")

    def close(self) -> None:
        """Stop the connection task and any pending reconnect."""
        was_running = self.is_running
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._state != ChannelState.DISCONNECTED or was_running:
            self._state = ChannelState.DISCONNECTED
            self._emit_status(connected=False, reconnecting=False)
            logger.info("channel.closed")

    async def _run(self) -> None:
        while True:
            self._state = ChannelState.CONNECTING
            try:
                async with self._connect(self._url) as ws:
                    self._state = ChannelState.CONNECTED
                    logger.info("channel.connected")
                    self._emit_status(connected=True, reconnecting=False)
                    async for raw in ws:
                        # A handshake alone doesn't prove the server is healthy
                        self._attempts = 0
                        self._handle_frame(raw)
                logger.info("channel.server_closed")
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning("channel.transport_error", error=str(e) or type(e).__name__)

            if self._max_attempts and self._attempts >= self._max_attempts:
                self._state = ChannelState.DISCONNECTED
                self._emit_status(connected=False, reconnecting=False)
                logger.warning("channel.gave_up", attempts=self._attempts)
                return

            delay = reconnect_delay(self._attempts, self._backoff_base, self._backoff_max)
            self._attempts += 1
            self._state = ChannelState.RECONNECTING
            self._emit_status(connected=False, reconnecting=True)
            logger.info("channel.reconnecting", delay=delay, attempt=self._attempts)
            await self._sleep(delay)

    def _handle_frame(self, raw: Any) -> None:
        try:
            message = messages.parse_message(raw)
        except MalformedMessageError as e:
            logger.warning("channel.malformed_message", **e.details)
            return
        if message.type in (MessageType.PING, MessageType.PONG):
            return
        if message.type == MessageType.CONNECTION_STATUS:
            # Only this side produces connection status
            logger.debug("channel.ignored_remote_status")
            return
        self._emit(message)
