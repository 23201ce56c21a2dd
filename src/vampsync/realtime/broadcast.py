"""Broadcast — fan-out of update messages to every WebSocket handler.

Learn: Delivery is fire-and-forget. If no one is listening, or a slow
subscriber's buffer is full, the message is lost. That's fine: clients
also poll GET /api/versions, so a lost push costs at most one polling
interval of staleness.

Two backends:
- LocalBroadcaster: in-process queues. Enough for a single worker and
  for tests.
- RedisBroadcaster: Redis PUBLISH/SUBSCRIBE on one channel, so a bump
  handled by any worker reaches sockets held by every worker.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator

import redis.asyncio as aioredis
import structlog

from vampsync.sync.messages import UpdateMessage

logger = structlog.get_logger()


class Broadcaster(ABC):
    @abstractmethod
    async def publish(self, message: UpdateMessage) -> None:
        """Send `message` to every current subscriber."""

    @abstractmethod
    def subscribe(self) -> AsyncContextManager[AsyncIterator[str]]:
        """Async context manager yielding an iterator of raw JSON frames."""

    async def ping(self) -> None:
        pass

    async def close(self) -> None:
        pass


class LocalBroadcaster(Broadcaster):
    """In-process fan-out through one bounded queue per subscriber."""

    def __init__(self, max_queue: int = 256):
        self._max_queue = max_queue
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, message: UpdateMessage) -> None:
        payload = message.to_json()
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning("broadcast.dropped", reason="subscriber_queue_full")

    @asynccontextmanager
    async def subscribe(self):
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(queue)

        async def frames():
            while True:
                yield await queue.get()

        try:
            yield frames()
        finally:
            self._subscribers.discard(queue)


class RedisBroadcaster(Broadcaster):
    """Fan-out through a Redis pub/sub channel."""

    def __init__(self, redis: aioredis.Redis, channel: str = "vampsync:updates"):
        self._redis = redis
        self._channel = channel

    @classmethod
    def from_url(cls, url: str, channel: str = "vampsync:updates") -> "RedisBroadcaster":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, channel=channel)

    async def publish(self, message: UpdateMessage) -> None:
        await self._redis.publish(self._channel, message.to_json())

    @asynccontextmanager
    async def subscribe(self):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)

        async def frames():
            async for message in pubsub.listen():
                if message["type"] == "message":
                    yield message["data"]

        try:
            yield frames()
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()

    async def ping(self) -> None:
        await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()


def create_broadcaster(backend: str, redis_url: str, channel: str) -> Broadcaster:
    """Build the broadcaster named by VAMPSYNC_BROADCAST_BACKEND."""
    if backend == "redis":
        return RedisBroadcaster.from_url(redis_url, channel=channel)
    return LocalBroadcaster()
