"""Version store — a monotonic counter per entity group.

Learn: Every mutating operation bumps the counter of each group it
touches, inside the same request, before responding. A dropped bump is a
silent-staleness bug, so bump() is never batched or deferred.

Two backends:
- MemoryVersionStore: a dict. Resets on restart; clients treat the
  resulting rollback as "everything in that group is unknown".
- RedisVersionStore: one Redis hash, HINCRBY per bump, HGETALL per
  snapshot. Survives server restarts and is shared by every worker.

Keys arriving here are already canonical server keys (VersionService
normalizes them).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from vampsync.errors import StorageUnavailableError

logger = structlog.get_logger()


class VersionStore(ABC):
    """Holds the current version of every entity group."""

    @abstractmethod
    async def bump(self, key: str) -> int:
        """Increment `key`'s counter (creating it at 1). Returns the new version."""

    @abstractmethod
    async def get(self, key: str) -> int:
        """Current version of `key`, 0 if it was never bumped."""

    @abstractmethod
    async def snapshot(self) -> dict[str, int]:
        """Every known key → version."""

    async def ping(self) -> None:
        """Raise StorageUnavailableError if the backend is unreachable."""

    async def close(self) -> None:
        pass


class MemoryVersionStore(VersionStore):
    """In-process counters."""

    def __init__(self, initial: Optional[dict[str, int]] = None):
        self._versions: dict[str, int] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def bump(self, key: str) -> int:
        async with self._lock:
            version = self._versions.get(key, 0) + 1
            self._versions[key] = version
            return version

    async def get(self, key: str) -> int:
        return self._versions.get(key, 0)

    async def snapshot(self) -> dict[str, int]:
        return dict(self._versions)


class RedisVersionStore(VersionStore):
    """Counters in a single Redis hash.

    Learn: HINCRBY is atomic, so concurrent bumps from several workers
    never lose an increment, and it creates the field at 1 when missing.
    """

    def __init__(self, redis: aioredis.Redis, hash_key: str = "vampsync:versions"):
        self._redis = redis
        self._hash_key = hash_key

    @classmethod
    def from_url(cls, url: str, hash_key: str = "vampsync:versions") -> "RedisVersionStore":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, hash_key=hash_key)

    async def bump(self, key: str) -> int:
        try:
            return int(await self._redis.hincrby(self._hash_key, key, 1))
        except RedisError as e:
            logger.error("versions.bump_failed", key=key, error=str(e))
            raise StorageUnavailableError(f"Cannot bump {key}", details={"key": key}) from e

    async def get(self, key: str) -> int:
        try:
            value = await self._redis.hget(self._hash_key, key)
        except RedisError as e:
            raise StorageUnavailableError(f"Cannot read {key}", details={"key": key}) from e
        return int(value) if value is not None else 0

    async def snapshot(self) -> dict[str, int]:
        try:
            raw = await self._redis.hgetall(self._hash_key)
        except RedisError as e:
            raise StorageUnavailableError("Cannot read version snapshot") from e
        return {k: int(v) for k, v in raw.items()}

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except RedisError as e:
            raise StorageUnavailableError("Redis unreachable") from e

    async def close(self) -> None:
        await self._redis.aclose()


def create_version_store(backend: str, redis_url: str, hash_key: str) -> VersionStore:
    """Build the store named by VAMPSYNC_VERSION_BACKEND."""
    if backend == "redis":
        return RedisVersionStore.from_url(redis_url, hash_key=hash_key)
    return MemoryVersionStore()
