"""Version service — the one place mutations become "something changed".

Learn: A mutation on the server flows through here:
  normalize key → VersionStore.bump → Broadcaster.publish(data-update)

The bump is awaited before the caller responds and its failure
propagates (StorageUnavailableError). The broadcast is best-effort: if it
fails, the bump has already happened and clients will see it on their
next poll, so the error is logged and swallowed.
"""

from typing import Iterable

import structlog

from vampsync.realtime.broadcast import Broadcaster
from vampsync.sync import messages
from vampsync.sync.keys import KeyMapper, default_mapper
from vampsync.sync.messages import MessageClock, UpdateMessage
from vampsync.sync.registry import ALL_ENTITIES
from vampsync.versions.store import VersionStore

logger = structlog.get_logger()


class VersionService:
    def __init__(
        self,
        store: VersionStore,
        broadcaster: Broadcaster,
        mapper: KeyMapper | None = None,
        clock: MessageClock | None = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.mapper = mapper or default_mapper()
        self.clock = clock or MessageClock()

    async def bump(self, key: str) -> tuple[str, int]:
        """Record a mutation of entity group `key` (any spelling).

        Returns (canonical server key, new version).
        """
        server_key = self.mapper.denormalize(key)
        version = await self.store.bump(server_key)
        logger.info("versions.bumped", key=server_key, version=version, requested=key)
        await self._publish(messages.data_update(server_key, self.clock.now()))
        return server_key, version

    async def bump_many(self, keys: Iterable[str]) -> dict[str, int]:
        """Bump each distinct group once, in order."""
        result: dict[str, int] = {}
        for key in keys:
            server_key = self.mapper.denormalize(key)
            if server_key in result:
                continue
            _, version = await self.bump(server_key)
            result[server_key] = version
        return result

    async def snapshot(self) -> dict[str, int]:
        return await self.store.snapshot()

    async def request_refresh(self, entity: str = ALL_ENTITIES) -> UpdateMessage:
        """Ask every client to drop cached data for `entity` (or everything)."""
        target = entity if entity == ALL_ENTITIES else self.mapper.denormalize(entity)
        message = messages.refresh_required(target, self.clock.now())
        await self._publish(message)
        logger.info("versions.refresh_requested", entity=target)
        return message

    async def system_message(self, text: str) -> UpdateMessage:
        message = messages.system_message(text, self.clock.now())
        await self._publish(message)
        return message

    async def _publish(self, message: UpdateMessage) -> None:
        try:
            await self.broadcaster.publish(message)
        except Exception as e:
            logger.warning(
                "versions.broadcast_failed",
                type=message.type.value,
                entity=message.entity,
                error=str(e),
            )
