"""SyncSession — the sync subsystem for one authenticated client session.

Learn: Everything with a timer or a socket hangs off this object, so
teardown is one call and nothing leaks across logout/login:

    session = SyncSession.from_settings(token, navigate=..., location=...)
    session.navigate_to("/events/planner")   # starts channel + polling
    session.navigate_to("/settings")         # stops both, keeps versions
    session.logout()                         # stops and forgets versions
    await session.aclose()

Creating the session is the host's statement that login succeeded;
there is no unauthenticated mode.
"""

from pathlib import Path
from typing import Callable, Optional

import structlog

from vampsync.client.channel import NotificationChannel
from vampsync.client.http import VersionClient
from vampsync.client.query_cache import QueryCache, QueryInvalidator
from vampsync.client.reconciler import PassOutcome, Reconciler
from vampsync.client.reload import CriticalReloadTrigger, Navigator
from vampsync.client.storage import FileStateStorage, StateStorage
from vampsync.client.version_cache import ClientVersionCache
from vampsync.config import Settings, settings as default_settings
from vampsync.sync.keys import CriticalSet, KeyMapper, default_mapper
from vampsync.sync.messages import MessageType, UpdateMessage
from vampsync.sync.registry import ALL_ENTITIES, AUTO_REFRESH_ROUTES

logger = structlog.get_logger()

StatusListener = Callable[[bool, bool], None]
SystemMessageListener = Callable[[str], None]


def is_auto_refresh_route(path: str, routes: tuple[str, ...] = AUTO_REFRESH_ROUTES) -> bool:
    return any(path.startswith(route) for route in routes)


class SyncSession:
    def __init__(
        self,
        version_client: VersionClient,
        channel: NotificationChannel,
        storage: StateStorage,
        navigate: Navigator,
        location: Callable[[], str],
        query_cache: Optional[QueryCache] = None,
        mapper: Optional[KeyMapper] = None,
        critical: Optional[CriticalSet] = None,
        namespace: str = "vamp_data_versions",
        poll_interval: float = 30.0,
    ):
        self.mapper = mapper or default_mapper()
        self.query_cache = query_cache or QueryCache()
        self.invalidator = QueryInvalidator(self.query_cache)
        self.versions = ClientVersionCache(storage, namespace=namespace)
        self.version_client = version_client
        self.channel = channel
        self.reload_trigger = CriticalReloadTrigger(navigate, self.invalidator)
        self.reconciler = Reconciler(
            fetch_snapshot=version_client.fetch_snapshot,
            versions=self.versions,
            invalidator=self.invalidator,
            reload_trigger=self.reload_trigger,
            current_location=location,
            mapper=self.mapper,
            critical=critical,
            poll_interval=poll_interval,
        )

        self._status_listeners: list[StatusListener] = []
        self._system_listeners: list[SystemMessageListener] = []
        self.connected = False
        self.reconnecting = False
        self._unsubscribe = channel.subscribe(self._on_message)

    @classmethod
    def from_settings(
        cls,
        token: str,
        navigate: Navigator,
        location: Callable[[], str],
        config: Optional[Settings] = None,
        storage: Optional[StateStorage] = None,
        query_cache: Optional[QueryCache] = None,
    ) -> "SyncSession":
        config = config or default_settings
        return cls(
            version_client=VersionClient(
                config.api_url, token=token, timeout=config.http_timeout_seconds
            ),
            channel=NotificationChannel(
                config.resolved_ws_url,
                token=token,
                backoff_base=config.reconnect_base_seconds,
                backoff_max=config.reconnect_max_seconds,
                max_attempts=config.reconnect_max_attempts,
            ),
            storage=storage or FileStateStorage(Path(config.state_dir)),
            navigate=navigate,
            location=location,
            query_cache=query_cache,
            namespace=config.state_namespace,
            poll_interval=config.poll_interval_seconds,
        )

    # ─── Listeners ───────────────────────────────────────

    def on_connection_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def on_system_message(self, listener: SystemMessageListener) -> None:
        self._system_listeners.append(listener)

    # ─── Lifecycle ───────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.reconciler.is_running

    def start(self) -> None:
        """Open the push channel and start polling. Idempotent."""
        self.channel.init()
        self.reconciler.start()

    def stop(self) -> None:
        """Stop polling and close the channel. Keeps freshness state."""
        self.reconciler.stop()
        self.channel.close()

    def navigate_to(self, path: str) -> None:
        """Run the subsystem only on auto-refresh views."""
        if is_auto_refresh_route(path):
            logger.debug("session.auto_refresh_enabled", path=path)
            self.start()
        else:
            logger.debug("session.auto_refresh_disabled", path=path)
            self.stop()

    def logout(self) -> None:
        """Stop everything and forget versions and cached queries."""
        self.stop()
        self.versions.clear()
        self.invalidator.clear()
        self.reconciler.reset()
        logger.info("session.logged_out")

    async def refresh_now(self) -> PassOutcome:
        """Run one reconciliation pass immediately (manual refresh)."""
        return await self.reconciler.reconcile()

    async def aclose(self) -> None:
        self.stop()
        self._unsubscribe()
        await self.version_client.aclose()

    # ─── Push handling ───────────────────────────────────

    def _on_message(self, message: UpdateMessage) -> None:
        if message.type == MessageType.CONNECTION_STATUS:
            self.connected = bool(message.connected)
            self.reconnecting = bool(message.reconnecting)
            for listener in list(self._status_listeners):
                listener(self.connected, self.reconnecting)
            if self.connected:
                # Pushes may have been lost while we were away
                self.reconciler.wake()
            return

        if message.type == MessageType.SYSTEM_MESSAGE:
            if message.message:
                for listener in list(self._system_listeners):
                    listener(message.message)
            return

        if message.type == MessageType.REFRESH_REQUIRED:
            if message.entity == ALL_ENTITIES:
                self.invalidator.invalidate_all()
            elif message.entity and self.mapper.is_known(message.entity):
                self.invalidator.invalidate(self.mapper.to_query_ids(message.entity))
            self.reconciler.wake()
            return

        if message.type == MessageType.DATA_UPDATE:
            if message.entity and message.entity != ALL_ENTITIES and not self.mapper.is_known(message.entity):
                logger.debug("session.unknown_entity", entity=message.entity)
                return
            self.reconciler.wake()
