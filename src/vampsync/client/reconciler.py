"""Reconciler — decides, per wake, between nothing, invalidate and reload.

Learn: The reconciler wakes on a fixed timer (30s) and whenever the push
channel reports a change. Every pass does the same thing regardless of
what woke it:

1. Fetch the server snapshot (the message that woke us is only a hint).
2. BASELINE mode (no persisted versions): record the snapshot, switch to
   TRACKING, touch nothing — a first look is not a change.
3. changed = keys whose server version differs from ours: new keys,
   higher versions, and lower versions (a server restart reset the
   counter; we know nothing about that group any more).
4. Record the new versions for every changed key *before* acting, so the
   same snapshot is never processed twice even if we reload below.
5. Nothing changed → done.
6. A critical group changed while a critical view is open → full reload.
   The critical versions that caused it are persisted first. A page that
   is itself a forced reload and sees exactly those versions change
   again falls through instead of reloading in a loop; any other
   critical change on that page still reloads.
7. Otherwise invalidate the union of the changed groups' queries.

Passes never overlap. A wake that arrives while a pass is in flight is
dropped: the pass in flight or the next tick re-reads the authoritative
snapshot anyway. The pass in flight is owned by the task running it, so
stop() only releases it when it cancelled that task.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from vampsync.client.query_cache import QueryInvalidator
from vampsync.client.reload import CriticalReloadTrigger
from vampsync.client.version_cache import ClientVersionCache
from vampsync.errors import VersionFetchError
from vampsync.sync.keys import CriticalSet, KeyMapper, default_mapper

logger = structlog.get_logger()

SnapshotFetcher = Callable[[], Awaitable[dict[str, int]]]
LocationProvider = Callable[[], str]


class ReconcilerMode(str, Enum):
    BASELINE = "baseline"
    TRACKING = "tracking"


class PassOutcome(str, Enum):
    SKIPPED = "skipped"          # another pass was in flight
    FAILED = "failed"            # snapshot fetch failed; retry next tick
    BASELINE = "baseline"        # first observation recorded
    UNCHANGED = "unchanged"
    INVALIDATED = "invalidated"
    RELOADED = "reloaded"


def diff_snapshots(
    client: dict[str, int], server: dict[str, int]
) -> tuple[dict[str, int], list[str]]:
    """Keys whose server version differs from the client's.

    Returns (changed key → server version, keys that rolled back).
    Keys missing from the server snapshot are not changes.
    """
    changed: dict[str, int] = {}
    rolled_back: list[str] = []
    for key, version in server.items():
        known = client.get(key)
        if known is None or version > known:
            changed[key] = version
        elif version < known:
            changed[key] = version
            rolled_back.append(key)
    return changed, rolled_back


class Reconciler:
    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        versions: ClientVersionCache,
        invalidator: QueryInvalidator,
        reload_trigger: CriticalReloadTrigger,
        current_location: LocationProvider,
        mapper: Optional[KeyMapper] = None,
        critical: Optional[CriticalSet] = None,
        poll_interval: float = 30.0,
    ):
        self._fetch_snapshot = fetch_snapshot
        self._versions = versions
        self._invalidator = invalidator
        self._reload = reload_trigger
        self._current_location = current_location
        self._mapper = mapper or default_mapper()
        self._critical = critical or CriticalSet()
        self.poll_interval = poll_interval

        self._mode = ReconcilerMode.BASELINE if versions.is_empty() else ReconcilerMode.TRACKING
        self._current_pass: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None
        self._wakes: set[asyncio.Task] = set()
        self._listeners: list[Callable[[PassOutcome], None]] = []

    @property
    def mode(self) -> ReconcilerMode:
        return self._mode

    @property
    def in_flight(self) -> bool:
        return self._current_pass is not None

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ─── One pass ────────────────────────────────────────

    async def reconcile(self) -> PassOutcome:
        if self.in_flight:
            logger.debug("reconciler.coalesced")
            return PassOutcome.SKIPPED
        owner = asyncio.current_task()
        self._current_pass = owner
        try:
            outcome = await self._reconcile()
        finally:
            if self._current_pass is owner:
                self._current_pass = None
        for listener in list(self._listeners):
            listener(outcome)
        return outcome

    def add_listener(self, listener: Callable[[PassOutcome], None]) -> None:
        """Call `listener` with the outcome of every completed pass."""
        self._listeners.append(listener)

    async def _reconcile(self) -> PassOutcome:
        try:
            raw = await self._fetch_snapshot()
        except VersionFetchError as e:
            logger.warning("reconciler.fetch_failed", error=e.message)
            return PassOutcome.FAILED

        server = self._mapper.normalize_snapshot(raw)

        if self._mode == ReconcilerMode.BASELINE:
            self._versions.replace(server)
            self._mode = ReconcilerMode.TRACKING
            logger.info("reconciler.baseline", keys=len(server))
            return PassOutcome.BASELINE

        changed, rolled_back = diff_snapshots(self._versions.snapshot(), server)
        self._versions.update(changed)

        if not changed:
            return PassOutcome.UNCHANGED
        if rolled_back:
            logger.warning("reconciler.version_rollback", keys=sorted(rolled_back))

        location = self._current_location()
        path = location.split("?", 1)[0]
        if self._critical.requires_reload(changed, path):
            trigger = {k: v for k, v in changed.items() if k in self._critical.keys}
            if self._reload.is_post_reload(location) and trigger == self._versions.last_reload():
                logger.info("reconciler.reload_suppressed", keys=sorted(trigger), path=path)
            else:
                logger.info("reconciler.critical_reload", keys=sorted(changed), path=path)
                self._versions.record_reload(trigger)
                self._reload.reload(location)
                return PassOutcome.RELOADED

        query_ids: set[str] = set()
        for key in changed:
            query_ids |= self._mapper.to_query_ids(key)
        self._invalidator.invalidate(query_ids)
        logger.info("reconciler.invalidated", keys=sorted(changed), queries=len(query_ids))
        return PassOutcome.INVALIDATED

    # ─── Wake sources ────────────────────────────────────

    def wake(self) -> None:
        """Schedule a pass now (push notification, manual refresh)."""
        if self.in_flight:
            logger.debug("reconciler.coalesced")
            return
        task = asyncio.create_task(self._guarded_pass())
        self._wakes.add(task)
        task.add_done_callback(self._wakes.discard)

    async def _guarded_pass(self) -> PassOutcome:
        try:
            return await self.reconcile()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("reconciler.pass_error")
            return PassOutcome.FAILED

    async def _poll_loop(self) -> None:
        while True:
            await self._guarded_pass()
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        """Run a pass now and every poll_interval after. No-op if running."""
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._poll_loop(), name="vampsync-poll")
        logger.info("reconciler.started", interval=self.poll_interval, mode=self._mode.value)

    def stop(self) -> None:
        """Cancel the timer and any push-triggered pass. Synchronous."""
        cancelled = set(self._wakes)
        if self._timer is not None:
            cancelled.add(self._timer)
            self._timer = None
            logger.info("reconciler.stopped")
        for task in cancelled:
            task.cancel()
        self._wakes.clear()
        # A cancelled pass only runs its finally on a later loop iteration;
        # a pass run by a caller's own task (refresh_now) keeps running
        if self._current_pass in cancelled:
            self._current_pass = None

    def reset(self) -> None:
        """Forget the baseline (logout). The next pass is a baseline pass."""
        self._mode = ReconcilerMode.BASELINE
