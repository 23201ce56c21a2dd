"""ClientVersionCache — last observed version of each entity group.

Learn: Persisted so a reloaded view can tell "I was away and something
changed" from "this is my first look". Lifecycle:
  absent (first session) → baseline (first successful fetch)
  → updated after every reconciliation → cleared on logout

Only the Reconciler writes to it. A corrupt record is discarded (it only
means the next pass is a baseline); a failed write is logged and the
cache carries on in memory.

A second record, `<namespace>_reload`, holds the critical versions that
caused the last forced reload. The reloaded page compares against it so
the same change never triggers a second reload.
"""

import json
from typing import Iterator, Mapping

import structlog

from vampsync.client.storage import StateStorage

logger = structlog.get_logger()


class ClientVersionCache:
    def __init__(self, storage: StateStorage, namespace: str = "vamp_data_versions"):
        self._storage = storage
        self._namespace = namespace
        self._reload_namespace = f"{namespace}_reload"
        self._versions: dict[str, int] = self._load(self._namespace)
        self._last_reload: dict[str, int] = self._load(self._reload_namespace)

    def _load(self, namespace: str) -> dict[str, int]:
        try:
            raw = self._storage.get(namespace)
        except OSError as e:
            logger.warning("version_cache.read_failed", error=str(e))
            return {}
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("version_cache.corrupt_record", namespace=namespace)
            return {}
        if not isinstance(data, dict):
            logger.warning("version_cache.corrupt_record", namespace=namespace)
            return {}
        return {
            str(k): v for k, v in data.items()
            if isinstance(v, int) and not isinstance(v, bool) and v >= 0
        }

    def _write(self, namespace: str, versions: Mapping[str, int]) -> None:
        try:
            self._storage.set(namespace, json.dumps(dict(versions), sort_keys=True))
        except OSError as e:
            logger.warning("version_cache.write_failed", error=str(e))

    def _save(self) -> None:
        self._write(self._namespace, self._versions)

    # ─── Reads ───────────────────────────────────────────

    def is_empty(self) -> bool:
        return not self._versions

    def get(self, key: str) -> int | None:
        return self._versions.get(key)

    def snapshot(self) -> dict[str, int]:
        return dict(self._versions)

    def __contains__(self, key: str) -> bool:
        return key in self._versions

    def __iter__(self) -> Iterator[str]:
        return iter(self._versions)

    def __len__(self) -> int:
        return len(self._versions)

    # ─── Writes ──────────────────────────────────────────

    def replace(self, versions: Mapping[str, int]) -> None:
        self._versions = dict(versions)
        self._save()

    def update(self, versions: Mapping[str, int]) -> None:
        if not versions:
            return
        self._versions.update(versions)
        self._save()

    def record_reload(self, trigger: Mapping[str, int]) -> None:
        """Remember the critical versions that caused a forced reload."""
        self._last_reload = dict(trigger)
        self._write(self._reload_namespace, self._last_reload)

    def last_reload(self) -> dict[str, int]:
        return dict(self._last_reload)

    def clear(self) -> None:
        self._versions = {}
        self._last_reload = {}
        for namespace in (self._namespace, self._reload_namespace):
            try:
                self._storage.delete(namespace)
            except OSError as e:
                logger.warning("version_cache.clear_failed", error=str(e))
