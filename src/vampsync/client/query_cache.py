"""Query cache and invalidator.

Learn: Views read data through QueryCache.fetch(key, loader). A key is
a tuple whose first element is the query identifier (the endpoint,
e.g. "/api/venues") followed by any parameters:

    ("/api/planners", {"month": 5, "year": 2025})

Invalidation is by identifier and lazy: matching entries are marked
stale and the next fetch() reloads them. Nothing is refetched eagerly.

A load that is in flight when its identifier is invalidated still
returns its data to the caller, but the entry is stored stale, so the
next read refetches. A load in flight across clear() stores nothing.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Iterable

import structlog

logger = structlog.get_logger()

Loader = Callable[[], Awaitable[Any]]


def _freeze(part: Any) -> Hashable:
    if isinstance(part, (dict, list)):
        return json.dumps(part, sort_keys=True, default=str)
    return part


def make_key(query_id: str, *params: Any) -> tuple:
    """Build a hashable cache key; dict/list params are serialized."""
    return (query_id, *(_freeze(p) for p in params))


@dataclass
class CacheEntry:
    data: Any
    stale: bool = False
    fetch_count: int = 1


class QueryCache:
    def __init__(self):
        self._entries: dict[tuple, CacheEntry] = {}
        # Bumped on every invalidation of an identifier / of everything
        self._generations: dict[str, int] = {}
        self._invalidated_all = 0
        self._epoch = 0

    def _generation(self, query_id: Any) -> tuple[int, int]:
        return self._generations.get(query_id, 0), self._invalidated_all

    async def fetch(self, key: tuple, loader: Loader) -> Any:
        """Return cached data for `key`, loading it if missing or stale."""
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.data

        query_id = key[0] if key else None
        epoch = self._epoch
        generation = self._generation(query_id)
        data = await loader()

        if self._epoch != epoch:
            logger.debug("queries.load_discarded", query_id=query_id)
            return data
        stale = self._generation(query_id) != generation
        if stale:
            logger.debug("queries.invalidated_during_load", query_id=query_id)

        current = self._entries.get(key)
        if current is None:
            self._entries[key] = CacheEntry(data=data, stale=stale)
        else:
            current.data = data
            current.stale = stale
            current.fetch_count += 1
        return data

    def peek(self, key: tuple) -> CacheEntry | None:
        return self._entries.get(key)

    def is_stale(self, key: tuple) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def invalidate(self, query_id: str) -> int:
        """Mark every entry under `query_id` stale. Returns how many matched."""
        self._generations[query_id] = self._generations.get(query_id, 0) + 1
        count = 0
        for key, entry in self._entries.items():
            if key and key[0] == query_id:
                entry.stale = True
                count += 1
        return count

    def invalidate_all(self) -> int:
        self._invalidated_all += 1
        for entry in self._entries.values():
            entry.stale = True
        return len(self._entries)

    def clear(self) -> None:
        self._epoch += 1
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class QueryInvalidator:
    """Marks cached queries stale by identifier.

    Repeated or overlapping identifier sets are harmless: invalidating an
    already-stale entry is a no-op.
    """

    def __init__(self, cache: QueryCache):
        self.cache = cache

    def invalidate(self, query_ids: Iterable[str]) -> None:
        ids = sorted(set(query_ids))
        for query_id in ids:
            matched = self.cache.invalidate(query_id)
            logger.debug("queries.invalidated", query_id=query_id, entries=matched)
        if ids:
            logger.info("queries.invalidated_batch", query_ids=ids)

    def invalidate_all(self) -> None:
        matched = self.cache.invalidate_all()
        logger.info("queries.invalidated_all", entries=matched)

    def clear(self) -> None:
        self.cache.clear()
        logger.info("queries.cleared")
