"""CriticalReloadTrigger — forced full reload of the current view.

Learn: On critical views (planner, monthly contracts) a changed critical
group is not patched incrementally; the whole view is reloaded instead.
The reload is split in two so it can be tested:

1. build_reload_location(): pure — (location, timestamp, salt) → location
   - legacy path aliases are rewritten to the canonical path so a stale
     bookmark doesn't reload-loop
   - existing query parameters are kept
   - a freshness token `refresh=<ms><salt>` is set, unique per attempt
2. CriticalReloadTrigger.reload(): clears the whole query cache first,
   then hands the new location to the host's hard-navigation callback.

A location that already carries the freshness token is itself the
result of a forced reload. If the reconciler sees the change that caused
that reload again there, it falls back to incremental invalidation
instead of reloading in a loop.
"""

import random
import time
from typing import Callable, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog

from vampsync.client.query_cache import QueryInvalidator
from vampsync.sync.registry import FRESHNESS_PARAM, LEGACY_PATHS

logger = structlog.get_logger()

Navigator = Callable[[str], None]


def canonical_path(path: str, legacy_paths: Mapping[str, str] = LEGACY_PATHS) -> str:
    return legacy_paths.get(path, path)


def has_freshness_token(location: str, param: str = FRESHNESS_PARAM) -> bool:
    query = urlsplit(location).query
    return any(name == param for name, _ in parse_qsl(query, keep_blank_values=True))


def build_reload_location(
    location: str,
    timestamp_ms: int,
    salt: int,
    legacy_paths: Mapping[str, str] = LEGACY_PATHS,
    param: str = FRESHNESS_PARAM,
) -> str:
    """Deterministic reload target for `location`.

    >>> build_reload_location("/planner?month=5&year=2025", 1700000000000, 42)
    '/events/planner?month=5&year=2025&refresh=17000000000000042'
    """
    parts = urlsplit(location)
    params = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if name != param
    ]
    params.append((param, f"{timestamp_ms}{salt:04d}"))
    path = canonical_path(parts.path or "/", legacy_paths)
    return urlunsplit(("", "", path, urlencode(params), parts.fragment))


class CriticalReloadTrigger:
    def __init__(
        self,
        navigate: Navigator,
        invalidator: QueryInvalidator,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self._navigate = navigate
        self._invalidator = invalidator
        self._clock = clock
        self._rng = rng or random.Random()

    @staticmethod
    def is_post_reload(location: str) -> bool:
        return has_freshness_token(location)

    def target_for(self, location: str) -> str:
        return build_reload_location(
            location,
            timestamp_ms=int(self._clock() * 1000),
            salt=self._rng.randrange(10000),
        )

    def reload(self, location: str) -> str:
        """Clear every cached query, then hard-navigate. Returns the new location."""
        new_location = self.target_for(location)
        self._invalidator.clear()
        current_path = urlsplit(location).path
        target_path = urlsplit(new_location).path
        if current_path != target_path:
            logger.info("reload.path_corrected", old=current_path, new=target_path)
        logger.warning("reload.forced", location=location, target=new_location)
        self._navigate(new_location)
        return new_location
