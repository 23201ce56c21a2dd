"""Key mapping between server entity groups, client entity groups and queries.

The server and client vocabularies evolved independently (snake_case vs
camelCase, plus a handful of historical spellings). KeyMapper folds all
of that into one validated table so nothing else has to guess.

normalize() and denormalize() are total: a key with no rule maps to itself.
to_query_ids() never fails: unknown groups have no queries.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Mapping

from vampsync.errors import RegistryError
from vampsync.sync import registry


class KeyMapper:
    """Bidirectional server/client key translation plus the query map."""

    def __init__(
        self,
        groups: Iterable[tuple[str, str]] = registry.ENTITY_GROUPS,
        aliases: Mapping[str, str] = registry.LEGACY_ALIASES,
        query_map: Mapping[str, Iterable[str]] = registry.QUERY_MAP,
    ):
        self._server_to_client: dict[str, str] = {}
        self._client_to_server: dict[str, str] = {}

        for server_key, client_key in groups:
            if server_key in self._server_to_client:
                raise RegistryError(f"Duplicate server key: {server_key}")
            if client_key in self._client_to_server:
                raise RegistryError(f"Duplicate client key: {client_key}")
            self._server_to_client[server_key] = client_key
            self._client_to_server[client_key] = server_key

        # A name may be both a server and a client key only for the same group
        for name in set(self._server_to_client) & set(self._client_to_server):
            if self._server_to_client[name] != name:
                raise RegistryError(
                    f"Key {name!r} names two different groups",
                    details={"server_to_client": self._server_to_client[name]},
                )

        self._aliases: dict[str, str] = {}
        for alias, target in aliases.items():
            if target not in self._server_to_client and target not in self._client_to_server:
                raise RegistryError(f"Alias {alias!r} points at unknown key {target!r}")
            if alias in self._server_to_client or alias in self._client_to_server:
                raise RegistryError(f"Alias {alias!r} shadows a canonical key")
            self._aliases[alias] = target

        self._query_map: dict[str, frozenset[str]] = {}
        for client_key, query_ids in query_map.items():
            if client_key not in self._client_to_server:
                raise RegistryError(f"Query map entry for unknown client key {client_key!r}")
            self._query_map[client_key] = frozenset(query_ids)

    # ─── Translation ─────────────────────────────────────

    def normalize(self, key: str) -> str:
        """Server-style, client-style or legacy key → canonical client key."""
        key = self._aliases.get(key, key)
        return self._server_to_client.get(key, key)

    def denormalize(self, key: str) -> str:
        """Any known spelling → canonical server key."""
        client_key = self.normalize(key)
        return self._client_to_server.get(client_key, client_key)

    def is_known(self, key: str) -> bool:
        return self.normalize(key) in self._client_to_server

    def normalize_snapshot(self, snapshot: Mapping[str, int]) -> dict[str, int]:
        """Re-key a server snapshot by client key.

        Two server rows that fold into the same group (a legacy spelling
        persisted next to its canonical name) are summed: the sum still
        rises whenever either counter rises and falls on either rollback.
        """
        result: dict[str, int] = {}
        for server_key, version in snapshot.items():
            client_key = self.normalize(server_key)
            result[client_key] = result.get(client_key, 0) + version
        return result

    # ─── Queries ─────────────────────────────────────────

    def to_query_ids(self, key: str) -> frozenset[str]:
        return self._query_map.get(self.normalize(key), frozenset())

    def all_query_ids(self) -> frozenset[str]:
        return frozenset().union(*self._query_map.values())

    @property
    def client_keys(self) -> frozenset[str]:
        return frozenset(self._client_to_server)


@dataclass(frozen=True)
class CriticalSet:
    """Entity groups and views where incremental invalidation is not enough."""

    keys: frozenset[str] = registry.CRITICAL_KEYS
    view_prefixes: tuple[str, ...] = registry.CRITICAL_VIEW_PREFIXES

    def matches_view(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.view_prefixes)

    def requires_reload(self, changed: Iterable[str], path: str) -> bool:
        return self.matches_view(path) and any(key in self.keys for key in changed)


@lru_cache(maxsize=1)
def default_mapper() -> KeyMapper:
    """The KeyMapper built from the static registry (validated once)."""
    mapper = KeyMapper()
    unknown = registry.CRITICAL_KEYS - mapper.client_keys
    if unknown:
        raise RegistryError(f"Critical keys not in registry: {sorted(unknown)}")
    return mapper
