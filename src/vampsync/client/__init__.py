"""Client side of the sync subsystem.

One SyncSession per authenticated tab/window. It owns the push channel,
the polling reconciler, the persisted version cache and the query cache
the host's views read through.
"""

from vampsync.client.session import SyncSession

__all__ = ["SyncSession"]
