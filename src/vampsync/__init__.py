"""VAMP sync — data freshness synchronization for the booking admin.

Keeps many independently cached client views consistent with mutations
made by other sessions: per-group version counters on the server, a
WebSocket push channel, a polling fallback, and a client reconciler that
either invalidates cached queries or forces a full reload on critical views.
"""

__version__ = "0.1.0"
