"""Real-time infrastructure — broadcaster + WebSocket.

Learn: Events flow through two hops:
1. VersionService → Broadcaster.publish (in-process or Redis PUBLISH)
2. Broadcaster subscription → WebSocket → client NotificationChannel

This decouples the mutation path from the set of connected sockets.
"""
