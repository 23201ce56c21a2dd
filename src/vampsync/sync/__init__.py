"""Shared sync vocabulary — registry, key mapping and push messages.

Used by both sides: the server normalizes keys before bumping, the client
normalizes snapshots and push entities before reconciling.
"""
