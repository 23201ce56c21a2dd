"""Server-side version counters, one per entity group."""
