"""Film diary social backend: connections, engagement counters, activity feed and viewing stats."""

__version__ = "0.1.0"
