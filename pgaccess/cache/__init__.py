"""Redis-backed cache-aside layer for entity rows."""

from __future__ import annotations

from .config import CacheSettings
from .service import EntityCache
from .stats import CacheCounters, CacheStats, CacheStatsSnapshot

__all__ = [
    "CacheCounters",
    "CacheSettings",
    "CacheStats",
    "CacheStatsSnapshot",
    "EntityCache",
]
