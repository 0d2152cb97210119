"""Async PostgreSQL data-access layer.

Replica-aware routing, a fluent query builder, a Redis-backed cache-aside
store and per-operation latency tracking.
"""

from __future__ import annotations

from .adapter import DatabaseAdapter
from .cache import CacheSettings, CacheStats, CacheStatsSnapshot, EntityCache
from .config import AdapterConfig, load_config
from .core import ErrorKind, HealthCheckStatus, QueryMode
from .errors import (
    CacheError,
    DataAccessError,
    DatabaseConnectionError,
    QueryTimeoutError,
    ReplicationError,
    SecurityError,
    ValidationError,
)
from .infrastructure.postgres import ConnectionRegistry, EntityCatalog, EntitySettings, RelationSettings
from .infrastructure.redis import RedisConfig, create_redis_client
from .monitoring import PerformanceMonitor, QueryTimingHistogram
from .query import QueryBuilder, QueryDescriptor, QueryOptions

__all__ = [
    # Facade
    "AdapterConfig",
    "DatabaseAdapter",
    "load_config",
    # Routing
    "ConnectionRegistry",
    "EntityCatalog",
    "EntitySettings",
    "RelationSettings",
    # Queries
    "QueryBuilder",
    "QueryDescriptor",
    "QueryMode",
    "QueryOptions",
    # Cache
    "CacheSettings",
    "CacheStats",
    "CacheStatsSnapshot",
    "EntityCache",
    "RedisConfig",
    "create_redis_client",
    # Monitoring
    "PerformanceMonitor",
    "QueryTimingHistogram",
    # Errors
    "CacheError",
    "DataAccessError",
    "DatabaseConnectionError",
    "ErrorKind",
    "HealthCheckStatus",
    "QueryTimeoutError",
    "ReplicationError",
    "SecurityError",
    "ValidationError",
]
