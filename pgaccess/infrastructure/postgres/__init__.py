"""PostgreSQL infrastructure with asyncpg.

This module provides:

- `AsyncConnectionPool`: Connection pool for one database endpoint
- `ConnectionRegistry`: One write connection plus a round-robin read rotation
- `EntityCatalog` / `SqlEntityStore`: Per-entity CRUD compiled to SQL

Usage
-----
::

    catalog = EntityCatalog({"user": EntitySettings(table="users")})
    registry = ConnectionRegistry.from_config(primary_cfg, replica_dsns, catalog)
    async with registry:
        await registry.select_for_write().entity("user").update({"id": 1}, {"name": "Alice"})
        rows = await registry.select_for_read().entity("user").find_many(QueryDescriptor(take=10))
"""

from .config import (
    AsyncpgConfig,
    AsyncpgPoolSettings,
    AsyncpgServerSettings,
    AsyncpgStatementCacheSettings,
    EntitySettings,
    RelationSettings,
)
from .exceptions import PoolNotInitializedError
from .health import ClusterHealthResult, HealthCheckResult, PoolHealthBase, ReplicaHealthInfo
from .pool import AsyncConnectionPool, IsolationLevel
from .registry import ConnectionFactory, ConnectionRegistry
from .store import EntityCatalog, SqlEntityStore, TransactionScope

__all__ = [
    "AsyncConnectionPool",
    "AsyncpgConfig",
    "AsyncpgPoolSettings",
    "AsyncpgServerSettings",
    "AsyncpgStatementCacheSettings",
    "ClusterHealthResult",
    "ConnectionFactory",
    "ConnectionRegistry",
    "EntityCatalog",
    "EntitySettings",
    "HealthCheckResult",
    "IsolationLevel",
    "PoolHealthBase",
    "PoolNotInitializedError",
    "RelationSettings",
    "ReplicaHealthInfo",
    "SqlEntityStore",
    "TransactionScope",
]
