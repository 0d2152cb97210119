"""Single entry point for consumers: routing, queries, transactions, soft delete.

Reads rotate across replicas, writes and transactions go to the primary.
Caching is cache-aside: callers wrap adapter reads with an
:class:`~pgaccess.cache.EntityCache`, either passed in or built from
``cache`` settings when ``cache.enabled`` is set. The adapter only drops
entries after a soft delete when ``cache.invalidate_on_write`` is set.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from .cache import EntityCache
from .config import AdapterConfig, load_config
from .errors import CacheError
from .infrastructure.postgres import AsyncConnectionPool, ConnectionRegistry, EntityCatalog
from .infrastructure.redis import create_redis_client
from .logger import EventLogger, get_logger
from .query import CURRENT_TIMESTAMP, QueryBuilder, QueryOptions

if TYPE_CHECKING:
    import types
    from collections.abc import Sequence
    from .core.protocols import EntityStore, MetricsSink, Row, TransactionCallback
    from .infrastructure.postgres import ClusterHealthResult
    from .infrastructure.postgres.registry import ConnectionFactory

logger = get_logger(__name__)


class DatabaseAdapter:
    """Data-access facade over a :class:`ConnectionRegistry`.

    Examples
    --------
    >>> async with DatabaseAdapter(load_config(url=DATABASE_URL, entities={"user": {"table": "users"}})) as db:
    ...     active = await db.query("user", QueryOptions(where={"status": "active"}, per_page=20, page=2))
    ...     total = await db.query("user", QueryOptions(count=True))
    ...     await db.soft_delete("user", 42)
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        cache: EntityCache | None = None,
        monitor: MetricsSink | None = None,
        connection_factory: ConnectionFactory = AsyncConnectionPool,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self._config = config if config is not None else load_config()
        self._catalog = EntityCatalog(self._config.entities)
        self._registry = registry or ConnectionRegistry.from_config(
            self._config.to_asyncpg_config(),
            self._config.replica_dsns(),
            self._catalog,
            connection_factory,
        )
        self._monitor = monitor
        self._events = EventLogger(logger, self._config.log, self._config.error_format)

        # A cache built from settings is ours to open and close
        self._owns_cache = cache is None and self._config.cache.enabled
        if self._owns_cache:
            cache = EntityCache(create_redis_client(self._config.cache.redis), self._config.cache)
        if cache is not None and cache.source is None:
            cache.bind_source(self)
        self._cache = cache

    async def __aenter__(self) -> Self:
        await self.aconnect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.adisconnect()

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def catalog(self) -> EntityCatalog:
        return self._catalog

    @property
    def cache(self) -> EntityCache | None:
        return self._cache

    @property
    def is_connected(self) -> bool:
        return self._registry.is_connected

    async def aconnect(self, retries: int | None = None) -> None:
        """Connect the primary (retrying ``retries`` extra times) and the replicas.

        ``retries`` defaults to the configured budget; ``0`` means one attempt.
        A cache built from settings has its Redis client opened afterwards.

        Raises
        ------
        DatabaseConnectionError
            If the primary is still unreachable after the last attempt.
        CacheError
            If the owned cache's Redis client cannot be opened. The database
            connections are closed again first.
        """
        retry_config = self._config.retry_config(retries)
        try:
            await self._registry.aconnect(retry_config)
        except Exception as e:
            self._events.error("Database connection failed", e, attempts=retry_config.max_attempts)
            raise

        if self._owns_cache and self._cache is not None:
            await self._aconnect_cache(self._cache)

        self._events.info(
            "Database adapter connected",
            read_pool_size=len(self._registry.read_pool),
            replicas=self._registry.has_replicas,
        )

    async def _aconnect_cache(self, cache: EntityCache) -> None:
        try:
            await cache.redis_client.ainitialize()
        except Exception as e:
            self._events.error("Cache connection failed", e)
            await self._registry.adisconnect()
            raise CacheError("Failed to connect the cache", cause=e) from e

    async def adisconnect(self) -> None:
        try:
            await self._registry.adisconnect()
        finally:
            if self._owns_cache and self._cache is not None:
                await self._cache.redis_client.aclose()
        self._events.info("Database adapter disconnected")

    def entity(self, name: str, *, write: bool = False) -> EntityStore:
        """Store for ``name`` on the write connection or the next replica."""
        connection = self._registry.select_for_write() if write else self._registry.select_for_read()
        return connection.entity(name)

    def query_builder(self, entity: str, options: QueryOptions | None = None) -> QueryBuilder:
        """Builder seeded with ``options`` on the connection ``options.write`` selects.

        Soft-deleted rows are filtered out when soft delete is enabled, unless
        ``with_deleted`` is set or the filter already names the column.
        """
        options = options or QueryOptions()
        connection = self._registry.select_for_write() if options.write else self._registry.select_for_read()
        builder = QueryBuilder(
            connection,
            entity,
            options,
            timeout_ms=self._config.query_timeout_ms,
            events=self._events,
            metrics=self._monitor,
        )

        field = self._config.soft_delete_field
        if self._config.soft_delete and not options.with_deleted and field not in builder.descriptor.where:
            builder.where({field: None})
        return builder

    async def query(self, entity: str, options: QueryOptions | None = None) -> int | Row | list[Any] | None:
        """Run a structured query.

        Returns a count with ``count=True``, one row or ``None`` with
        ``single=True``, otherwise a list of rows.
        """
        return await self.query_builder(entity, options).execute()

    async def execute(self, query: str, params: Sequence[Any] = ()) -> str:
        """Run any statement on the write connection and return its status string."""
        return await self._registry.select_for_write().aexecute(query, *params)

    async def transaction[T](self, callback: TransactionCallback[T]) -> T:
        """Run ``callback`` in a transaction on the write connection.

        The callback receives a connection-scoped handle. Rollback on error and
        commit on success are the driver's; failures propagate unchanged.
        """
        return await self._registry.select_for_write().arun_transaction(callback)

    async def soft_delete(self, entity: str, entity_id: Any) -> bool:
        """Stamp the soft-delete column of one row instead of deleting it.

        Returns ``False`` rather than raising on any failure, and when no row
        matched.
        """
        try:
            primary_key = self._catalog.resolve(entity).primary_key
            updated = await self.entity(entity, write=True).update(
                {primary_key: entity_id},
                {self._config.soft_delete_field: CURRENT_TIMESTAMP},
            )
        except Exception as e:
            self._events.error("Soft delete failed", e, entity=entity, entity_id=str(entity_id))
            return False

        if not updated:
            self._events.warn("Soft delete matched no rows", entity=entity, entity_id=str(entity_id))
            return False

        if self._cache is not None and self._cache.settings.invalidate_on_write:
            try:
                await self._cache.delete(entity, entity_id)
            except CacheError as e:
                self._events.warn("Cache invalidation after soft delete failed", entity=entity, error=str(e))
        return True

    async def check_connection_pool(self) -> bool:
        """Round-trip ``SELECT 1`` on the primary; never raises."""
        try:
            await self._registry.aping()
        except Exception as e:
            self._events.error("Connection pool health check failed", e)
            return False
        return True

    async def health_check(self) -> ClusterHealthResult:
        return await self._registry.ahealth_check()
