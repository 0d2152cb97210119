"""Async connection pool for PostgreSQL using asyncpg.

One pool per database endpoint. The registry builds one for the primary and
one per read replica; every pool resolves the same entity catalog.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Literal, Self

import asyncpg
from asyncpg import Pool, Record

from ...errors import DatabaseConnectionError, ValidationError
from ...logger import get_logger
from .exceptions import PoolNotInitializedError
from .health import HealthCheckResult
from .store import EntityCatalog, SqlEntityStore, TransactionScope

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from asyncpg.pool import PoolConnectionProxy

    from ...core.protocols import TransactionCallback
    from .config import AsyncpgConfig

logger = get_logger(__name__)

type IsolationLevel = Literal["read_uncommitted", "read_committed", "repeatable_read", "serializable"]


class AsyncConnectionPool:
    """Async connection pool for a single PostgreSQL endpoint.

    Examples
    --------
    >>> async with AsyncConnectionPool(config, catalog) as pool:
    ...     users = await pool.entity("user").find_many(QueryDescriptor(take=10))
    ...     await pool.aexecute("UPDATE users SET name = $1 WHERE id = $2", "Alice", 1)
    """

    __slots__ = ("_catalog", "_config", "_init_lock", "_pool", "_stores")

    def __init__(self, config: AsyncpgConfig, catalog: EntityCatalog | None = None) -> None:
        self._config = config
        self._catalog = catalog or EntityCatalog()
        self._pool: Pool[Record] | None = None
        self._init_lock = asyncio.Lock()
        self._stores = {name: SqlEntityStore(self, self._catalog, name) for name in self._catalog}

    async def __aenter__(self) -> Self:
        await self.ainitialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "AsyncConnectionPool context manager exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.aclose()

    @property
    def endpoint(self) -> str:
        return self._config.endpoint

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> Pool[Record]:
        """Access the underlying asyncpg pool.

        Raises
        ------
        PoolNotInitializedError
            If pool has not been initialized via `ainitialize()`.
        """
        if self._pool is None:
            raise PoolNotInitializedError(f"Pool for {self.endpoint} not initialized. Call ainitialize() first.")
        return self._pool

    async def ainitialize(self) -> None:
        """Create the pool and validate it with a round trip.

        Idempotent; an asyncio lock keeps concurrent callers from creating
        two pools. A pool whose validation query fails is closed again so a
        retry starts from scratch.
        """
        async with self._init_lock:
            if self._pool is not None:
                return

            pool = await asyncpg.create_pool(**self._config.to_pool_params())
            try:
                async with pool.acquire() as conn:
                    await conn.execute("SELECT 1")
            except BaseException:
                await pool.close()
                raise

            self._pool = pool
            logger.info(
                "AsyncConnectionPool initialized",
                endpoint=self.endpoint,
                min_size=self._config.pool.min_size,
                max_size=self._config.pool.max_size,
            )

    async def aclose(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("AsyncConnectionPool closed", endpoint=self.endpoint)

    def entity(self, name: str) -> SqlEntityStore:
        """Return the store for ``name``, built once at construction."""
        try:
            return self._stores[name]
        except KeyError:
            raise ValidationError(f"Unknown entity: {name!r}") from None

    async def ahealth_check(self) -> HealthCheckResult:
        """Check pool health by executing a simple query."""
        if self._pool is None:
            return HealthCheckResult.initializing(pool_max_size=self._config.pool.max_size)

        try:
            started = time.perf_counter()
            async with self._pool.acquire(timeout=self._config.pool.acquire_timeout) as conn:
                await conn.fetchval("SELECT 1")
            latency_ms = (time.perf_counter() - started) * 1000
        except Exception as e:
            return HealthCheckResult.unhealthy(pool_max_size=self._config.pool.max_size, error=str(e))

        return HealthCheckResult.healthy(
            pool_size=self._pool.get_size(),
            pool_max_size=self._pool.get_max_size(),
            pool_idle_size=self._pool.get_idle_size(),
            latency_ms=latency_ms,
        )

    @asynccontextmanager
    async def aacquire(self) -> AsyncIterator[PoolConnectionProxy[Record]]:
        """Acquire a connection from the pool.

        Failures to obtain a connection surface as ``DatabaseConnectionError``;
        errors raised by statements run on the connection propagate unchanged.
        """
        pool = self.pool
        try:
            conn = await pool.acquire(timeout=self._config.pool.acquire_timeout)
        except (OSError, TimeoutError, asyncpg.InterfaceError, asyncpg.PostgresConnectionError) as e:
            raise DatabaseConnectionError(f"Could not acquire a connection to {self.endpoint}", e) from e

        try:
            yield conn
        finally:
            await pool.release(conn)

    @asynccontextmanager
    async def atransaction(
        self,
        isolation: IsolationLevel = "read_committed",
        *,
        readonly: bool = False,
        deferrable: bool = False,
    ) -> AsyncIterator[PoolConnectionProxy[Record]]:
        """Acquire a connection and start a transaction on it."""
        async with (
            self.aacquire() as conn,
            conn.transaction(isolation=isolation, readonly=readonly, deferrable=deferrable),
        ):
            yield conn

    async def arun_transaction[T](self, callback: TransactionCallback[T]) -> T:
        """Run ``callback`` inside one transaction.

        Commit and rollback are asyncpg's: an exception escaping the callback
        rolls back and propagates as-is.
        """
        async with self.atransaction() as conn:
            return await callback(TransactionScope(conn, self._catalog))

    async def aexecute(self, query: str, *args: object, timeout: float | None = None) -> str:
        """Execute a statement and return its status string (e.g. ``"UPDATE 1"``)."""
        async with self.aacquire() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def afetch(self, query: str, *args: object, timeout: float | None = None) -> list[Record]:
        async with self.aacquire() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> Record | None:
        async with self.aacquire() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def afetchval(self, query: str, *args: object, timeout: float | None = None) -> Any:
        async with self.aacquire() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    @property
    def pool_size(self) -> int:
        if self._pool is None:
            return 0
        return self._pool.get_size()

    @property
    def pool_max_size(self) -> int:
        return self._config.pool.max_size
