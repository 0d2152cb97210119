"""Write connection plus a rotation of read connections.

Every mutating call goes through the single write connection. Reads rotate
round-robin across the configured replicas; with no replicas the write
connection is the only read entry, so the read pool is never empty.

Round-robin is only strict for sequential callers: two tasks reading the
rotation index before either advances it may get the same replica. Any
replica is an equally valid read target, so that race is accepted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Self

from ...core.enums import HealthCheckStatus
from ...errors import DatabaseConnectionError
from ...logger import get_logger
from ...resilience import RetryConfig, retry
from .health import ClusterHealthResult, ReplicaHealthInfo
from .pool import AsyncConnectionPool
from .store import EntityCatalog

if TYPE_CHECKING:
    import types

    from ...core.protocols import Connection
    from .config import AsyncpgConfig

logger = get_logger(__name__)

type ConnectionFactory = Callable[[AsyncpgConfig, EntityCatalog], Connection]


class ConnectionRegistry:
    """Owns the write connection and the read rotation.

    Examples
    --------
    >>> registry = ConnectionRegistry.from_config(primary_cfg, ["postgresql://replica-1/app"], catalog)
    >>> await registry.aconnect(RetryConfig.from_retry_budget(3))
    >>> await registry.select_for_write().aexecute("UPDATE ...")
    >>> await registry.select_for_read().afetch("SELECT ...")
    """

    __slots__ = ("_configured_reads", "_connected", "_read_index", "_reads", "_write")

    def __init__(self, write: Connection, reads: Sequence[Connection] | None = None) -> None:
        self._write = write
        self._configured_reads: list[Connection] = list(reads or [])
        self._reads: list[Connection] = self._configured_reads or [write]
        self._read_index = 0
        self._connected = False

    async def __aenter__(self) -> Self:
        await self.aconnect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "ConnectionRegistry exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.adisconnect()

    @classmethod
    def from_config(
        cls,
        primary: AsyncpgConfig,
        replica_dsns: Sequence[str] = (),
        catalog: EntityCatalog | None = None,
        connection_factory: ConnectionFactory = AsyncConnectionPool,
    ) -> Self:
        """Build the write connection and one read connection per replica DSN.

        Each replica starts from the primary's configuration with only the
        DSN overridden.
        """
        catalog = catalog if catalog is not None else EntityCatalog()
        write = connection_factory(primary, catalog)
        reads = [connection_factory(primary.for_replica(dsn), catalog) for dsn in replica_dsns]
        return cls(write, reads)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def read_pool(self) -> tuple[Connection, ...]:
        return tuple(self._reads)

    @property
    def has_replicas(self) -> bool:
        return any(conn is not self._write for conn in self._reads)

    def select_for_write(self) -> Connection:
        return self._write

    def select_for_read(self) -> Connection:
        connection = self._reads[self._read_index % len(self._reads)]
        self._read_index = (self._read_index + 1) % len(self._reads)
        return connection

    async def aconnect(self, retry_config: RetryConfig | None = None) -> None:
        """Connect the write connection, retrying per ``retry_config``, then the replicas.

        Raises
        ------
        DatabaseConnectionError
            If the write connection still fails after the last attempt.
            Replica failures are logged and drop that replica from rotation.
        """
        config = retry_config or RetryConfig(max_attempts=1)

        @retry(config)
        async def _connect_write() -> None:
            await self._write.ainitialize()

        try:
            await _connect_write()
        except Exception as e:
            raise DatabaseConnectionError(
                f"Failed to connect to {self._write.endpoint} after {config.max_attempts} attempt(s)", e
            ) from e
        logger.info("Write connection established", endpoint=self._write.endpoint)

        await self._connect_replicas()
        self._connected = True
        logger.info("Connection registry connected", read_pool_size=len(self._reads), replicas=self.has_replicas)

    async def _connect_replicas(self) -> None:
        if not self._configured_reads:
            return

        results = await asyncio.gather(
            *(replica.ainitialize() for replica in self._configured_reads), return_exceptions=True
        )
        available: list[Connection] = []
        for index, (replica, result) in enumerate(zip(self._configured_reads, results, strict=True)):
            if isinstance(result, BaseException):
                logger.warning(
                    "Replica failed to connect, removing from read rotation",
                    replica_index=index,
                    endpoint=replica.endpoint,
                    error=str(result),
                )
            else:
                available.append(replica)

        if not available:
            logger.warning("No replicas available, reads fall back to the write connection")
        self._reads = available or [self._write]
        self._read_index = 0

    async def adisconnect(self) -> None:
        """Close the write connection and every replica.

        Replicas are closed and the registry marked disconnected even when the
        write connection fails to close; that failure is re-raised afterwards.
        """
        try:
            await self._write.aclose()
        finally:
            replicas = [conn for conn in self._configured_reads if conn is not self._write]
            results = await asyncio.gather(*(replica.aclose() for replica in replicas), return_exceptions=True)
            for index, result in enumerate(results):
                if isinstance(result, BaseException):
                    logger.warning("Replica failed to close", replica_index=index, error=str(result))
            self._connected = False

        logger.info("Connection registry disconnected")

    async def aping(self) -> None:
        """Round-trip ``SELECT 1`` against the write connection."""
        await self._write.afetchval("SELECT 1")

    async def ahealth_check(self) -> ClusterHealthResult:
        """Aggregate health of the write connection and the replicas in rotation."""
        primary_health = await self._write.ahealth_check()

        replicas = [conn for conn in self._reads if conn is not self._write]
        health_results = await asyncio.gather(
            *(replica.ahealth_check() for replica in replicas),
            return_exceptions=True,
        )

        replica_infos: list[ReplicaHealthInfo] = []
        healthy_count = 0
        for replica, result in zip(replicas, health_results, strict=True):
            if isinstance(result, BaseException):
                replica_infos.append(
                    ReplicaHealthInfo(
                        endpoint=replica.endpoint,
                        status=HealthCheckStatus.UNHEALTHY,
                        pool_size=0,
                        pool_max_size=0,
                        message=str(result),
                    )
                )
                continue

            if result.status == HealthCheckStatus.HEALTHY:
                healthy_count += 1
            replica_infos.append(
                ReplicaHealthInfo(
                    endpoint=replica.endpoint,
                    status=result.status,
                    pool_size=result.pool_size,
                    pool_max_size=result.pool_max_size,
                    pool_idle_size=result.pool_idle_size,
                    latency_ms=result.latency_ms,
                    message=result.message,
                )
            )

        if primary_health.status != HealthCheckStatus.HEALTHY:
            overall_status = HealthCheckStatus.UNHEALTHY
        elif healthy_count < len(replicas):
            overall_status = HealthCheckStatus.DEGRADED
        else:
            overall_status = HealthCheckStatus.HEALTHY

        return ClusterHealthResult(
            status=overall_status,
            primary=primary_health,
            replicas=tuple(replica_infos),
            healthy_replica_count=healthy_count,
            total_replica_count=len(replicas),
        )
