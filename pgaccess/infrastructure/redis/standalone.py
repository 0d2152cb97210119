from __future__ import annotations

from typing import TYPE_CHECKING, cast

from redis.asyncio import ConnectionPool, Redis

from ...logger import get_logger
from .base import AsyncCloseable, BaseRedisClient, RedisCommands

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .config import RedisConfig

logger: BoundLogger = get_logger(__name__)


class RedisStandaloneClient(BaseRedisClient):
    """Redis client for a single node with an explicit connection pool.

    Examples
    --------
    >>> client = RedisStandaloneClient(RedisConfig(url=SecretStr("redis://localhost:6379/0")))
    >>> await client.ainitialize()
    >>> await client.aclose()
    """

    def __init__(self, config: RedisConfig) -> None:
        super().__init__(config)
        self._pool: ConnectionPool | None = None

    @property
    def is_cluster(self) -> bool:
        return False

    async def ainitialize(self) -> None:
        """Initialize the Redis standalone client with connection pool."""
        async with self._init_lock:
            if self._client is not None:
                return

            self._pool = ConnectionPool.from_url(self.config.url_value, **self.config.get_connection_pool_kwargs())
            self._client = Redis(connection_pool=self._pool)

            try:
                await cast(RedisCommands, self._client).ping()
                logger.info("Redis standalone client initialized", endpoint=self.config.endpoint)
            except Exception as e:
                logger.error("Failed to initialize Redis standalone client", exc_info=e)
                await self.aclose()
                raise

    async def aclose(self) -> None:
        """Close the Redis client and connection pool."""
        if self._client is not None:
            await cast(AsyncCloseable, self._client).aclose()
            self._client = None

        if self._pool is not None:
            await cast(AsyncCloseable, self._pool).aclose()
            self._pool = None

        logger.info("Redis standalone client closed")
