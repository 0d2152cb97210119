from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, cast

from redis.asyncio.cluster import RedisCluster

from ...logger import get_logger
from .base import BaseRedisClient

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .config import RedisConfig

logger: BoundLogger = get_logger(__name__)


class RedisClusterClient(BaseRedisClient):
    """Redis client for cluster mode.

    RedisCluster manages its own connection pool internally (one per node).

    Notes
    -----
    - Database selection is not supported in cluster mode (always db 0)
    - MULTI/EXEC pipelines are not used; cluster pipelines are plain batches
    """

    def __init__(self, config: RedisConfig) -> None:
        super().__init__(config)

    @property
    def is_cluster(self) -> bool:
        return True

    async def ainitialize(self) -> None:
        """Initialize the Redis cluster client."""
        async with self._init_lock:
            if self._client is not None:
                return

            kwargs = self.config.get_cluster_kwargs()
            if "startup_nodes" in kwargs:
                self._client = RedisCluster(**kwargs)
            else:
                self._client = RedisCluster.from_url(self.config.url_value, **kwargs)

            try:
                await cast(Awaitable[bool], self._client.ping())
                logger.info(
                    "Redis cluster client initialized",
                    endpoint=self.config.endpoint,
                    read_from_replicas=self.config.cluster_options.read_from_replicas,
                )
            except Exception as e:
                logger.error("Failed to initialize Redis cluster client", exc_info=e)
                await self.aclose()
                raise

    async def aclose(self) -> None:
        """Close the Redis cluster client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.info("Redis cluster client closed")
