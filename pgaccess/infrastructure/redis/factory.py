from __future__ import annotations

from .base import BaseRedisClient
from .cluster import RedisClusterClient
from .config import RedisConfig
from .standalone import RedisStandaloneClient


def create_redis_client(config: RedisConfig) -> BaseRedisClient:
    """Create the Redis client matching ``config.cluster``.

    Examples
    --------
    >>> create_redis_client(RedisConfig(url=SecretStr("redis://localhost:6379/0")))
    RedisStandaloneClient
    >>> create_redis_client(RedisConfig(cluster=True, nodes=("node-1:6379", "node-2:6379")))
    RedisClusterClient
    """
    if config.cluster:
        return RedisClusterClient(config)
    return RedisStandaloneClient(config)
