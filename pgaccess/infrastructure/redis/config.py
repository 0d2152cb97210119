from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from redis.asyncio.cluster import ClusterNode


class RedisPoolSettings(BaseModel):
    """Redis connection pool settings (standalone mode)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_connections: int = Field(default=50, ge=1, le=1000, description="Maximum connections in pool")
    health_check_interval: int = Field(default=30, ge=0, le=300, description="Health check interval in seconds")


class RedisDriverSettings(BaseModel):
    """Redis driver-specific settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    socket_keepalive: bool = Field(default=True, description="Enable TCP keepalive")
    socket_timeout: float = Field(default=1.0, ge=0.1, le=60.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=60.0, description="Socket connect timeout in seconds")
    retry_on_timeout: bool = Field(default=True, description="Retry operations on timeout")
    decode_responses: bool = Field(default=True, description="Decode responses to strings instead of bytes")


class RedisClusterSettings(BaseModel):
    """Redis Cluster settings, used when ``RedisConfig.cluster`` is enabled."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    require_full_coverage: bool = Field(
        default=False,
        description="Require all hash slots to be covered (set False during scaling)",
    )
    read_from_replicas: bool = Field(
        default=False,
        description="Distribute read commands across replicas for better read throughput",
    )


class RedisConfig(BaseModel):
    """Connection settings for the cache store.

    ``url`` is a standard ``redis://`` / ``rediss://`` URL. In cluster mode,
    ``nodes`` lists ``host:port`` seed nodes; credentials still come from
    ``url`` when it is set, and ``url`` alone is used as the seed when
    ``nodes`` is empty.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: SecretStr | None = None
    cluster: bool = False
    nodes: tuple[str, ...] = ()
    pool: RedisPoolSettings = Field(default_factory=RedisPoolSettings)
    driver: RedisDriverSettings = Field(default_factory=RedisDriverSettings)
    cluster_options: RedisClusterSettings = Field(default_factory=RedisClusterSettings)

    @field_validator("nodes")
    @classmethod
    def _check_nodes(cls, nodes: tuple[str, ...]) -> tuple[str, ...]:
        for node in nodes:
            host, sep, port = node.rpartition(":")
            if not sep or not host or not port.isdigit():
                raise ValueError(f"Cluster node must be host:port, got {node!r}")
        return nodes

    @property
    def is_configured(self) -> bool:
        return self.url is not None or (self.cluster and bool(self.nodes))

    @property
    def url_value(self) -> str:
        if self.url is None:
            raise ValueError("Redis URL not configured")
        return self.url.get_secret_value()

    @property
    def endpoint(self) -> str:
        """Host and port of the store, safe to log."""
        if self.url is None:
            return ",".join(self.nodes)
        parts = urlsplit(self.url_value)
        return f"{parts.hostname or 'localhost'}:{parts.port or 6379}"

    def startup_nodes(self) -> list[ClusterNode]:
        nodes: list[ClusterNode] = []
        for node in self.nodes:
            host, _, port = node.rpartition(":")
            nodes.append(ClusterNode(host, int(port)))
        return nodes

    def get_connection_pool_kwargs(self) -> dict[str, Any]:
        """Get kwargs for ``redis.asyncio.ConnectionPool.from_url(url, **kwargs)``."""
        return {
            **self.pool.model_dump(),
            **self.driver.model_dump(),
        }

    def get_cluster_kwargs(self) -> dict[str, Any]:
        """Get kwargs for ``redis.asyncio.cluster.RedisCluster``.

        RedisCluster manages its own connection pool per node, so pool settings
        are not included. With explicit ``nodes`` the credentials are lifted
        from ``url``.
        """
        kwargs: dict[str, Any] = {
            **self.cluster_options.model_dump(),
            **self.driver.model_dump(exclude={"retry_on_timeout"}),
        }

        if self.nodes:
            kwargs["startup_nodes"] = self.startup_nodes()
            if self.url is not None:
                parts = urlsplit(self.url_value)
                kwargs["username"] = parts.username
                kwargs["password"] = parts.password
                kwargs["ssl"] = parts.scheme == "rediss"

        return kwargs
