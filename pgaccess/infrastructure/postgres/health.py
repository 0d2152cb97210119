from __future__ import annotations

from datetime import datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ...core.enums import HealthCheckStatus


class PoolHealthBase(BaseModel):
    """Base health metrics shared by the write pool and replica pools."""

    model_config = ConfigDict(frozen=True)

    status: HealthCheckStatus
    pool_size: int
    pool_max_size: int
    pool_idle_size: int = 0
    latency_ms: float | None = None
    message: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pool_utilization_pct(self) -> float:
        """Pool utilization as percentage."""
        if self.pool_max_size == 0:
            return 0.0
        return (self.pool_size / self.pool_max_size) * 100

    def is_healthy(self) -> bool:
        return self.status == HealthCheckStatus.HEALTHY


class ReplicaHealthInfo(PoolHealthBase):
    """Health information for one read replica."""

    endpoint: str


class HealthCheckResult(PoolHealthBase):
    """Result of a health check against a single pool."""

    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def initializing(cls, pool_max_size: int) -> Self:
        return cls(
            status=HealthCheckStatus.INITIALIZING,
            pool_size=0,
            pool_max_size=pool_max_size,
            message="Pool not initialized",
        )

    @classmethod
    def unhealthy(cls, pool_max_size: int, error: str) -> Self:
        return cls(
            status=HealthCheckStatus.UNHEALTHY,
            pool_size=0,
            pool_max_size=pool_max_size,
            message=error,
        )

    @classmethod
    def healthy(cls, pool_size: int, pool_max_size: int, pool_idle_size: int, latency_ms: float) -> Self:
        return cls(
            status=HealthCheckStatus.HEALTHY,
            pool_size=pool_size,
            pool_max_size=pool_max_size,
            pool_idle_size=pool_idle_size,
            latency_ms=latency_ms,
            message="Pool is healthy",
        )


class ClusterHealthResult(BaseModel):
    """Health of the write connection plus every read replica in rotation."""

    model_config = ConfigDict(frozen=True)

    status: HealthCheckStatus
    primary: HealthCheckResult
    replicas: tuple[ReplicaHealthInfo, ...]
    healthy_replica_count: int
    total_replica_count: int

    @property
    def is_healthy(self) -> bool:
        """Primary and all replicas healthy."""
        return self.status == HealthCheckStatus.HEALTHY

    @property
    def is_operational(self) -> bool:
        """Primary healthy, so writes can be served."""
        return self.primary.status == HealthCheckStatus.HEALTHY
