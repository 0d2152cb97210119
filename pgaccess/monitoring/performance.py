"""Per-operation latency tracking.

A :class:`PerformanceMonitor` is constructed explicitly and passed to whoever
times operations; it satisfies :class:`~pgaccess.core.protocols.MetricsSink`.
Durations are kept per ``entity:operation`` key for the monitor's lifetime.

.. warning::
    Per-key duration history is never trimmed. A long-running process with
    many distinct keys grows without bound; only the slow-query log is capped.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ..logger import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 1000.0
SLOW_QUERY_LOG_SIZE = 100
HISTOGRAM_BOUNDARIES_MS: tuple[int, ...] = (10, 50, 100, 500, 1000, 5000)


class OperationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    count: int
    avg_ms: float
    min_ms: float
    max_ms: float


class SlowQuery(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity: str
    operation: str
    duration_ms: float


class PerformanceReport(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    metrics: dict[str, OperationMetrics] = Field(default_factory=dict)
    slow_queries: tuple[SlowQuery, ...] = ()


class PerformanceMonitor:
    """Collects duration samples and surfaces slow operations.

    Examples
    --------
    >>> monitor = PerformanceMonitor()
    >>> start = time.perf_counter()
    >>> rows = await db.query("user", QueryOptions(take=10))
    >>> monitor.track_query("user", "find_many", start)
    >>> monitor.get_metrics().metrics["user:find_many"].count
    1
    """

    def __init__(self, slow_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS) -> None:
        self._slow_threshold_ms = slow_threshold_ms
        self._durations: defaultdict[str, list[float]] = defaultdict(list)
        self._slow_queries: deque[SlowQuery] = deque(maxlen=SLOW_QUERY_LOG_SIZE)

    def record(self, key: str, duration_ms: float) -> None:
        self._durations[key].append(duration_ms)
        if duration_ms > self._slow_threshold_ms:
            entity, _, operation = key.partition(":")
            self._slow_queries.append(SlowQuery(entity=entity, operation=operation, duration_ms=duration_ms))
            logger.warning("Slow query", key=key, duration_ms=round(duration_ms, 2))

    def track_query(self, entity: str, operation: str, start_time: float) -> float:
        """Record the time elapsed since ``start_time`` (a ``time.perf_counter()`` value)."""
        duration_ms = (time.perf_counter() - start_time) * 1000
        self.record(f"{entity}:{operation}", duration_ms)
        return duration_ms

    @asynccontextmanager
    async def atrack(self, entity: str, operation: str) -> AsyncIterator[None]:
        """Time the enclosed block, recording it even when it raises."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.track_query(entity, operation, start_time)

    def get_metrics(self) -> PerformanceReport:
        metrics = {
            key: OperationMetrics(
                count=len(durations),
                avg_ms=sum(durations) / len(durations),
                min_ms=min(durations),
                max_ms=max(durations),
            )
            for key, durations in self._durations.items()
            if durations
        }
        return PerformanceReport(metrics=metrics, slow_queries=tuple(self._slow_queries))


class QueryTimingHistogram:
    """Counts durations into ``<=10ms`` ... ``<=5000ms`` buckets plus ``slow``."""

    def __init__(self, boundaries_ms: tuple[int, ...] = HISTOGRAM_BOUNDARIES_MS) -> None:
        self._boundaries_ms = tuple(sorted(boundaries_ms))
        self._buckets: dict[str, int] = {}

    def record(self, duration_ms: float) -> str:
        bucket = next((f"<={bound}ms" for bound in self._boundaries_ms if duration_ms <= bound), "slow")
        self._buckets[bucket] = self._buckets.get(bucket, 0) + 1
        return bucket

    def get_distribution(self) -> dict[str, int]:
        return dict(self._buckets)
