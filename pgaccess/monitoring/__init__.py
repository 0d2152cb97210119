from __future__ import annotations

from .performance import (
    OperationMetrics,
    PerformanceMonitor,
    PerformanceReport,
    QueryTimingHistogram,
    SlowQuery,
)

__all__ = [
    "OperationMetrics",
    "PerformanceMonitor",
    "PerformanceReport",
    "QueryTimingHistogram",
    "SlowQuery",
]
