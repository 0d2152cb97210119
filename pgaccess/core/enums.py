from __future__ import annotations

from enum import StrEnum


class HealthCheckStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    INITIALIZING = "initializing"


class ErrorKind(StrEnum):
    """Tag carried by every ``DataAccessError`` for ``match``-based dispatch."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    SECURITY = "security"
    CACHE = "cache"
    REPLICATION = "replication"


class QueryMode(StrEnum):
    LIST = "list"
    SINGLE = "single"
    COUNT = "count"
