"""Core module exports."""

from __future__ import annotations

from .enums import ErrorKind, HealthCheckStatus, QueryMode

__all__ = [
    "ErrorKind",
    "HealthCheckStatus",
    "QueryMode",
]
