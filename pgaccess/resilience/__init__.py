from __future__ import annotations

from .config import RetryConfig
from .retry import Retry, log_before_sleep, retry
from .types import RetryLogicError

__all__ = [
    "Retry",
    "RetryConfig",
    "RetryLogicError",
    "log_before_sleep",
    "retry",
]
