from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field


class RetryConfig(BaseModel):
    """Retry policy with exponential backoff and full jitter.

    See: https://aws.amazon.com/blogs/architecture/exponential-backoff-and-jitter/
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, including the first call")
    wait_min: float = Field(default=0.1, ge=0, description="Minimum wait time in seconds")
    wait_max: float = Field(default=2.0, ge=0, description="Maximum wait time in seconds")
    multiplier: float = Field(default=1.0, ge=0, description="Wait multiplier")
    exp_base: float = Field(default=2.0, ge=1, description="Exponential base")

    retry_on_exceptions: tuple[type[Exception], ...] | None = Field(
        default=None,
        description="Exception types that trigger retry (None = all exceptions)",
    )
    never_retry_on: tuple[type[Exception], ...] | None = Field(
        default=None,
        description="Exception types that are never retried (takes precedence over retry_on_exceptions)",
    )

    reraise: bool = Field(default=True, description="Reraise the last exception after all attempts fail")

    @classmethod
    def from_retry_budget(cls, retries: int, *, wait_min: float = 0.1, wait_max: float = 2.0) -> Self:
        """Build a config from a retry budget, where ``0`` means a single attempt."""
        return cls(max_attempts=max(retries, 0) + 1, wait_min=wait_min, wait_max=wait_max)
