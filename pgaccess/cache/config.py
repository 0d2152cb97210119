from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..infrastructure.redis.config import RedisConfig


class CacheSettings(BaseModel):
    """Cache-aside settings for :class:`~pgaccess.cache.service.EntityCache`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    redis: RedisConfig = Field(default_factory=RedisConfig)

    # Expiry and size
    ttl_seconds: int = Field(default=3600, ge=1, description="Default TTL applied by set()")
    max_size: int = Field(default=10_000, ge=1, description="Store size at which set() evicts first")
    eviction_batch_size: int = Field(
        default=10,
        ge=1,
        description="Number of least-recently-touched keys removed per eviction pass",
    )
    invalidate_on_write: bool = Field(
        default=False,
        description="Drop the cached entry after the adapter mutates a row",
    )

    # Keys
    key_prefix: str = Field(default="pgaccess:", description="Prefix for every cache key")
    access_index_key: str = Field(
        default="cache:access",
        min_length=1,
        description="Sorted set (under key_prefix) scoring keys by last-touch time",
    )

    @model_validator(mode="after")
    def _require_store_when_enabled(self) -> Self:
        if self.enabled and not self.redis.is_configured:
            raise ValueError("cache.enabled requires cache.redis.url (or cluster nodes)")
        return self

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}{self.access_index_key}"

    def entry_key(self, entity: str, entity_id: object) -> str:
        """Generate the value key for one entity row.

        Returns
        -------
        str
            Redis key in format ``"{prefix}{entity}:{id}"``.
        """
        return f"{self.key_prefix}{entity}:{entity_id}"

    def entity_pattern(self, entity: str) -> str:
        return f"{self.key_prefix}{entity}:*"
