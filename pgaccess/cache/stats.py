from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


class CacheCounters:
    """Hit/miss/eviction counters owned by one cache instance."""

    __slots__ = ("evictions", "hits", "misses")

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses


class CacheStats(BaseModel):
    """Point-in-time counters; rates are 0.0 before the first lookup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hits: int = Field(ge=0)
    misses: int = Field(ge=0)
    evictions: int = Field(ge=0)

    @classmethod
    def from_counters(cls, counters: CacheCounters) -> CacheStats:
        return cls(hits=counters.hits, misses=counters.misses, evictions=counters.evictions)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.hits + self.misses

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hit_rate(self) -> float:
        return _rate(self.hits, self.total)


class CacheStatsSnapshot(CacheStats):
    """Counters plus derived rates and the store size at read time."""

    size: int = Field(ge=0, description="Keys in the store (DBSIZE)")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def miss_rate(self) -> float:
        return _rate(self.misses, self.total)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def eviction_rate(self) -> float:
        return _rate(self.evictions, self.total)
