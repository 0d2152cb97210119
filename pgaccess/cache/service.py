from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, Awaitable, cast

from pydantic_core import from_json, to_json
from redis.exceptions import RedisError

from ..errors import CacheError
from ..logger import get_logger
from ..query.descriptor import QueryDescriptor
from .config import CacheSettings
from .stats import CacheCounters, CacheStats, CacheStatsSnapshot

if TYPE_CHECKING:
    from redis.asyncio.client import Pipeline
    from redis.asyncio.cluster import ClusterPipeline
    from structlog.stdlib import BoundLogger

    from ..core.protocols import EntitySource, Row
    from ..infrastructure.redis.base import BaseRedisClient, RedisClientType

logger: BoundLogger = get_logger(__name__)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class EntityCache:
    """Cache-aside store for entity rows keyed by ``(entity, id)``.

    Every value written through :meth:`set` has a companion member in a
    sorted-set access index scored by last-touch time (ms). When the store
    holds ``max_size`` keys or more, :meth:`set` first evicts the
    ``eviction_batch_size`` lowest-scored keys. Value and index entry are
    always removed together in one pipeline.

    Usage Pattern
    -------------
    ```python
    cache = EntityCache(redis_client, settings, source=db)

    user = await cache.get("user", 1)
    if user is None:
        user = await db.query("user", QueryOptions(where={"id": 1}, single=True))
        await cache.set("user", 1, user)

    await cache.warm_cache("user", [1, 2, 3])
    await cache.invalidate_model("user")
    ```

    Notes
    -----
    - Eviction-then-write is not transactional; concurrent writers may both
      evict, which removes extra cold keys but never corrupts entries.
    - ``invalidate_model`` scans then deletes; keys created in between survive.
    - A miss drops the key's index member. A concurrent ``set`` landing between
      the read and the drop leaves its value unindexed until the TTL expires.
    """

    def __init__(
        self,
        redis_client: BaseRedisClient,
        settings: CacheSettings | None = None,
        source: EntitySource | None = None,
    ) -> None:
        self._redis_client = redis_client
        self._settings = settings or CacheSettings()
        self._source = source
        self._counters = CacheCounters()

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    @property
    def redis_client(self) -> BaseRedisClient:
        return self._redis_client

    @property
    def source(self) -> EntitySource | None:
        return self._source

    def bind_source(self, source: EntitySource) -> None:
        """Attach the connection used by :meth:`warm_cache`."""
        self._source = source

    def _pipeline(self, client: RedisClientType) -> Pipeline | ClusterPipeline:
        # Cluster pipelines are plain batches split per node
        if self._redis_client.is_cluster:
            return client.pipeline()
        return client.pipeline(transaction=True)

    async def get(self, entity: str, entity_id: object) -> Any | None:
        """Return the cached value, or ``None`` on a miss.

        Store failures degrade to a miss. A hit refreshes the key's
        access-order score; a missing value drops its index member.
        """
        key = self._settings.entry_key(entity, entity_id)

        try:
            async with self._redis_client.aget_client() as client:
                raw = await cast(Awaitable[Any], client.get(key))
                value = None if raw is None else from_json(raw)
                await self._touch(
                    client,
                    hits=[key] if value is not None else [],
                    expired=[key] if raw is None else [],
                )
        except (RedisError, ValueError) as e:
            logger.warning("Cache read failed, treating as miss", key=key, error=str(e))
            value = None

        self._count_lookup(value)
        return value

    async def mget(self, entity: str, ids: Sequence[object]) -> list[Any | None]:
        """Batched :meth:`get`; a failing key resolves to ``None`` on its own."""
        if not ids:
            return []

        keys = [self._settings.entry_key(entity, entity_id) for entity_id in ids]
        try:
            async with self._redis_client.aget_client() as client:
                pipe = client.pipeline(transaction=False)
                for key in keys:
                    pipe.get(key)
                raw_values: list[Any] = await pipe.execute(raise_on_error=False)
                values = [self._decode(key, raw) for key, raw in zip(keys, raw_values, strict=True)]
                await self._touch(
                    client,
                    hits=[key for key, value in zip(keys, values, strict=True) if value is not None],
                    expired=[key for key, raw in zip(keys, raw_values, strict=True) if raw is None],
                )
        except RedisError as e:
            logger.warning("Cache batch read failed, treating all keys as misses", entity=entity, error=str(e))
            values = [None] * len(keys)

        for value in values:
            self._count_lookup(value)
        return values

    def _decode(self, key: str, raw: Any) -> Any | None:
        if isinstance(raw, Exception):
            logger.warning("Cache read failed for key", key=key, error=str(raw))
            return None
        if raw is None:
            return None
        try:
            return from_json(raw)
        except ValueError as e:
            logger.warning("Cache entry is not valid JSON", key=key, error=str(e))
            return None

    def _count_lookup(self, value: Any | None) -> None:
        if value is None:
            self._counters.misses += 1
        else:
            self._counters.hits += 1

    async def _touch(self, client: RedisClientType, *, hits: Sequence[str], expired: Sequence[str]) -> None:
        """Refresh the access-order score of ``hits`` and drop index members of ``expired``.

        An expired key's index member would otherwise sit in the index forever
        and never be picked for eviction. Failures are logged; the read that
        triggered the update still succeeds.
        """
        if not hits and not expired:
            return

        index_key = self._settings.index_key
        pipe = self._pipeline(client)
        if hits:
            pipe.zadd(index_key, dict.fromkeys(hits, _now_ms()), xx=True)
        if expired:
            pipe.zrem(index_key, *expired)
        try:
            await pipe.execute()
        except RedisError as e:
            logger.warning("Cache access-order update failed", keys=len(hits) + len(expired), error=str(e))

    async def set(self, entity: str, entity_id: object, value: Any, ttl: int | None = None) -> None:
        """Write ``value`` with ``ttl`` seconds (default ``ttl_seconds``).

        Raises
        ------
        CacheError
            If eviction or the write fails.
        """
        key = self._settings.entry_key(entity, entity_id)
        ttl = ttl if ttl is not None else self._settings.ttl_seconds

        try:
            payload = to_json(value)
        except ValueError as e:
            raise CacheError(f"Value for {key} is not serialisable", e) from e

        try:
            async with self._redis_client.aget_client() as client:
                size = await cast(Awaitable[int], client.dbsize())
                if size >= self._settings.max_size:
                    await self._evict(client)

                pipe = self._pipeline(client)
                pipe.set(key, payload, ex=ttl)
                pipe.zadd(self._settings.index_key, {key: _now_ms()})
                await pipe.execute()
        except RedisError as e:
            raise CacheError(f"Cache write failed for {key}", e) from e

    async def _evict(self, client: RedisClientType) -> None:
        index_key = self._settings.index_key
        victims: list[str] = await cast(
            Awaitable[list[str]],
            client.zrange(index_key, 0, self._settings.eviction_batch_size - 1),
        )
        if not victims:
            return

        pipe = self._pipeline(client)
        for victim in victims:
            pipe.delete(victim)
        pipe.zrem(index_key, *victims)
        await pipe.execute()

        self._counters.evictions += len(victims)
        logger.debug("Evicted least recently touched cache entries", count=len(victims))

    async def delete(self, entity: str, entity_id: object) -> None:
        """Remove the value and its access-order entry."""
        key = self._settings.entry_key(entity, entity_id)
        try:
            async with self._redis_client.aget_client() as client:
                pipe = self._pipeline(client)
                pipe.delete(key)
                pipe.zrem(self._settings.index_key, key)
                await pipe.execute()
        except RedisError as e:
            raise CacheError(f"Cache delete failed for {key}", e) from e

    async def invalidate_model(self, entity: str) -> int:
        """Remove every cached row of ``entity``; returns how many keys were found."""
        pattern = self._settings.entity_pattern(entity)
        index_key = self._settings.index_key

        try:
            async with self._redis_client.aget_client() as client:
                keys = [key async for key in client.scan_iter(match=pattern, count=500) if key != index_key]
                if keys:
                    pipe = self._pipeline(client)
                    for key in keys:
                        pipe.delete(key)
                    pipe.zrem(index_key, *keys)
                    await pipe.execute()
        except RedisError as e:
            raise CacheError(f"Cache invalidation failed for {entity}", e) from e

        logger.info("Invalidated cached entity", entity=entity, keys=len(keys))
        return len(keys)

    async def warm_cache(self, entity: str, ids: Iterable[object], *, key_field: str = "id") -> int:
        """Load ``ids`` with one batched read and cache each returned row."""
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return 0
        return await self.warm_cache_by_query(
            entity, QueryDescriptor(where={key_field: {"in": id_list}}), key_field=key_field
        )

    async def warm_cache_by_query(self, entity: str, query: QueryDescriptor, *, key_field: str = "id") -> int:
        """Run ``query`` and cache each returned row under ``row[key_field]``."""
        if self._source is None:
            raise CacheError("Cache warming needs a source connection; call bind_source() first")

        rows: list[Row] = await self._source.entity(entity).find_many(query)
        for row in rows:
            await self.set(entity, row[key_field], row)

        logger.info("Cache warmed", entity=entity, rows=len(rows))
        return len(rows)

    def get_stats(self) -> CacheStats:
        return CacheStats.from_counters(self._counters)

    async def get_cache_stats(self) -> CacheStatsSnapshot:
        """Counters and rates plus the current store size.

        Raises
        ------
        CacheError
            If the size query fails.
        """
        try:
            async with self._redis_client.aget_client() as client:
                size = await cast(Awaitable[int], client.dbsize())
        except RedisError as e:
            raise CacheError("Could not read cache size", e) from e

        return CacheStatsSnapshot(
            hits=self._counters.hits,
            misses=self._counters.misses,
            evictions=self._counters.evictions,
            size=size,
        )
