"""Fluent query builder.

A :class:`QueryBuilder` mutates its :class:`QueryDescriptor` in place and
returns itself from every chained call. It belongs to the single task that
created it and must not be shared across concurrent tasks.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Self

from ..core.enums import QueryMode
from ..errors import QueryTimeoutError, ValidationError
from ..logger import get_logger
from .descriptor import QueryDescriptor, QueryOptions, SortDirection
from .sanitize import sanitize_condition, validate_raw_params, validate_raw_query

if TYPE_CHECKING:
    from ..core.protocols import Connection, EntityStore, MetricsSink, Row
    from ..logger import EventLogger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_PAGE_SIZE = 10

_SORT_DIRECTIONS: tuple[SortDirection, ...] = ("asc", "desc")

# Raw queries that outlived their timeout; held so they are not garbage collected mid-flight.
_abandoned_queries: set[asyncio.Task[Any]] = set()


def _forget_abandoned(task: asyncio.Task[Any]) -> None:
    _abandoned_queries.discard(task)
    if task.cancelled():
        return
    if (error := task.exception()) is not None:
        logger.warning("Timed-out raw query failed after its caller gave up", error=str(error))


class QueryBuilder:
    """Accumulates a query against one entity and executes it on a connection.

    Examples
    --------
    >>> users = await (
    ...     QueryBuilder(db.registry.select_for_read(), "user")
    ...     .select(["id", "name"])
    ...     .where({"status": "active"})
    ...     .order_by("created_at", "desc")
    ...     .paginate(2, 20)
    ...     .execute()
    ... )
    """

    def __init__(
        self,
        connection: Connection,
        entity: str,
        options: QueryOptions | None = None,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        events: EventLogger | None = None,
        metrics: MetricsSink | None = None,
    ) -> None:
        self._connection = connection
        self._entity = entity
        self._store: EntityStore = connection.entity(entity)
        self._query = QueryDescriptor()
        self._timeout_ms = timeout_ms
        self._transformer: Callable[[Row], Any] | None = None
        self._events = events
        self._metrics = metrics

        if options is not None:
            self._apply_options(options)

    def _apply_options(self, options: QueryOptions) -> None:
        if options.select is not None:
            self.select(options.select)
        if options.include is not None:
            self.include(options.include)
        if options.where:
            self.where(options.where)
        for field, direction in (options.order_by or {}).items():
            self.order_by(field, direction)
        # per_page first so page() sees the requested page size
        if options.per_page is not None:
            self.per_page(options.per_page)
        if options.page is not None:
            self.page(options.page)
        if options.count:
            self.count()
        if options.single:
            self.single()

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._query

    @property
    def entity(self) -> str:
        return self._entity

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def select(self, fields: Iterable[str]) -> Self:
        self._query.select = dict.fromkeys(fields, True)
        return self

    def include(self, relations: Iterable[str]) -> Self:
        self._query.include = dict.fromkeys(relations, True)
        return self

    def where(self, condition: Mapping[str, Any]) -> Self:
        """Merge sanitised ``condition`` into the filter; later keys win."""
        self._query.where = {**self._query.where, **sanitize_condition(condition)}
        return self

    def where_complex(self, *fragments: str) -> Self:
        """AND raw SQL fragments onto the filter.

        Fragments are not sanitised; the caller is responsible for them.
        """
        self._query.raw_conditions.extend(fragments)
        return self

    def order_by(self, field: str, direction: SortDirection = "asc") -> Self:
        if direction not in _SORT_DIRECTIONS:
            raise ValidationError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
        self._query.order_by.append({field: direction})
        return self

    def paginate(self, page: int, per_page: int) -> Self:
        if page < 1 or per_page < 1:
            raise ValidationError("page and per_page must be at least 1")
        self._query.skip = (page - 1) * per_page
        self._query.take = per_page
        return self

    def page(self, page_number: int) -> Self:
        """Set ``skip`` from the current ``take`` (10 when unset).

        Depends on call order: ``per_page(n)`` called afterwards changes
        ``take`` but leaves ``skip`` as computed here.
        """
        if page_number < 1:
            raise ValidationError("page must be at least 1")
        self._query.skip = (page_number - 1) * (self._query.take or DEFAULT_PAGE_SIZE)
        return self

    def per_page(self, limit: int) -> Self:
        if limit < 1:
            raise ValidationError("per_page must be at least 1")
        self._query.take = limit
        return self

    def count(self) -> Self:
        self._query.mode = QueryMode.COUNT
        return self

    def single(self) -> Self:
        # count() takes precedence regardless of call order
        if self._query.mode is not QueryMode.COUNT:
            self._query.mode = QueryMode.SINGLE
        return self

    def transform(self, fn: Callable[[Row], Any]) -> Self:
        """Map each row of a list result through ``fn``."""
        self._transformer = fn
        return self

    def set_timeout(self, ms: int) -> Self:
        if ms <= 0:
            raise ValidationError("Timeout must be positive")
        self._timeout_ms = ms
        return self

    async def execute_raw(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        """Run a read-only raw statement, racing it against the timeout.

        The statement and parameters are validated before the connection is
        touched. On timeout the caller gets :class:`QueryTimeoutError` while
        the statement keeps running; it is not cancelled.

        Raises
        ------
        ValidationError
            If the statement does not start with ``SELECT``.
        SecurityError
            If a parameter is not a scalar or a string contains ``--``.
        QueryTimeoutError
            If the statement does not finish within ``timeout_ms``.
        """
        validate_raw_query(query)
        validate_raw_params(params)

        task = asyncio.ensure_future(self._connection.afetch(query, *params))
        try:
            records = await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout_ms / 1000)
        except TimeoutError as e:
            _abandoned_queries.add(task)
            task.add_done_callback(_forget_abandoned)
            raise QueryTimeoutError(query, self._timeout_ms, e) from e

        return [dict(record) for record in records]

    async def execute(self) -> int | Row | list[Any] | None:
        """Run the accumulated query.

        Returns ``int`` in count mode, a row or ``None`` in single mode, and a
        list of rows (through the transform, if set) otherwise. Connection
        errors propagate unchanged.
        """
        mode = self._query.mode
        if self._events is not None and self._events.enabled("query"):
            self._events.query(
                "Executing query",
                entity=self._entity,
                mode=mode.value,
                query=self._query.model_dump(exclude_defaults=True, mode="json"),
            )

        start_time = time.perf_counter()
        try:
            match mode:
                case QueryMode.COUNT:
                    return await self._store.count(self._query)
                case QueryMode.SINGLE:
                    return await self._store.find_first(self._query)
                case _:
                    rows = await self._store.find_many(self._query)
                    if self._transformer is not None:
                        return [self._transformer(row) for row in rows]
                    return rows
        finally:
            if self._metrics is not None:
                self._metrics.record(f"{self._entity}:{mode.value}", (time.perf_counter() - start_time) * 1000)
