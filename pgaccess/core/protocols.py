"""Capability interfaces shared across the package.

``Connection`` is what the registry hands out; ``EntityStore`` is the per-entity
CRUD surface a connection resolves from its entity catalog; ``MetricsSink`` is
what timed operations report into.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..infrastructure.postgres.health import HealthCheckResult
    from ..query.descriptor import QueryDescriptor

type Row = dict[str, Any]


class SqlExecutor(Protocol):
    async def afetch(self, query: str, *args: object, timeout: float | None = None) -> Sequence[Mapping[str, Any]]: ...

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> Mapping[str, Any] | None: ...

    async def afetchval(self, query: str, *args: object, timeout: float | None = None) -> Any: ...

    async def aexecute(self, query: str, *args: object, timeout: float | None = None) -> str: ...


class EntityStore(Protocol):
    async def find_many(self, query: QueryDescriptor) -> list[Row]: ...

    async def find_first(self, query: QueryDescriptor) -> Row | None: ...

    async def count(self, query: QueryDescriptor) -> int: ...

    async def update(self, where: Mapping[str, Any], data: Mapping[str, Any]) -> int: ...


class EntitySource(Protocol):
    def entity(self, name: str) -> EntityStore: ...


class TransactionHandle(SqlExecutor, EntitySource, Protocol): ...


type TransactionCallback[T] = Callable[[TransactionHandle], Awaitable[T]]


class Connection(SqlExecutor, EntitySource, Protocol):
    @property
    def endpoint(self) -> str: ...

    async def ainitialize(self) -> None: ...

    async def aclose(self) -> None: ...

    async def arun_transaction[T](self, callback: TransactionCallback[T]) -> T: ...

    async def ahealth_check(self) -> HealthCheckResult: ...


class MetricsSink(Protocol):
    def record(self, key: str, duration_ms: float) -> None: ...
