"""Per-entity CRUD over a SQL executor.

An :class:`EntityCatalog` is built once from configuration and maps entity
names to tables. :class:`SqlEntityStore` compiles query descriptors against
that mapping and runs them through any :class:`SqlExecutor`: a pool, or a
:class:`TransactionScope` bound to one connection inside a transaction.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from ...errors import ValidationError
from ...query.compiler import compile_count, compile_select, compile_update
from ...query.descriptor import QueryDescriptor

if TYPE_CHECKING:
    from asyncpg import Record
    from asyncpg.pool import PoolConnectionProxy

    from ...core.protocols import Row, SqlExecutor
    from .config import EntitySettings, RelationSettings

_ROW_COUNT = re.compile(r"(\d+)$")


class EntityCatalog:
    """Entity name to table mapping, resolved once at startup."""

    __slots__ = ("_entities",)

    def __init__(self, entities: Mapping[str, EntitySettings] | None = None) -> None:
        self._entities = dict(entities or {})
        for name, settings in self._entities.items():
            for relation_name, relation in settings.relations.items():
                if relation.entity not in self._entities:
                    raise ValidationError(
                        f"Relation {name}.{relation_name} points at unknown entity {relation.entity!r}"
                    )

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def resolve(self, name: str) -> EntitySettings:
        try:
            return self._entities[name]
        except KeyError:
            raise ValidationError(f"Unknown entity: {name!r}") from None

    def table(self, name: str) -> str:
        return self.resolve(name).table or name


class SqlEntityStore:
    """``find_many`` / ``find_first`` / ``count`` / ``update`` for one entity."""

    __slots__ = ("_catalog", "_entity", "_executor", "_settings", "_table")

    def __init__(self, executor: SqlExecutor, catalog: EntityCatalog, entity: str) -> None:
        self._executor = executor
        self._catalog = catalog
        self._entity = entity
        self._settings = catalog.resolve(entity)
        self._table = catalog.table(entity)

    @property
    def entity(self) -> str:
        return self._entity

    async def find_many(self, query: QueryDescriptor) -> list[Row]:
        relations = self._requested_relations(query)
        extra_columns = [relation.local_key for relation in relations.values()]
        statement = compile_select(self._table, query, extra_columns=extra_columns)

        records = await self._executor.afetch(statement.text, *statement.args)
        rows = [dict(record) for record in records]

        for name, relation in relations.items():
            await self._attach_relation(rows, name, relation)
        return rows

    async def find_first(self, query: QueryDescriptor) -> Row | None:
        rows = await self.find_many(query.model_copy(update={"take": 1}))
        return rows[0] if rows else None

    async def count(self, query: QueryDescriptor) -> int:
        statement = compile_count(self._table, query)
        return int(await self._executor.afetchval(statement.text, *statement.args))

    async def update(self, where: Mapping[str, Any], data: Mapping[str, Any]) -> int:
        """Update matching rows and return how many were affected."""
        statement = compile_update(self._table, where, data)
        status = await self._executor.aexecute(statement.text, *statement.args)
        match = _ROW_COUNT.search(status or "")
        return int(match.group(1)) if match else 0

    def _requested_relations(self, query: QueryDescriptor) -> dict[str, RelationSettings]:
        if not query.include:
            return {}

        relations: dict[str, RelationSettings] = {}
        for name, included in query.include.items():
            if not included:
                continue
            if name not in self._settings.relations:
                raise ValidationError(f"Unknown relation {name!r} on entity {self._entity!r}")
            relations[name] = self._settings.relations[name]
        return relations

    async def _attach_relation(self, rows: list[Row], name: str, relation: RelationSettings) -> None:
        keys = list(dict.fromkeys(row[relation.local_key] for row in rows if row.get(relation.local_key) is not None))

        children: list[Row] = []
        if keys:
            related = SqlEntityStore(self._executor, self._catalog, relation.entity)
            children = await related.find_many(QueryDescriptor(where={relation.foreign_key: {"in": keys}}))

        grouped: defaultdict[Any, list[Row]] = defaultdict(list)
        for child in children:
            grouped[child.get(relation.foreign_key)].append(child)

        for row in rows:
            matches = grouped.get(row.get(relation.local_key), [])
            row[name] = matches if relation.many else (matches[0] if matches else None)


class TransactionScope:
    """Connection-scoped handle passed to transaction callbacks.

    Every statement issued through it, including through ``entity(name)``,
    runs on the single connection that owns the transaction.
    """

    __slots__ = ("_catalog", "_conn")

    def __init__(self, conn: PoolConnectionProxy[Record], catalog: EntityCatalog) -> None:
        self._conn = conn
        self._catalog = catalog

    def entity(self, name: str) -> SqlEntityStore:
        return SqlEntityStore(self, self._catalog, name)

    async def afetch(self, query: str, *args: object, timeout: float | None = None) -> list[Record]:
        return await self._conn.fetch(query, *args, timeout=timeout)

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> Record | None:
        return await self._conn.fetchrow(query, *args, timeout=timeout)

    async def afetchval(self, query: str, *args: object, timeout: float | None = None) -> Any:
        return await self._conn.fetchval(query, *args, timeout=timeout)

    async def aexecute(self, query: str, *args: object, timeout: float | None = None) -> str:
        return await self._conn.execute(query, *args, timeout=timeout)
