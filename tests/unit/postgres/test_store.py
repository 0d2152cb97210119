from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from pgaccess.errors import ValidationError
from pgaccess.infrastructure.postgres import (
    EntityCatalog,
    EntitySettings,
    RelationSettings,
    SqlEntityStore,
    TransactionScope,
)
from pgaccess.query import QueryDescriptor


@pytest.fixture
def catalog() -> EntityCatalog:
    return EntityCatalog(
        {
            "user": EntitySettings(
                table="users",
                relations={
                    "posts": RelationSettings(entity="post", foreign_key="author_id"),
                    "profile": RelationSettings(entity="profile", foreign_key="user_id", many=False),
                },
            ),
            "post": EntitySettings(table="posts"),
            "profile": EntitySettings(),
        }
    )


@pytest.fixture
def executor() -> MagicMock:
    executor = MagicMock()
    executor.afetch = AsyncMock(return_value=[])
    executor.afetchval = AsyncMock(return_value=0)
    executor.aexecute = AsyncMock(return_value="UPDATE 0")
    return executor


class TestEntityCatalog:
    def test_table_defaults_to_entity_name(self, catalog: EntityCatalog) -> None:
        assert catalog.table("user") == "users"
        assert catalog.table("profile") == "profile"

    def test_unknown_entity_raises_validation_error(self, catalog: EntityCatalog) -> None:
        with pytest.raises(ValidationError, match="Unknown entity"):
            catalog.resolve("nope")

    def test_relation_to_unknown_entity_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown entity"):
            EntityCatalog({"user": EntitySettings(relations={"posts": RelationSettings(entity="post", foreign_key="x")})})

    def test_container_protocol(self, catalog: EntityCatalog) -> None:
        assert "user" in catalog
        assert "nope" not in catalog
        assert len(catalog) == 3
        assert list(catalog) == ["user", "post", "profile"]


class TestSqlEntityStore:
    @pytest.mark.asyncio
    async def test_find_many_runs_compiled_select(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        executor.afetch.return_value = [{"id": 1, "name": "A"}]
        store = SqlEntityStore(executor, catalog, "user")

        rows = await store.find_many(QueryDescriptor(where={"name": "A"}, take=5))

        assert rows == [{"id": 1, "name": "A"}]
        executor.afetch.assert_awaited_once_with('SELECT * FROM "users" WHERE "name" = $1 LIMIT $2', "A", 5)

    @pytest.mark.asyncio
    async def test_find_first_limits_to_one_row(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        executor.afetch.return_value = [{"id": 1}]
        store = SqlEntityStore(executor, catalog, "user")
        query = QueryDescriptor(take=50)

        assert await store.find_first(query) == {"id": 1}
        assert executor.afetch.await_args.args[-1] == 1
        assert query.take == 50

    @pytest.mark.asyncio
    async def test_find_first_returns_none_when_empty(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        assert await SqlEntityStore(executor, catalog, "user").find_first(QueryDescriptor()) is None

    @pytest.mark.asyncio
    async def test_count(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        executor.afetchval.return_value = 7

        assert await SqlEntityStore(executor, catalog, "user").count(QueryDescriptor()) == 7
        executor.afetchval.assert_awaited_once_with('SELECT count(*) FROM "users"')

    @pytest.mark.parametrize(("status", "expected"), [("UPDATE 3", 3), ("UPDATE 0", 0), ("", 0)])
    @pytest.mark.asyncio
    async def test_update_returns_affected_rows(
        self, catalog: EntityCatalog, executor: MagicMock, status: str, expected: int
    ) -> None:
        executor.aexecute.return_value = status

        assert await SqlEntityStore(executor, catalog, "user").update({"id": 1}, {"name": "B"}) == expected

    @pytest.mark.asyncio
    async def test_include_attaches_related_rows_with_one_batched_query(
        self, catalog: EntityCatalog, executor: MagicMock
    ) -> None:
        """Test one-to-many and one-to-one relations are loaded with one query each."""
        executor.afetch.side_effect = [
            [{"id": 1}, {"id": 2}],
            [{"id": 10, "author_id": 1}, {"id": 11, "author_id": 1}],
            [{"user_id": 2, "bio": "hi"}],
        ]
        store = SqlEntityStore(executor, catalog, "user")

        rows = await store.find_many(QueryDescriptor(include={"posts": True, "profile": True}))

        assert rows[0]["posts"] == [{"id": 10, "author_id": 1}, {"id": 11, "author_id": 1}]
        assert rows[1]["posts"] == []
        assert rows[0]["profile"] is None
        assert rows[1]["profile"] == {"user_id": 2, "bio": "hi"}
        assert executor.afetch.await_count == 3
        posts_call = executor.afetch.await_args_list[1]
        assert posts_call.args == ('SELECT * FROM "posts" WHERE "author_id" = ANY($1)', [1, 2])

    @pytest.mark.asyncio
    async def test_include_adds_local_key_to_projection(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        store = SqlEntityStore(executor, catalog, "user")

        await store.find_many(QueryDescriptor(select={"name": True}, include={"posts": True}))

        assert executor.afetch.await_args_list[0].args[0] == 'SELECT "name", "id" FROM "users"'

    @pytest.mark.asyncio
    async def test_unknown_relation_is_rejected(self, catalog: EntityCatalog, executor: MagicMock) -> None:
        with pytest.raises(ValidationError, match="Unknown relation"):
            await SqlEntityStore(executor, catalog, "user").find_many(QueryDescriptor(include={"friends": True}))


class TestTransactionScope:
    """Connection-scoped handle passed to transaction callbacks."""

    @pytest.mark.asyncio
    async def test_statements_run_on_the_bound_connection(self, catalog: EntityCatalog) -> None:
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[{"id": 1}])
        conn.execute = AsyncMock(return_value="UPDATE 1")
        scope = TransactionScope(conn, catalog)

        rows = await scope.entity("user").find_many(QueryDescriptor())
        updated = await scope.entity("user").update({"id": 1}, {"name": "B"})

        assert rows == [{"id": 1}]
        assert updated == 1
        conn.fetch.assert_awaited_once_with('SELECT * FROM "users"', timeout=None)
        conn.execute.assert_awaited_once_with('UPDATE "users" SET "name" = $1 WHERE "id" = $2', "B", 1, timeout=None)
