from __future__ import annotations

import pytest

from pgaccess.core.enums import QueryMode
from pgaccess.errors import SecurityError, ValidationError
from pgaccess.query.compiler import (
    CURRENT_TIMESTAMP,
    SqlFunction,
    compile_count,
    compile_select,
    compile_update,
    quote_identifier,
)
from pgaccess.query.descriptor import QueryDescriptor


class TestQuoteIdentifier:
    """Identifier validation and quoting."""

    def test_quotes_plain_and_qualified_names(self) -> None:
        assert quote_identifier("users") == '"users"'
        assert quote_identifier("billing.invoices") == '"billing"."invoices"'

    @pytest.mark.parametrize("name", ["users; DROP", 'a"b', "1abc", "", "a..b"])
    def test_rejects_non_identifiers(self, name: str) -> None:
        """Test anything that is not a plain identifier raises SecurityError."""
        with pytest.raises(SecurityError):
            quote_identifier(name)


class TestCompileSelect:
    """SELECT compilation."""

    def test_empty_descriptor_selects_everything(self) -> None:
        statement = compile_select("users", QueryDescriptor())

        assert statement.text == 'SELECT * FROM "users"'
        assert statement.args == ()

    def test_projection_filter_order_and_pagination(self) -> None:
        """Test every clause is emitted in order with $n placeholders."""
        query = QueryDescriptor(
            select={"id": True, "name": True, "secret": False},
            where={"status": "active", "age": {"gte": 18, "lt": 65}},
            order_by=[{"created_at": "desc"}, {"name": "asc"}],
            skip=20,
            take=10,
        )

        statement = compile_select("users", query)

        assert statement.text == (
            'SELECT "id", "name" FROM "users"'
            ' WHERE "status" = $1 AND "age" >= $2 AND "age" < $3'
            ' ORDER BY "created_at" DESC, "name" ASC'
            " LIMIT $4 OFFSET $5"
        )
        assert statement.args == ("active", 18, 65, 10, 20)

    def test_none_compiles_to_is_null(self) -> None:
        statement = compile_select("users", QueryDescriptor(where={"deleted_at": None}))

        assert statement.text == 'SELECT * FROM "users" WHERE "deleted_at" IS NULL'
        assert statement.args == ()

    def test_list_operators(self) -> None:
        """Test in / not_in bind a single array parameter."""
        statement = compile_select("users", QueryDescriptor(where={"id": {"in": (1, 2)}, "role": {"not_in": ["x"]}}))

        assert statement.text == 'SELECT * FROM "users" WHERE "id" = ANY($1) AND NOT ("role" = ANY($2))'
        assert statement.args == ([1, 2], ["x"])

    def test_pattern_operators_and_not_null(self) -> None:
        query = QueryDescriptor(where={"name": {"contains": "ann"}, "email": {"starts_with": "a"}, "x": {"not": None}})

        statement = compile_select("users", query)

        assert statement.text == (
            'SELECT * FROM "users" WHERE "name" LIKE \'%\' || $1 || \'%\''
            ' AND "email" LIKE $2 || \'%\' AND "x" IS NOT NULL'
        )
        assert statement.args == ("ann", "a")

    def test_raw_conditions_are_parenthesised(self) -> None:
        statement = compile_select(
            "users", QueryDescriptor(where={"a": 1}, raw_conditions=["age > 18 OR vip", "score < 5"])
        )

        assert statement.text == 'SELECT * FROM "users" WHERE "a" = $1 AND (age > 18 OR vip) AND (score < 5)'

    def test_extra_columns_join_projection(self) -> None:
        """Test relation keys are added to an explicit projection once."""
        statement = compile_select("users", QueryDescriptor(select={"name": True, "id": True}), extra_columns=["id"])

        assert statement.text == 'SELECT "name", "id" FROM "users"'

    def test_skip_zero_emits_no_offset(self) -> None:
        statement = compile_select("users", QueryDescriptor(skip=0, take=10))

        assert statement.text == 'SELECT * FROM "users" LIMIT $1'

    def test_unknown_operator_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="operator"):
            compile_select("users", QueryDescriptor(where={"a": {"regex": ".*"}}))

    def test_malicious_field_name_is_rejected(self) -> None:
        with pytest.raises(SecurityError):
            compile_select("users", QueryDescriptor(where={"a = 1 OR 1": 1}))


class TestCompileCount:
    def test_counts_with_filter(self) -> None:
        statement = compile_count("users", QueryDescriptor(where={"a": 1}, take=5, mode=QueryMode.COUNT))

        assert statement.text == 'SELECT count(*) FROM "users" WHERE "a" = $1'
        assert statement.args == (1,)


class TestCompileUpdate:
    def test_set_params_precede_where_params(self) -> None:
        statement = compile_update("users", {"id": 7}, {"name": "Al", "age": 3})

        assert statement.text == 'UPDATE "users" SET "name" = $1, "age" = $2 WHERE "id" = $3'
        assert statement.args == ("Al", 3, 7)

    def test_server_side_expression_is_written_inline(self) -> None:
        """Test a SQL function value is emitted as-is and takes no parameter slot."""
        statement = compile_update("users", {"id": 1}, {"deleted_at": CURRENT_TIMESTAMP, "note": "gone"})

        assert statement.text == 'UPDATE "users" SET "deleted_at" = now(), "note" = $1 WHERE "id" = $2'
        assert statement.args == ("gone", 1)

    def test_plain_tuples_are_still_bound(self) -> None:
        statement = compile_update("users", {"id": 1}, {"tags": ("a", "b")})

        assert statement.args == (("a", "b"), 1)
        assert not isinstance(statement.args[0], SqlFunction)

    def test_requires_data_and_filter(self) -> None:
        """Test empty SET or empty WHERE is refused."""
        with pytest.raises(ValidationError):
            compile_update("users", {"id": 1}, {})
        with pytest.raises(ValidationError):
            compile_update("users", {}, {"name": "x"})
