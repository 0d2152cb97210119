"""Compile :class:`QueryDescriptor` values into parameterised PostgreSQL.

Values always travel as ``$n`` parameters; identifiers are validated against
a plain-identifier pattern and double-quoted. Filter values follow a small
operator vocabulary::

    {"status": "active"}                 status = $1
    {"deleted_at": None}                 deleted_at IS NULL
    {"id": {"in": [1, 2, 3]}}            id = ANY($1)
    {"age": {"gte": 18, "lt": 65}}       age >= $1 AND age < $2
    {"name": {"contains": "ann"}}        name LIKE '%' || $1 || '%'
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

from ..core.identifiers import is_identifier
from ..errors import SecurityError, ValidationError
from .descriptor import QueryDescriptor

_COMPARISONS = {"not": "<>", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


class SqlStatement(NamedTuple):
    text: str
    args: tuple[object, ...]


class SqlFunction(NamedTuple):
    """Server-side expression written into an UPDATE verbatim instead of bound."""

    expression: str


CURRENT_TIMESTAMP = SqlFunction("now()")


class _Parameters:
    def __init__(self) -> None:
        self.values: list[object] = []

    def add(self, value: object) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


def quote_identifier(name: str) -> str:
    if not is_identifier(name, qualified=True):
        raise SecurityError(f"Invalid identifier: {name!r}")
    return ".".join(f'"{part}"' for part in name.split("."))


def _compile_operator(column: str, operator: str, operand: Any, params: _Parameters) -> str:
    match operator:
        case "in":
            return f"{column} = ANY({params.add(list(operand))})"
        case "not_in":
            return f"NOT ({column} = ANY({params.add(list(operand))}))"
        case "not" if operand is None:
            return f"{column} IS NOT NULL"
        case "contains":
            return f"{column} LIKE '%' || {params.add(operand)} || '%'"
        case "starts_with":
            return f"{column} LIKE {params.add(operand)} || '%'"
        case _ if operator in _COMPARISONS:
            return f"{column} {_COMPARISONS[operator]} {params.add(operand)}"
        case _:
            raise ValidationError(f"Unsupported filter operator: {operator!r}")


def _compile_condition(field: str, value: Any, params: _Parameters) -> str:
    column = quote_identifier(field)
    if value is None:
        return f"{column} IS NULL"
    if isinstance(value, Mapping):
        if not value:
            raise ValidationError(f"Empty filter for field {field!r}")
        return " AND ".join(_compile_operator(column, op, operand, params) for op, operand in value.items())
    return f"{column} = {params.add(value)}"


def _compile_where(where: Mapping[str, Any], raw_conditions: Iterable[str], params: _Parameters) -> str:
    clauses = [_compile_condition(field, value, params) for field, value in where.items()]
    clauses.extend(f"({fragment})" for fragment in raw_conditions)
    return f" WHERE {' AND '.join(clauses)}" if clauses else ""


def _compile_columns(select: Mapping[str, bool] | None, extra_columns: Iterable[str]) -> str:
    if not select:
        return "*"
    columns = [field for field, included in select.items() if included]
    columns.extend(column for column in extra_columns if column not in columns)
    if not columns:
        return "*"
    return ", ".join(quote_identifier(column) for column in columns)


def compile_select(table: str, query: QueryDescriptor, extra_columns: Iterable[str] = ()) -> SqlStatement:
    params = _Parameters()
    text = f"SELECT {_compile_columns(query.select, extra_columns)} FROM {quote_identifier(table)}"
    text += _compile_where(query.where, query.raw_conditions, params)

    if query.order_by:
        ordering = [
            f"{quote_identifier(field)} {direction.upper()}"
            for entry in query.order_by
            for field, direction in entry.items()
        ]
        text += f" ORDER BY {', '.join(ordering)}"
    if query.take is not None:
        text += f" LIMIT {params.add(query.take)}"
    if query.skip:
        text += f" OFFSET {params.add(query.skip)}"

    return SqlStatement(text, tuple(params.values))


def compile_count(table: str, query: QueryDescriptor) -> SqlStatement:
    params = _Parameters()
    text = f"SELECT count(*) FROM {quote_identifier(table)}"
    text += _compile_where(query.where, query.raw_conditions, params)
    return SqlStatement(text, tuple(params.values))


def compile_update(table: str, where: Mapping[str, Any], data: Mapping[str, Any]) -> SqlStatement:
    if not data:
        raise ValidationError("Update requires at least one column")
    if not where:
        raise ValidationError("Refusing to update without a filter")

    params = _Parameters()
    assignments = ", ".join(
        f"{quote_identifier(column)} = {_assigned(value, params)}" for column, value in data.items()
    )
    text = f"UPDATE {quote_identifier(table)} SET {assignments}"
    text += _compile_where(where, (), params)
    return SqlStatement(text, tuple(params.values))


def _assigned(value: Any, params: _Parameters) -> str:
    if isinstance(value, SqlFunction):
        return value.expression
    return params.add(value)
