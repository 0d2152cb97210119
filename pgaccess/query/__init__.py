"""Query descriptors, sanitisation, SQL compilation and the fluent builder."""

from __future__ import annotations

from .builder import DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT_MS, QueryBuilder
from .compiler import (
    CURRENT_TIMESTAMP,
    SqlFunction,
    SqlStatement,
    compile_count,
    compile_select,
    compile_update,
    quote_identifier,
)
from .descriptor import QueryDescriptor, QueryOptions, SortDirection
from .sanitize import sanitize_condition, sanitize_value, validate_raw_params, validate_raw_query

__all__ = [
    # Builder
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_TIMEOUT_MS",
    "QueryBuilder",
    # Descriptors
    "QueryDescriptor",
    "QueryOptions",
    "SortDirection",
    # Compilation
    "CURRENT_TIMESTAMP",
    "SqlFunction",
    "SqlStatement",
    "compile_count",
    "compile_select",
    "compile_update",
    "quote_identifier",
    # Sanitisation
    "sanitize_condition",
    "sanitize_value",
    "validate_raw_params",
    "validate_raw_query",
]
