from __future__ import annotations

import re
import uuid
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from ..errors import SecurityError, ValidationError

_UNSAFE_CHARACTERS = re.compile(r"[;'\"\\]|--")
_READ_ONLY_PREFIX = "select"

SCALAR_PARAM_TYPES: tuple[type, ...] = (
    str,
    bytes,
    bool,
    int,
    float,
    Decimal,
    date,
    datetime,
    time,
    timedelta,
    uuid.UUID,
)


def sanitize_value(value: Any) -> Any:
    """Strip ``; ' " \\`` and ``--`` from strings; other values pass through."""
    if isinstance(value, str):
        return _UNSAFE_CHARACTERS.sub("", value)
    return value


def sanitize_condition(condition: Mapping[str, Any]) -> dict[str, Any]:
    return {key: sanitize_value(value) for key, value in condition.items()}


def validate_raw_query(query: str) -> None:
    if not query.strip().lower().startswith(_READ_ONLY_PREFIX):
        raise ValidationError("Raw queries are limited to SELECT statements")


def validate_raw_params(params: Sequence[Any]) -> None:
    for index, param in enumerate(params):
        if param is not None and not isinstance(param, SCALAR_PARAM_TYPES):
            raise SecurityError(
                f"Object parameters are not allowed in raw queries (parameter {index}: {type(param).__name__})"
            )
        if isinstance(param, str) and "--" in param:
            raise SecurityError(f"Potential SQL injection detected in parameter {index}")
