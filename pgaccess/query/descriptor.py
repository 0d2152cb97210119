"""Query descriptors and the caller-facing query options."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import QueryMode

type SortDirection = Literal["asc", "desc"]


class QueryDescriptor(BaseModel):
    """Structured description of a query against one entity.

    Accumulated in place by :class:`~pgaccess.query.builder.QueryBuilder` and
    compiled to SQL by :mod:`pgaccess.query.compiler`. ``where`` values are
    sanitised before they land here; ``raw_conditions`` are not.
    """

    model_config = ConfigDict(extra="forbid")

    select: dict[str, bool] | None = None
    include: dict[str, bool] | None = None
    where: dict[str, Any] = Field(default_factory=dict)
    raw_conditions: list[str] = Field(default_factory=list)
    order_by: list[dict[str, SortDirection]] = Field(default_factory=list)
    skip: int | None = None
    take: int | None = None
    mode: QueryMode = QueryMode.LIST


class QueryOptions(BaseModel):
    """Options accepted by :meth:`DatabaseAdapter.query`.

    Examples
    --------
    >>> QueryOptions(
    ...     select=("id", "name"),
    ...     where={"status": "active"},
    ...     order_by={"created_at": "desc"},
    ...     page=2,
    ...     per_page=20,
    ... )
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    select: tuple[str, ...] | None = None
    include: tuple[str, ...] | None = None
    where: dict[str, Any] | None = None
    order_by: dict[str, SortDirection] | None = None
    page: int | None = Field(default=None, ge=1)
    per_page: int | None = Field(default=None, ge=1)
    write: bool = Field(default=False, description="Route to the write connection instead of a replica")
    count: bool = False
    single: bool = False
    with_deleted: bool = Field(default=False, description="Include soft-deleted rows when soft delete is enabled")
