"""Generic pagination utilities for SQLAlchemy async queries."""


from typing import Any, Callable, Generic, Mapping, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field
from sqlalchemy import Select, func
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from leavedesk.common.constants import SortOrder
from leavedesk.common.filters import FilterField, build_conditions, resolve_sorting
from leavedesk.config import settings

T = TypeVar("T")


# ── Request parameters ──────────────────────────────────────────────

class PaginationParams(BaseModel):
    """Page/limit/sort options shared by every list operation."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(
        default=settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT,
    )
    sort_by: Optional[str] = None
    sort_order: Optional[SortOrder] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pagination_params(
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(
        default=settings.DEFAULT_PAGE_LIMIT,
        ge=1,
        le=settings.MAX_PAGE_LIMIT,
        description=f"Items per page (max {settings.MAX_PAGE_LIMIT})",
    ),
    sort_by: Optional[str] = Query(default=None, description="Sort field"),
    sort_order: Optional[SortOrder] = Query(default=None, description="asc | desc"),
) -> PaginationParams:
    """FastAPI dependency: inject via ``Depends(pagination_params)``."""
    return PaginationParams(
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )


# ── Pydantic response models ───────────────────────────────────────

class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    limit: int
    total: int


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard envelope: ``{"data": [...], "meta": {...}}``."""

    data: Sequence[T]
    meta: PaginationMeta


# ── Query shaping ───────────────────────────────────────────────────

class QueryShape:
    """Resolved WHERE / ORDER BY / LIMIT / OFFSET for one list request."""

    __slots__ = ("where", "order_by", "offset", "limit", "page")

    def __init__(
        self,
        where: Optional[ColumnElement[bool]],
        order_by: list[ColumnElement],
        offset: int,
        limit: int,
        page: int,
    ) -> None:
        self.where = where
        self.order_by = order_by
        self.offset = offset
        self.limit = limit
        self.page = page


def shape_query(
    params: PaginationParams,
    *,
    search: Optional[str] = None,
    searchable: Sequence[InstrumentedAttribute] = (),
    filters: Optional[Mapping[str, Any]] = None,
    filter_fields: Optional[Mapping[str, FilterField]] = None,
    sortable: Mapping[str, InstrumentedAttribute],
    default_sort: Sequence[tuple[InstrumentedAttribute, SortOrder]],
    tiebreaker: Optional[InstrumentedAttribute] = None,
) -> QueryShape:
    """Build the complete query shape from raw list parameters.

    Stateless: every allow-list is passed in explicitly by the caller.
    """
    where = build_conditions(
        search=search,
        searchable=searchable,
        filters=filters,
        filter_fields=filter_fields,
    )
    order_by = resolve_sorting(
        params.sort_by,
        params.sort_order,
        sortable=sortable,
        default=default_sort,
        tiebreaker=tiebreaker,
    )
    return QueryShape(
        where=where,
        order_by=order_by,
        offset=params.offset,
        limit=params.limit,
        page=params.page,
    )


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate(
    session: AsyncSession,
    query: Select,
    shape: QueryShape,
    *,
    options: Sequence[Any] = (),
    transform: Optional[Callable[[Any], Any]] = None,
) -> PaginatedResponse:
    """
    Execute *query* constrained by *shape* and return a ``PaginatedResponse``.

    ``meta.total`` counts every row matching ``shape.where``, independent of
    LIMIT/OFFSET. Loader *options* apply to the row query only and
    *transform* maps each ORM row to its output schema.
    """
    if shape.where is not None:
        query = query.where(shape.where)

    # ── total count (same conditions, no ORDER BY / eager loads) ────
    count_q = query.with_only_columns(
        func.count(), maintain_column_froms=True,
    ).order_by(None)
    total: int = (await session.execute(count_q)).scalar_one()

    # ── paginated rows ──────────────────────────────────────────────
    rows = (
        await session.execute(
            query.options(*options)
            .order_by(*shape.order_by)
            .offset(shape.offset)
            .limit(shape.limit)
        )
    ).scalars().all()

    data = [transform(r) for r in rows] if transform else list(rows)

    return PaginatedResponse(
        data=data,
        meta=PaginationMeta(
            page=shape.page,
            limit=shape.limit,
            total=total,
        ),
    )
