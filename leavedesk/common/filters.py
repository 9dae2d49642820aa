"""Generic filtering, sorting, and free-text search utilities.

Each component declares its filterable, searchable and sortable columns up
front (module-level maps bound to mapped attributes). Query parameters are
only ever resolved through those maps, never by name lookup on the model.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import String, and_, cast, or_
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.elements import ColumnElement

from leavedesk.common.constants import SortOrder
from leavedesk.common.exceptions import ValidationException


LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """Wrap *term* for a literal substring match under ``ESCAPE '\\'``."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


class FilterOp(str, enum.Enum):
    eq = "eq"
    gte = "gte"
    lte = "lte"
    contains = "contains"


class FilterField:
    """A query parameter bound to a mapped column and a comparison kind."""

    __slots__ = ("column", "op")

    def __init__(
        self,
        column: InstrumentedAttribute,
        op: FilterOp = FilterOp.eq,
    ) -> None:
        self.column = column
        self.op = op

    def condition(self, value: Any) -> ColumnElement[bool]:
        if self.op == FilterOp.gte:
            return self.column >= value
        if self.op == FilterOp.lte:
            return self.column <= value
        if self.op == FilterOp.contains:
            return cast(self.column, String).ilike(
                like_pattern(str(value)), escape=LIKE_ESCAPE,
            )
        return self.column == value

    def __repr__(self) -> str:
        return f"FilterField({self.column.key!r}, {self.op.value})"


# ── Search ──────────────────────────────────────────────────────────

def build_search_condition(
    search: Optional[str],
    searchable: Sequence[InstrumentedAttribute],
) -> Optional[ColumnElement[bool]]:
    """OR of case-insensitive substring matches across *searchable*."""
    if not search or not search.strip() or not searchable:
        return None

    term = search.strip()
    pattern = like_pattern(term)
    return or_(*(
        cast(col, String).ilike(pattern, escape=LIKE_ESCAPE) for col in searchable
    ))


# ── Filtering ──────────────────────────────────────────────────────

def build_filter_conditions(
    filters: Optional[Mapping[str, Any]],
    filter_fields: Mapping[str, FilterField],
) -> list[ColumnElement[bool]]:
    """One condition per non-``None`` filter value.

    Keys outside *filter_fields* are rejected rather than ignored.
    """
    if not filters:
        return []

    unknown = sorted(k for k in filters if k not in filter_fields)
    if unknown:
        raise ValidationException(
            {key: ["Unsupported filter parameter."] for key in unknown}
        )

    return [
        filter_fields[key].condition(value)
        for key, value in filters.items()
        if value is not None
    ]


def build_conditions(
    *,
    search: Optional[str] = None,
    searchable: Sequence[InstrumentedAttribute] = (),
    filters: Optional[Mapping[str, Any]] = None,
    filter_fields: Optional[Mapping[str, FilterField]] = None,
) -> Optional[ColumnElement[bool]]:
    """Combine the search group and the filter group with a top-level AND.

    Returns ``None`` when nothing constrains the query.
    """
    conditions: list[ColumnElement[bool]] = []

    search_cond = build_search_condition(search, searchable)
    if search_cond is not None:
        conditions.append(search_cond)

    conditions.extend(build_filter_conditions(filters, filter_fields or {}))

    if not conditions:
        return None
    return and_(*conditions)


# ── Sorting ─────────────────────────────────────────────────────────

def resolve_sorting(
    sort_by: Optional[str],
    sort_order: Optional[SortOrder],
    *,
    sortable: Mapping[str, InstrumentedAttribute],
    default: Sequence[tuple[InstrumentedAttribute, SortOrder]],
    tiebreaker: Optional[InstrumentedAttribute] = None,
) -> list[ColumnElement]:
    """Translate a requested sort into ORDER BY clauses.

    * *sort_by* must be a key of *sortable*; anything else is a validation error.
    * Without *sort_by* the component *default* ordering applies.
    * *tiebreaker* (usually the primary key) keeps page boundaries stable.
    """
    if sort_by:
        col = sortable.get(sort_by)
        if col is None:
            raise ValidationException(
                {"sort_by": [
                    f"Cannot sort by '{sort_by}'. "
                    f"Allowed: {sorted(sortable)}."
                ]}
            )
        direction = sort_order or SortOrder.desc
        clauses = [col.desc() if direction == SortOrder.desc else col.asc()]
    else:
        clauses = [
            col.desc() if direction == SortOrder.desc else col.asc()
            for col, direction in default
        ]

    if tiebreaker is not None:
        clauses.append(tiebreaker.asc())
    return clauses
