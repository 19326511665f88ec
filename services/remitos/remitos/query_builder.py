"""Dynamic SELECT/COUNT construction for the remitos table.

Column and filter field names come from the browser, so every identifier is
checked against ``^[A-Za-z0-9_]+$`` before it reaches SQLAlchemy. Filter
values are always bound parameters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import Select

from .errors import InvalidColumnError, InvalidPageError, UnsupportedOperatorError
from .models import (
    COMPANY_FIELD,
    CONFIRMATION_FIELD,
    DATE_FIELD,
    DOCUMENT_FIELD,
    FACILITY_FIELD,
    FLAG_YES,
    FilterDescriptor,
    FilterOperator,
)
from .pagination import page_offset

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")


def sanitize_identifier(name: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_RE.fullmatch(name):
        raise InvalidColumnError(str(name))
    return name


def parse_operator(operator: FilterOperator | str) -> FilterOperator:
    if isinstance(operator, FilterOperator):
        return operator
    try:
        return FilterOperator(str(operator).upper())
    except ValueError as exc:
        raise UnsupportedOperatorError(str(operator)) from exc


def split_in_values(value: str) -> List[str]:
    return [item.strip() for item in str(value).split(",") if item.strip()]


@dataclass(slots=True)
class RemitoQuery:
    """One request for a page of delivery documents."""

    company: str
    facility: str
    columns: Sequence[str]
    filters: Sequence[FilterDescriptor] = field(default_factory=list)
    desde: Optional[date] = None
    page: int = 1
    page_size: int = 50


@dataclass(slots=True)
class BuiltQuery:
    data: Select
    count: Select
    columns: List[str]
    page: int
    page_size: int


class DynamicQueryBuilder:
    def __init__(
        self,
        table_name: str = "SDELIVERY",
        default_desde: date = date(2022, 1, 1),
        max_page_size: int = 500,
    ) -> None:
        self.table = sa.table(sanitize_identifier(table_name))
        self.default_desde = default_desde
        self.max_page_size = max_page_size

    def build(self, query: RemitoQuery) -> BuiltQuery:
        """Validate ``query`` and return the matching data and count statements.

        Both statements share one predicate so the count always describes the
        rows that can be paged through.
        """
        columns = [sanitize_identifier(name) for name in query.columns]
        if not columns:
            raise InvalidColumnError("", "At least one column must be requested")

        if query.page < 1 or query.page_size < 1:
            raise InvalidPageError(f"page and pageSize must be >= 1, got {query.page}/{query.page_size}")
        page_size = min(query.page_size, self.max_page_size)

        predicate = sa.and_(*self._base_conditions(query), *self._filter_conditions(query.filters))

        data = (
            sa.select(*[sa.column(name) for name in columns])
            .select_from(self.table)
            .where(predicate)
            .order_by(sa.column(DATE_FIELD).desc(), sa.column(DOCUMENT_FIELD).desc())
            .limit(page_size)
            .offset(page_offset(query.page, page_size))
        )
        count = sa.select(sa.func.count()).select_from(self.table).where(predicate)
        return BuiltQuery(
            data=data,
            count=count,
            columns=columns,
            page=query.page,
            page_size=page_size,
        )

    def _base_conditions(self, query: RemitoQuery) -> List[ColumnElement]:
        desde = query.desde or self.default_desde
        return [
            sa.column(DATE_FIELD) >= sa.bindparam("desde", desde, type_=sa.Date),
            sa.column(CONFIRMATION_FIELD) == FLAG_YES,
            sa.column(COMPANY_FIELD) == query.company,
            sa.column(FACILITY_FIELD) == query.facility,
        ]

    def _filter_conditions(self, filters: Iterable[FilterDescriptor]) -> List[ColumnElement]:
        return [self.translate_filter(descriptor) for descriptor in filters]

    @staticmethod
    def translate_filter(descriptor: FilterDescriptor) -> ColumnElement:
        column = sa.column(sanitize_identifier(descriptor.field))
        operator = parse_operator(descriptor.operator)
        value = "" if descriptor.value is None else str(descriptor.value)

        if operator is FilterOperator.EQUALS:
            return column == value
        if operator is FilterOperator.NOT_EQUALS:
            return column != value
        if operator is FilterOperator.LIKE:
            text_value = sa.func.lower(sa.cast(column, sa.String), type_=sa.String)
            return text_value.contains(value.lower(), autoescape=True)
        if operator is FilterOperator.GREATER_THAN:
            return column > value
        if operator is FilterOperator.LESS_THAN:
            return column < value
        if operator is FilterOperator.IN:
            return column.in_(split_in_values(value))
        raise UnsupportedOperatorError(operator.value)  # pragma: no cover
