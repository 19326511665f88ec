"""Database access for delivery documents using SQLAlchemy Core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .logging import get_logger
from .models import PaginationState
from .pagination import compute_pagination
from .query_builder import DynamicQueryBuilder, RemitoQuery

logger = get_logger(__name__)


@dataclass(slots=True)
class RemitoPage:
    rows: List[Dict[str, Any]]
    columns: List[str]
    pagination: PaginationState


class RemitoDatabase:
    def __init__(self, dsn: str, builder: Optional[DynamicQueryBuilder] = None):
        driver_dsn = _ensure_psycopg_driver(dsn)
        self.engine: Engine = create_engine(driver_dsn, future=True, pool_pre_ping=True)
        self.Session = sessionmaker(self.engine, expire_on_commit=False, future=True)
        self.builder = builder or DynamicQueryBuilder()

    @property
    def table_name(self) -> str:
        return self.builder.table.name

    def dispose(self) -> None:
        self.engine.dispose()

    def remitos_dynamic(self, query: RemitoQuery) -> RemitoPage:
        """Run the count and data statements for one page of remitos.

        The two statements are not wrapped in a transaction; concurrent
        writes may make them disagree.
        """
        built = self.builder.build(query)
        with self.Session() as session:
            total = session.execute(built.count).scalar_one()
            rows = session.execute(built.data).mappings().all()

        pagination = compute_pagination(total, built.page, built.page_size)
        logger.info(
            "remitos_dynamic",
            company=query.company,
            facility=query.facility,
            columns=len(built.columns),
            filters=len(query.filters),
            page=built.page,
            total=total,
            returned=len(rows),
        )
        return RemitoPage(
            rows=[_jsonable_row(row) for row in rows],
            columns=built.columns,
            pagination=pagination,
        )

    def list_companies(self) -> List[Dict[str, Any]]:
        with self.Session() as session:
            rows = session.execute(
                text(
                    """
                    SELECT CPY_0, CPYNAM_0
                    FROM COMPANY
                    ORDER BY CPY_0
                    """
                )
            ).mappings().all()
            return [dict(row) for row in rows]

    def list_facilities(self, legcpy: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.Session() as session:
            rows = session.execute(
                text(
                    """
                    SELECT FCY_0, FCYSHO_0
                    FROM FACILITY
                    WHERE WRHFLG_0 = 2
                      AND (:legcpy IS NULL OR LEGCPY_0 = :legcpy)
                    ORDER BY FCY_0
                    """
                ),
                {"legcpy": legcpy},
            ).mappings().all()
            return [dict(row) for row in rows]

    def available_columns(self) -> List[str]:
        """Column names of the delivery table, in table order."""
        inspector = sa.inspect(self.engine)
        return [column["name"] for column in inspector.get_columns(self.table_name)]


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _jsonable_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: _jsonable(value) for key, value in row.items()}


def _ensure_psycopg_driver(dsn: str) -> str:
    if dsn.startswith("postgresql://") and "+psycopg" not in dsn:
        return dsn.replace("postgresql://", "postgresql+psycopg://", 1)
    if dsn.startswith("postgres://") and "+psycopg" not in dsn:
        return dsn.replace("postgres://", "postgresql+psycopg://", 1)
    return dsn
