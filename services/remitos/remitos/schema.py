"""GraphQL schema: dynamic remitos query, company/facility lookups and PDF upload."""

import asyncio
from datetime import date
from typing import List, Optional

import strawberry
from strawberry.scalars import JSON
from strawberry.types import Info

from .logging import get_logger
from .models import FilterDescriptor
from .query_builder import RemitoQuery

logger = get_logger(__name__)


@strawberry.type
class Pagination:
    current_page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


@strawberry.type
class RemitoRow:
    data: JSON


@strawberry.type
class RemitosPage:
    remitos: List[RemitoRow]
    pagination: Pagination


@strawberry.type
class Company:
    cpy: str = strawberry.field(name="CPY_0")
    cpynam: Optional[str] = strawberry.field(name="CPYNAM_0", default=None)


@strawberry.type
class Facility:
    fcy: str = strawberry.field(name="FCY_0")
    fcysho: Optional[str] = strawberry.field(name="FCYSHO_0", default=None)


@strawberry.type
class UploadResult:
    url: str


@strawberry.input
class FilterInput:
    field: str
    # Plain string so unknown operators reach the builder and are reported there.
    operator: str
    value: str


def _parse_desde(desde: Optional[str]) -> Optional[date]:
    if not desde:
        return None
    try:
        return date.fromisoformat(desde[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid desde date: {desde!r}") from exc


@strawberry.type
class Query:
    @strawberry.field
    async def remitos_dynamic(
        self,
        info: Info,
        cpy: str,
        stofcy: str,
        columns: List[str],
        filters: Optional[List[FilterInput]] = None,
        desde: Optional[str] = None,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
    ) -> RemitosPage:
        runtime = info.context["runtime"]
        query = RemitoQuery(
            company=cpy,
            facility=stofcy,
            columns=columns,
            filters=[FilterDescriptor(item.field, item.operator, item.value) for item in filters or []],
            desde=_parse_desde(desde),
            page=1 if page is None else page,
            page_size=page_size or runtime.config.default_page_size,
        )
        result = await asyncio.to_thread(runtime.database.remitos_dynamic, query)
        state = result.pagination
        return RemitosPage(
            remitos=[RemitoRow(data=row) for row in result.rows],
            pagination=Pagination(
                current_page=state.current_page,
                page_size=state.page_size,
                total_count=state.total_count,
                total_pages=state.total_pages,
                has_next_page=state.has_next_page,
                has_previous_page=state.has_previous_page,
            ),
        )

    @strawberry.field
    async def companies(self, info: Info) -> List[Company]:
        rows = await asyncio.to_thread(info.context["runtime"].database.list_companies)
        return [Company(cpy=row["CPY_0"], cpynam=row.get("CPYNAM_0")) for row in rows]

    @strawberry.field
    async def facilities(self, info: Info, legcpy: Optional[str] = None) -> List[Facility]:
        rows = await asyncio.to_thread(info.context["runtime"].database.list_facilities, legcpy)
        return [Facility(fcy=row["FCY_0"], fcysho=row.get("FCYSHO_0")) for row in rows]


@strawberry.type
class Mutation:
    @strawberry.mutation
    def subir_pdf_base64(self, info: Info, pdf_base64: str) -> UploadResult:
        url = info.context["runtime"].uploads.save_pdf_base64(pdf_base64)
        return UploadResult(url=url)


schema = strawberry.Schema(query=Query, mutation=Mutation)
