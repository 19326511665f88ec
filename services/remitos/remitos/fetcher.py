"""Client for the remitosDynamic GraphQL query."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from .errors import FetchError
from .logging import get_logger
from .models import (
    DATE_FIELD,
    FIRMADO_PENDING,
    FIRMADO_SIGNED,
    FLAG_YES,
    SIGNED_FIELD,
    FetchResult,
    FilterDescriptor,
    FilterOperator,
    PaginationState,
)

logger = get_logger(__name__)

REMITOS_DYNAMIC_QUERY = """
query RemitosDynamic($cpy: String!, $stofcy: String!, $columns: [String!]!, $filters: [FilterInput!], $desde: String, $page: Int, $pageSize: Int) {
  remitosDynamic(cpy: $cpy, stofcy: $stofcy, columns: $columns, filters: $filters, desde: $desde, page: $page, pageSize: $pageSize) {
    remitos {
      data
    }
    pagination {
      currentPage
      pageSize
      totalCount
      totalPages
      hasNextPage
      hasPreviousPage
    }
  }
}
"""

COMPANIES_QUERY = """
query {
  companies {
    CPY_0
    CPYNAM_0
  }
}
"""

FACILITIES_QUERY = """
query Facilities($legcpy: String) {
  facilities(legcpy: $legcpy) {
    FCY_0
    FCYSHO_0
  }
}
"""


def format_delivery_date(value: Any) -> Any:
    """Turn ``yyyy-mm-dd`` (optionally followed by ``T...``) into ``dd/mm/yyyy``.

    Anything else, including non-strings, is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    if "T" in value:
        date_part = value.split("T")[0]
    elif "-" in value:
        date_part = value
    else:
        return value
    parts = date_part.split("-")
    if len(parts) != 3:
        return value
    yyyy, mm, dd = parts
    return f"{dd}/{mm}/{yyyy}"


def build_filter_descriptors(
    firmado_filter: Optional[str] = None,
    text_filters: Optional[Mapping[str, str]] = None,
) -> List[FilterDescriptor]:
    filters: List[FilterDescriptor] = []
    if firmado_filter == FIRMADO_PENDING:
        filters.append(FilterDescriptor(SIGNED_FIELD, FilterOperator.NOT_EQUALS, str(FLAG_YES)))
    elif firmado_filter == FIRMADO_SIGNED:
        filters.append(FilterDescriptor(SIGNED_FIELD, FilterOperator.EQUALS, str(FLAG_YES)))

    for field_name, value in (text_filters or {}).items():
        if value:
            filters.append(FilterDescriptor(field_name, FilterOperator.LIKE, value))
    return filters


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


class RemitoFetcher:
    """Fetches pages of remitos through GraphQL. Never retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        columns_provider: Callable[[], List[str]],
        graphql_path: str = "/graphql",
    ) -> None:
        self.client = client
        self.columns_provider = columns_provider
        self.graphql_path = graphql_path

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.post(
                self.graphql_path,
                json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as exc:
            raise FetchError(f"GraphQL request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise FetchError(f"GraphQL response is not JSON (status {response.status_code})") from exc
        if not isinstance(body, dict):
            raise FetchError(f"GraphQL response is not an object (status {response.status_code})")

        errors = body.get("errors")
        if errors:
            messages = "; ".join(_error_message(error) for error in errors)
            raise FetchError(messages, errors=errors)
        if response.status_code != 200:
            raise FetchError(f"GraphQL request failed with status {response.status_code}")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise FetchError("GraphQL response data is not an object")
        return data

    async def fetch_remitos(
        self,
        company: str,
        facility: str,
        desde: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
        firmado_filter: Optional[str] = None,
        text_filters: Optional[Mapping[str, str]] = None,
    ) -> FetchResult:
        columns = list(self.columns_provider())
        filters = build_filter_descriptors(firmado_filter, text_filters)
        data = await self.execute(
            REMITOS_DYNAMIC_QUERY,
            {
                "cpy": company,
                "stofcy": facility,
                "columns": columns,
                "filters": [descriptor.to_dict() for descriptor in filters],
                "desde": desde,
                "page": page,
                "pageSize": page_size,
            },
        )

        result = data.get("remitosDynamic") or {"remitos": [], "pagination": {}}
        try:
            remitos = []
            for item in result.get("remitos") or []:
                row = dict(item.get("data") or {})
                if DATE_FIELD in row:
                    row[DATE_FIELD] = format_delivery_date(row[DATE_FIELD])
                remitos.append(row)
            pagination = PaginationState.from_dict(result.get("pagination") or {})
        except (AttributeError, TypeError, ValueError) as exc:
            raise FetchError(f"Malformed remitosDynamic result: {exc}") from exc

        logger.debug("remitos_fetched", page=pagination.current_page, count=len(remitos), filters=len(filters))
        return FetchResult(remitos=remitos, columns=columns, pagination=pagination)

    async def companies(self) -> List[Dict[str, Any]]:
        data = await self.execute(COMPANIES_QUERY)
        return list(data.get("companies") or [])

    async def facilities(self, legcpy: Optional[str] = None) -> List[Dict[str, Any]]:
        data = await self.execute(FACILITIES_QUERY, {"legcpy": legcpy})
        return list(data.get("facilities") or [])
