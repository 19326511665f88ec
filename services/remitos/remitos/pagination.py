"""Pagination math and the page-number controls of the remitos table."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from .errors import InvalidPageError
from .logging import get_logger
from .models import PaginationState

logger = get_logger(__name__)

MAX_VISIBLE_PAGES = 5


def compute_pagination(total_count: int, page: int, page_size: int) -> PaginationState:
    """Build the authoritative pagination metadata for one page of results.

    A page past the last one is valid and simply has no rows; the metadata
    still reflects the real totals.
    """
    if page < 1:
        raise InvalidPageError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise InvalidPageError(f"pageSize must be >= 1, got {page_size}")
    total_count = max(0, int(total_count))
    total_pages = math.ceil(total_count / page_size) if total_count else 0
    return PaginationState(
        current_page=page,
        page_size=page_size,
        total_count=total_count,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def page_window(current_page: int, total_pages: int, max_visible: int = MAX_VISIBLE_PAGES) -> List[int]:
    """Page numbers to show, centred on ``current_page`` and clamped to the range.

    Near either edge the window shifts so that ``min(max_visible, total_pages)``
    buttons are always shown.
    """
    if total_pages <= 0:
        return []
    start = max(1, current_page - max_visible // 2)
    end = min(total_pages, start + max_visible - 1)
    if end - start < max_visible - 1:
        start = max(1, end - max_visible + 1)
    return list(range(start, end + 1))


def pagination_summary(state: PaginationState) -> str:
    if state.total_count == 0:
        return "Mostrando 0-0 de 0 registros"
    start = (state.current_page - 1) * state.page_size + 1
    end = min(state.current_page * state.page_size, state.total_count)
    return f"Mostrando {start}-{end} de {state.total_count} registros"


@dataclass(slots=True)
class PageControls:
    pages: List[int]
    current_page: int
    previous_enabled: bool
    next_enabled: bool
    summary: str


class PaginationView(Protocol):
    def render_pagination(self, controls: PageControls) -> None: ...


class PaginationController:
    """Keeps the page buttons in sync with the last server-provided pagination.

    Page changes are delegated to ``load_page`` which refetches with the
    active filters; this controller never touches filter state itself.
    """

    def __init__(self, view: PaginationView, load_page: Callable[[int], Awaitable[None]]) -> None:
        self.view = view
        self._load_page = load_page
        self.state: Optional[PaginationState] = None

    def update(self, state: PaginationState) -> PageControls:
        self.state = state
        controls = PageControls(
            pages=page_window(state.current_page, state.total_pages),
            current_page=state.current_page,
            previous_enabled=state.has_previous_page,
            next_enabled=state.has_next_page,
            summary=pagination_summary(state),
        )
        self.view.render_pagination(controls)
        return controls

    async def go_to_page(self, page: int) -> None:
        if self.state is None:
            return
        logger.info("page_requested", page=page, current=self.state.current_page)
        await self._load_page(page)

    async def next_page(self) -> None:
        if self.state is None or not self.state.has_next_page:
            return
        await self.go_to_page(self.state.current_page + 1)

    async def previous_page(self) -> None:
        if self.state is None or not self.state.has_previous_page:
            return
        await self.go_to_page(self.state.current_page - 1)
