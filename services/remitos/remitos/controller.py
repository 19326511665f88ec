"""Table render/filter controller for the remitos list.

The controller owns the filter session (signed-status filter, per-column text
filters, focus) and drives an abstract :class:`TableView`. Text input is
debounced, signed-filter clicks are throttled, and headers are rebuilt only
when they have to be so that a user typing in a filter box keeps focus.

Phases: ``IDLE -> DEBOUNCING -> FETCHING -> IDLE``. A superseded fetch is not
cancelled; whichever response arrives last is rendered.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Dict, List, Mapping, Optional, Protocol, Sequence, Set

import httpx

from .errors import RemitosError
from .fetcher import RemitoFetcher
from .logging import get_logger
from .models import (
    COMPANY_FIELD,
    CUSTOMER_CODE_FIELD,
    CUSTOMER_NAME_FIELD,
    DATE_FIELD,
    DOCUMENT_FIELD,
    FACILITY_FIELD,
    FIRMADO_PENDING,
    DbColumn,
    FetchResult,
    FilterSessionState,
    FocusState,
    MergedConfig,
    SearchParams,
)
from .pagination import PageControls, PaginationController
from .report import ReportClient, SigningSession
from .timers import (
    FILTER_CLICK_INTERVAL_SECONDS,
    FILTER_DEBOUNCE_SECONDS,
    ClickThrottle,
    Clock,
    Debouncer,
    FilterPhase,
    LoopClock,
)

logger = get_logger(__name__)


class TableView(Protocol):
    def header_cell_count(self) -> Optional[int]:
        """Number of header cells currently rendered, None when there is no header."""

    def render_headers(self, columns: Sequence[DbColumn], state: FilterSessionState) -> None: ...

    def render_rows(self, rows: Sequence[Mapping[str, Any]], columns: Sequence[DbColumn]) -> None: ...

    def render_pagination(self, controls: PageControls) -> None: ...

    def select_firmado_option(self, value: str) -> None: ...

    def clear_filter_inputs(self) -> None: ...

    def focus_filter(self, field: str, cursor_position: int) -> bool: ...

    def set_sign_button_busy(self, remito: str) -> None: ...

    def reset_sign_buttons(self) -> None: ...

    def show_error(self, message: str) -> None: ...

    def navigate(self, session: SigningSession) -> None: ...


class TableController:
    def __init__(
        self,
        view: TableView,
        fetcher: RemitoFetcher,
        columns_provider: Callable[[], List[DbColumn]],
        reports: ReportClient,
        clock: Optional[Clock] = None,
        page_size: int = 50,
        debounce_delay: float = FILTER_DEBOUNCE_SECONDS,
        click_interval: float = FILTER_CLICK_INTERVAL_SECONDS,
    ) -> None:
        self.view = view
        self.fetcher = fetcher
        self.columns_provider = columns_provider
        self.reports = reports
        self.page_size = page_size
        self.state = FilterSessionState()
        self.phase = FilterPhase.IDLE
        self.params: Optional[SearchParams] = None
        self.columns: List[DbColumn] = []
        self.selected: Optional[Dict[str, str]] = None
        self.is_processing = False

        self._clock = clock or LoopClock()
        self._debouncer = Debouncer(self._clock, debounce_delay, self._on_debounce_elapsed)
        self._click_throttle = ClickThrottle(self._clock, click_interval)
        self._pending_text: Dict[str, str] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.pagination = PaginationController(view, self._load_page)

    # Data loading

    async def search(self, company: str, facility: str, desde: Optional[str] = None) -> None:
        """Show the remitos of a company/facility with the active filters."""
        self.params = SearchParams(company=company, facility=facility, desde=desde)
        await self._fetch_and_render(page=1)

    async def refresh(self) -> None:
        """Back to defaults: pending remitos only, no text filters, fresh headers."""
        if self.params is None:
            self.view.show_error("No se encontró selección. Por favor selecciona un puesto primero.")
            return
        self._debouncer.cancel()
        self._pending_text.clear()
        self.state.firmado_filter = FIRMADO_PENDING
        self.state.text_filters = {}
        await self._fetch_and_render(page=1, force_headers=True)

    async def refresh_with_filters(self) -> None:
        await self._fetch_and_render(page=1)

    async def refresh_with_page_size(self, page_size: int, page: int = 1) -> None:
        self.page_size = page_size
        await self._fetch_and_render(page=page)

    async def refresh_table_config(self, merged: Optional[MergedConfig] = None) -> None:
        """Re-render after a configuration change; text filters are dropped."""
        self.columns = self.columns_provider()
        if self.params is None:
            return
        self._debouncer.cancel()
        self._pending_text.clear()
        self.state.text_filters = {}
        await self._fetch_and_render(page=1, force_headers=True)

    async def _load_page(self, page: int) -> None:
        await self._fetch_and_render(page=page)

    async def _fetch_and_render(self, page: int, force_headers: bool = False) -> None:
        if self.params is None:
            return
        self.phase = FilterPhase.FETCHING
        fetched = False
        try:
            result = await self.fetcher.fetch_remitos(
                self.params.company,
                self.params.facility,
                self.params.desde,
                page=page,
                page_size=self.page_size,
                firmado_filter=self.state.firmado_filter,
                text_filters=dict(self.state.text_filters),
            )
            fetched = True
        except (RemitosError, httpx.HTTPError) as exc:
            logger.error("table_fetch_failed", page=page, error=str(exc))
            self.view.show_error(f"Error al actualizar la tabla: {exc}")
            return
        finally:
            self.phase = FilterPhase.DEBOUNCING if self._debouncer.pending else FilterPhase.IDLE
            if not fetched:
                self.view.reset_sign_buttons()
        self.render(result, force_headers=force_headers)

    # Rendering

    def needs_header_update(self, force: bool = False) -> bool:
        existing = self.view.header_cell_count()
        return existing is None or existing != len(self.columns) or force

    def render(self, result: FetchResult, force_headers: bool = False) -> None:
        self.columns = self.columns_provider()
        if self.needs_header_update(force_headers):
            logger.debug("headers_regenerated", columns=len(self.columns), forced=force_headers)
            self.view.render_headers(self.columns, self.state)
            self._restore_focus()
        self.view.render_rows(result.remitos, self.columns)
        self.pagination.update(result.pagination)

    def _restore_focus(self) -> None:
        focus = self.state.focus_state
        if focus is None:
            return
        self.view.focus_filter(focus.field, focus.cursor_position)
        self.state.focus_state = None

    # Filter interaction

    def on_filter_input(self, field: str, value: str, cursor_position: Optional[int] = None) -> None:
        """A keystroke in a text filter; the fetch happens after a quiet period."""
        self.state.focus_state = FocusState(
            field=field,
            cursor_position=len(value) if cursor_position is None else cursor_position,
        )
        self._pending_text[field] = value
        self.phase = FilterPhase.DEBOUNCING
        self._debouncer.trigger()

    def _on_debounce_elapsed(self) -> None:
        self._spawn(self.apply_text_filters())

    def _commit_pending_text(self) -> None:
        for field, value in self._pending_text.items():
            value = value.strip()
            if value:
                self.state.text_filters[field] = value
            else:
                self.state.text_filters.pop(field, None)
        self._pending_text.clear()

    async def apply_text_filters(self) -> None:
        self._commit_pending_text()
        if self.params is None:
            self.phase = FilterPhase.IDLE
            return
        await self._fetch_and_render(page=1)

    def on_firmado_option_click(self, value: str) -> bool:
        """Select a signed-status option; ignored if clicked again too soon."""
        if not self._click_throttle.accept():
            logger.debug("firmado_click_ignored", value=value)
            return False
        self.state.firmado_filter = value
        self.view.select_firmado_option(value)
        # Text typed but not yet debounced goes out with this fetch.
        self._debouncer.cancel()
        self._commit_pending_text()
        self._spawn(self.refresh_with_filters())
        return True

    def clear_text_filters(self) -> None:
        self._debouncer.cancel()
        self._pending_text.clear()
        self.state.text_filters = {}
        self.view.clear_filter_inputs()

    # Rows and signing

    def select_row(self, row: Mapping[str, Any]) -> Optional[Dict[str, str]]:
        company = str(row.get(COMPANY_FIELD) or "")
        facility = str(row.get(FACILITY_FIELD) or "")
        remito = str(row.get(DOCUMENT_FIELD) or "")
        if company and facility and remito:
            self.selected = {"company": company, "facility": facility, "remito": remito}
        return self.selected

    async def sign_remito(self, row: Mapping[str, Any]) -> bool:
        """Retrieve the report PDF of ``row`` and open the signing view.

        Only one retrieval may be in flight across all rows.
        """
        if self.is_processing:
            return False
        self.is_processing = True

        remito = str(row.get(DOCUMENT_FIELD) or "")
        self.view.set_sign_button_busy(remito)
        opened = False
        try:
            pdf = await self.reports.retrieve(remito)
            session = SigningSession(remito=_remito_summary(row), pdf=pdf)
            self.view.navigate(session)
            opened = True
        except (RemitosError, httpx.HTTPError) as exc:
            logger.error("sign_retrieve_failed", remito=remito, error=str(exc))
            self.view.show_error(str(exc))
            return False
        finally:
            if not opened:
                self.is_processing = False
                self.view.reset_sign_buttons()

        logger.info("sign_session_opened", remito=remito)
        return True

    def on_window_focus(self) -> None:
        self.is_processing = False
        self.view.reset_sign_buttons()

    def on_visibility_change(self, hidden: bool) -> None:
        if not hidden:
            self.on_window_focus()

    # Task bookkeeping

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every fetch started by input, click or timer handlers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


def _remito_summary(row: Mapping[str, Any]) -> Dict[str, str]:
    return {
        "cpy": str(row.get(COMPANY_FIELD) or ""),
        "stofcy": str(row.get(FACILITY_FIELD) or ""),
        "sdhnum": str(row.get(DOCUMENT_FIELD) or ""),
        "dlvdat": str(row.get(DATE_FIELD) or ""),
        "bpcord": str(row.get(CUSTOMER_CODE_FIELD) or ""),
        "bpdnam": str(row.get(CUSTOMER_NAME_FIELD) or ""),
    }
