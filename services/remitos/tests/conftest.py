import json
from datetime import date
from typing import Any, Dict, List

import httpx
import pytest

from remitos.config import AppConfig
from remitos.controller import TableController
from remitos.fetcher import RemitoFetcher
from remitos.merger import fallback_columns
from remitos.pagination import compute_pagination
from remitos.report import ReportClient


class FakeHandle:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Virtual clock; callbacks run only when ``advance`` moves past them."""

    def __init__(self) -> None:
        self.time = 0.0
        self._handles: List[FakeHandle] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(self.time + delay, callback)
        self._handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.time = handle.when
            handle.callback()
        self.time = target


class FakeView:
    def __init__(self) -> None:
        self.header: Any = None
        self.header_renders = 0
        self.rows: List[Dict[str, Any]] = []
        self.controls = None
        self.errors: List[str] = []
        self.focused: List[tuple] = []
        self.selected_option = None
        self.busy: List[str] = []
        self.button_resets = 0
        self.cleared_inputs = 0
        self.navigated = []

    def header_cell_count(self):
        if self.header is None:
            return None
        return len(self.header["cells"])

    def render_headers(self, columns, state) -> None:
        # A fresh object each time stands in for newly created header nodes.
        self.header = {"cells": [col.field for col in columns], "firmado": state.firmado_filter}
        self.header_renders += 1

    def render_rows(self, rows, columns) -> None:
        self.rows = list(rows)

    def render_pagination(self, controls) -> None:
        self.controls = controls

    def select_firmado_option(self, value: str) -> None:
        self.selected_option = value

    def clear_filter_inputs(self) -> None:
        self.cleared_inputs += 1

    def focus_filter(self, field: str, cursor_position: int) -> bool:
        self.focused.append((field, cursor_position))
        return True

    def set_sign_button_busy(self, remito: str) -> None:
        self.busy.append(remito)

    def reset_sign_buttons(self) -> None:
        self.button_resets += 1

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def navigate(self, session) -> None:
        self.navigated.append(session)


def make_row(number: int) -> Dict[str, Any]:
    return {
        "SDHNUM_0": f"R{number:05d}",
        "DLVDAT_0": "2024-03-05T00:00:00.000Z",
        "BPCORD_0": "C001",
        "BPDNAM_0": "Cliente Uno",
        "XX6FLSIGN_0": 1,
        "CPY_0": "AR1",
        "STOFCY_0": "F01",
    }


class FakeBackend:
    """In-memory stand-in for the remitos HTTP server."""

    def __init__(self, total: int = 137) -> None:
        self.total = total
        self.graphql_calls: List[Dict[str, Any]] = []
        self.report_calls: List[Dict[str, str]] = []
        self.graphql_errors = None
        self.report_status = 200
        self.posted: List[Dict[str, Any]] = []
        self.documents: Dict[str, Any] = {}
        self.post_status = 200
        self.report_payload = None
        self.graphql_payload = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/graphql":
            return self._graphql(json.loads(request.content))
        if path == "/api/config/report":
            return httpx.Response(200, json={"report": {"remito": "ZREMITOAI"}})
        if path == "/proxy-getrpt":
            self.report_calls.append(dict(request.url.params))
            if self.report_status != 200:
                return httpx.Response(self.report_status, json={"detail": "upstream"})
            if self.report_payload is not None:
                return httpx.Response(200, json=self.report_payload)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "pdfBase64": "JVBERi0x",
                    "coordinates": {"x": 10, "y": 20},
                    "filename": f"{request.url.params['PCLE']}.pdf",
                },
            )
        if path.startswith("/api/config/"):
            if request.method == "POST":
                self.posted.append(json.loads(request.content))
                return httpx.Response(self.post_status, json={"success": self.post_status == 200})
            document = self.documents.get(path)
            if document is None:
                return httpx.Response(404, json={"detail": "not found"})
            return httpx.Response(200, json=document)
        return httpx.Response(404)

    def _graphql(self, body: Dict[str, Any]) -> httpx.Response:
        variables = body.get("variables") or {}
        self.graphql_calls.append(variables)
        if self.graphql_errors:
            return httpx.Response(200, json={"data": None, "errors": self.graphql_errors})
        if self.graphql_payload is not None:
            return httpx.Response(200, json=self.graphql_payload)
        page = variables.get("page", 1)
        size = variables.get("pageSize", 50)
        state = compute_pagination(self.total, page, size)
        first = (page - 1) * size
        count = max(0, min(size, self.total - first))
        rows = [{"data": make_row(first + index + 1)} for index in range(count)]
        return httpx.Response(
            200,
            json={"data": {"remitosDynamic": {"remitos": rows, "pagination": state.to_dict()}}},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url="http://remitos.test", transport=httpx.MockTransport(self.handler))


def build_controller(backend: FakeBackend, view: FakeView, clock: FakeClock):
    client = backend.client()
    fetcher = RemitoFetcher(client, columns_provider=lambda: [col.field for col in fallback_columns()])
    controller = TableController(
        view,
        fetcher,
        columns_provider=fallback_columns,
        reports=ReportClient(client),
        clock=clock,
    )
    return controller, client


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def view():
    return FakeView()


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def app_config(tmp_path):
    return AppConfig(
        database_url=f"sqlite:///{tmp_path / 'remitos.db'}",
        table_name="SDELIVERY",
        default_desde=date(2022, 1, 1),
        config_dir=tmp_path / "config",
        uploads_dir=tmp_path / "uploads",
        public_base_url="http://localhost:3000",
        report_name="ZREMITOAI",
        report_service_url=None,
        http_timeout=5.0,
        default_page_size=50,
        max_page_size=500,
        log_level="INFO",
        api_url="http://remitos.test",
    )


@pytest.fixture()
def make_controller(backend, view, clock):
    def factory():
        return build_controller(backend, view, clock)

    return factory
