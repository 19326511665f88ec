"""Runtime wiring for CLI, service and client entrypoints."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from .config import AppConfig, load_config
from .config_store import ColumnConfigStore
from .controller import TableController, TableView
from .db import RemitoDatabase
from .fetcher import RemitoFetcher
from .logging import configure_logging
from .query_builder import DynamicQueryBuilder
from .report import ReportClient, ReportProxy
from .storage import ConfigDocumentStore, UploadStore
from .timers import Clock


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    database: RemitoDatabase
    documents: ConfigDocumentStore
    uploads: UploadStore
    report_proxy: ReportProxy

    def close(self) -> None:
        self.database.dispose()


def build_runtime(config: AppConfig | None = None) -> Runtime:
    cfg = config or load_config()
    configure_logging(cfg.log_level)

    builder = DynamicQueryBuilder(
        table_name=cfg.table_name,
        default_desde=cfg.default_desde,
        max_page_size=cfg.max_page_size,
    )
    database = RemitoDatabase(cfg.require_database_url(), builder)

    return Runtime(
        config=cfg,
        database=database,
        documents=ConfigDocumentStore(cfg.config_dir),
        uploads=UploadStore(cfg.uploads_dir, cfg.public_base_url),
        report_proxy=ReportProxy(cfg.report_service_url, cfg.http_timeout),
    )


@dataclass(slots=True)
class ClientRuntime:
    config: AppConfig
    client: httpx.AsyncClient
    store: ColumnConfigStore
    fetcher: RemitoFetcher
    reports: ReportClient
    controller: TableController

    async def aclose(self) -> None:
        await self.client.aclose()


def build_client_runtime(
    view: TableView,
    config: AppConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock | None = None,
) -> ClientRuntime:
    cfg = config or load_config()
    configure_logging(cfg.log_level)

    client = httpx.AsyncClient(base_url=cfg.api_url, timeout=cfg.http_timeout, transport=transport)
    store = ColumnConfigStore(client)
    fetcher = RemitoFetcher(client, columns_provider=store.current_fields)
    reports = ReportClient(client)
    controller = TableController(
        view,
        fetcher,
        columns_provider=store.current_columns,
        reports=reports,
        clock=clock,
        page_size=cfg.default_page_size,
    )
    store.on_config_changed(controller.refresh_table_config)

    return ClientRuntime(
        config=cfg,
        client=client,
        store=store,
        fetcher=fetcher,
        reports=reports,
        controller=controller,
    )
