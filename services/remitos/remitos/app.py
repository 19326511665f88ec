"""FastAPI application serving the remitos GraphQL API and configuration endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from strawberry.fastapi import GraphQLRouter

from .errors import ReportUnavailableError
from .logging import bind_request_context, get_logger
from .report import REPORT_PARAMS
from .runtime import Runtime, build_runtime
from .schema import schema

logger = get_logger(__name__)


class ConfigDocument(BaseModel):
    version: str = "1.0"
    client: Optional[str] = None
    last_modified: Optional[str] = Field(None, alias="lastModified")
    table: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime = request.app.state.runtime
    return runtime


async def get_graphql_context(request: Request) -> Dict[str, Any]:
    return {"runtime": request.app.state.runtime}


def _invalid_document(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": "INVALID_CONFIG", "message": str(exc)},
    )


def create_app(runtime_factory: Callable[[], Runtime] = build_runtime) -> FastAPI:
    runtime = runtime_factory()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime
        try:
            yield
        finally:
            runtime.close()

    api = FastAPI(title="Remitos Signing Service", version="1.0.0", lifespan=lifespan)
    api.include_router(GraphQLRouter(schema, context_getter=get_graphql_context), prefix="/graphql")
    api.mount("/uploads", StaticFiles(directory=runtime.uploads.uploads_dir), name="uploads")

    @api.middleware("http")
    async def log_context(request: Request, call_next):
        bind_request_context(request.method, request.url.path)
        return await call_next(request)

    @api.get("/health")
    def health(runtime: Runtime = Depends(get_runtime)) -> dict:
        return {
            "status": "healthy",
            "service": "remitos",
            "table": runtime.database.table_name,
            "report_service": runtime.report_proxy.configured,
        }

    @api.get("/api/config/table-defaults")
    def get_table_defaults(runtime: Runtime = Depends(get_runtime)) -> dict:
        document = runtime.documents.load_standard()
        if document is None:
            raise HTTPException(
                status_code=404,
                detail={"code": "NOT_FOUND", "message": "Standard configuration not found"},
            )
        return document

    @api.post("/api/config/table-defaults")
    def save_table_defaults(payload: ConfigDocument, runtime: Runtime = Depends(get_runtime)) -> dict:
        try:
            saved = runtime.documents.save_standard(payload.model_dump(by_alias=True))
        except (ValueError, TypeError) as exc:
            raise _invalid_document(exc) from exc
        return {"success": True, "message": "Configuration saved successfully", "lastModified": saved["lastModified"]}

    @api.get("/api/config/table-customizations")
    def get_table_customizations(runtime: Runtime = Depends(get_runtime)) -> dict:
        return runtime.documents.load_specific()

    @api.post("/api/config/table-customizations")
    def save_table_customizations(payload: ConfigDocument, runtime: Runtime = Depends(get_runtime)) -> dict:
        try:
            saved = runtime.documents.save_specific(payload.model_dump(by_alias=True))
        except (ValueError, TypeError) as exc:
            raise _invalid_document(exc) from exc
        return {"success": True, "message": "Configuration saved successfully", "lastModified": saved["lastModified"]}

    @api.get("/api/config/report")
    def report_config(runtime: Runtime = Depends(get_runtime)) -> dict:
        return {"report": {"remito": runtime.config.report_name}}

    @api.get("/proxy-getrpt")
    async def proxy_get_report(
        request: Request,
        runtime: Runtime = Depends(get_runtime),
    ) -> dict:
        params = {name: request.query_params.get(name) for name in REPORT_PARAMS}
        missing = [name for name, value in params.items() if not value]
        if missing:
            raise HTTPException(
                status_code=400,
                detail={"code": "MISSING_PARAMS", "message": f"Faltan parametros: {', '.join(missing)}"},
            )
        if not runtime.report_proxy.configured:
            raise HTTPException(
                status_code=503,
                detail={"code": "REPORT_SERVICE_UNAVAILABLE", "message": "Report service is not configured"},
            )
        try:
            return await runtime.report_proxy.fetch(params)
        except ReportUnavailableError as exc:
            logger.error("proxy_getrpt_failed", remito=params["PCLE"], error=str(exc))
            raise HTTPException(
                status_code=502,
                detail={"code": "REPORT_ERROR", "message": str(exc)},
            ) from exc

    return api
