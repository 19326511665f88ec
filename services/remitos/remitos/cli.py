"""Command-line interface for the remitos signing service."""

from __future__ import annotations

import json
from contextlib import closing
from datetime import date, datetime
from typing import List, Optional

import typer

from .errors import RemitosError
from .logging import get_logger
from .merger import standard_from_sql_columns
from .models import FilterDescriptor, StandardConfig
from .query_builder import RemitoQuery
from .runtime import build_runtime

logger = get_logger(__name__)

app = typer.Typer(add_completion=False, help="Remitos signing service")


@app.command("service")
def service_command(
    host: str = typer.Option("0.0.0.0", "--host", help="Service bind host"),
    port: int = typer.Option(3000, "--port", help="Service port"),
) -> None:
    import uvicorn

    uvicorn.run(
        "remitos.app:create_app",
        host=host,
        port=port,
        factory=True,
        log_level="info",
    )


@app.command("columns")
def columns_command(
    write: bool = typer.Option(
        False,
        "--write",
        help="Rebuild the standard table configuration from the live columns",
    ),
) -> None:
    runtime = build_runtime()
    with closing(runtime):
        columns = runtime.database.available_columns()
        if not write:
            typer.echo(json.dumps(columns))
            return

        current = runtime.documents.load_standard()
        standard = StandardConfig.from_dict(current) if current else StandardConfig()
        rebuilt = standard_from_sql_columns(standard, columns)
        runtime.documents.save_standard(rebuilt.to_dict())
        typer.echo(f"Standard configuration rebuilt with {len(columns)} column(s)")


@app.command("query")
def query_command(
    cpy: str = typer.Option(..., "--cpy", help="Company code"),
    stofcy: str = typer.Option(..., "--stofcy", help="Facility code"),
    column: List[str] = typer.Option(..., "--column", "-c", help="Column to select (repeatable)"),
    filter_values: Optional[List[str]] = typer.Option(
        None,
        "--filter",
        "-f",
        help="Filter as FIELD:OPERATOR:VALUE (repeatable)",
    ),
    page: int = typer.Option(1, "--page"),
    page_size: Optional[int] = typer.Option(None, "--page-size"),
    desde: Optional[str] = typer.Option(None, "--desde", help="Lower date bound (YYYY-MM-DD)"),
) -> None:
    runtime = build_runtime()
    with closing(runtime):
        query = RemitoQuery(
            company=cpy,
            facility=stofcy,
            columns=column,
            filters=[_parse_filter(raw) for raw in filter_values or []],
            desde=_parse_iso_date(desde) if desde else None,
            page=page,
            page_size=page_size or runtime.config.default_page_size,
        )
        try:
            result = runtime.database.remitos_dynamic(query)
        except RemitosError as exc:
            logger.error("query_failed", error=str(exc))
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        typer.echo(json.dumps({
            "remitos": result.rows,
            "pagination": result.pagination.to_dict(),
        }, ensure_ascii=False))


def _parse_filter(raw: str) -> FilterDescriptor:
    parts = raw.split(":", 2)
    if len(parts) != 3:
        raise typer.BadParameter(f"Filter '{raw}' must look like FIELD:OPERATOR:VALUE")
    field_name, operator, value = parts
    return FilterDescriptor(field_name, operator, value)


def _parse_iso_date(value: str) -> date:
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as exc:  # pragma: no cover - user input guard
        raise typer.BadParameter("Date must be in YYYY-MM-DD format") from exc


def main():
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
