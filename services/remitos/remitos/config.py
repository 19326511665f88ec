"""Configuration loader for the remitos signing service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is not None:
        value = value.strip()
        if value == "":
            return default
        return value
    return default


def _get_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer") from exc


def _get_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number") from exc


def _get_date(key: str, default: str) -> date:
    value = _get_env(key, default)
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a YYYY-MM-DD date") from exc


@dataclass(slots=True)
class AppConfig:
    database_url: Optional[str]
    table_name: str
    default_desde: date
    config_dir: Path
    uploads_dir: Path
    public_base_url: str
    report_name: str
    report_service_url: Optional[str]
    http_timeout: float
    default_page_size: int
    max_page_size: int
    log_level: str
    api_url: str

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ValueError("DATABASE_URL must be set")
        return self.database_url


DEFAULT_DESDE = "2022-01-01"


def load_config() -> AppConfig:
    table_name = _get_env("REMITOS_TABLE", "SDELIVERY")
    default_page_size = max(1, _get_int("DEFAULT_PAGE_SIZE", 50))
    max_page_size = max(default_page_size, _get_int("MAX_PAGE_SIZE", 500))

    return AppConfig(
        database_url=_get_env("DATABASE_URL"),
        table_name=table_name,
        default_desde=_get_date("REMITOS_DEFAULT_DESDE", DEFAULT_DESDE),
        config_dir=Path(_get_env("CONFIG_DIR", "config")),
        uploads_dir=Path(_get_env("UPLOADS_DIR", "uploads")),
        public_base_url=_get_env("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        report_name=_get_env("REPORT_NAME", "ZREMITOAI"),
        report_service_url=_get_env("REPORT_SERVICE_URL"),
        http_timeout=_get_float("HTTP_TIMEOUT_SECONDS", 30.0),
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        api_url=_get_env("REMITOS_API_URL", "http://localhost:3000").rstrip("/"),
    )
