"""Client-side holder of the standard/specific table configs and their merge."""

from __future__ import annotations

import asyncio
import copy
import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from .errors import ConfigLoadError, SaveConfigError
from .logging import get_logger
from .merger import (
    collect_overrides,
    fallback_columns,
    merge,
    reorder_columns,
    sort_by_position,
    standard_from_sql_columns,
    visible_columns,
    visible_columns_filtered_by_sql,
)
from .models import DbColumn, MergedConfig, SpecificConfig, StandardConfig

logger = get_logger(__name__)

DEFAULTS_PATH = "/api/config/table-defaults"
CUSTOMIZATIONS_PATH = "/api/config/table-customizations"

ConfigListener = Callable[[Optional[MergedConfig]], Union[None, Awaitable[None]]]


class ConfigDraft:
    """Editable copy of the merged columns used by the configuration editor.

    Edits stay here until saved, so a failed save loses nothing.
    """

    def __init__(self, columns: Sequence[DbColumn]) -> None:
        self.columns: List[DbColumn] = sort_by_position(copy.deepcopy(list(columns)))
        self.edits: Dict[str, Dict[str, Any]] = {}

    def set(self, field_name: str, **values: Any) -> None:
        allowed = {"visible", "label", "width", "filterable"}
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"Unsupported column edit: {', '.join(sorted(unknown))}")
        self.edits.setdefault(field_name, {}).update(values)

    def reorder(self, dragged: str, target: str, drop: str = "before") -> bool:
        moved = reorder_columns(self.columns, dragged, target, drop)
        if moved:
            self.columns = sort_by_position(self.columns)
        return moved

    def overrides(self) -> Dict[str, Dict[str, Any]]:
        return collect_overrides(self.columns, self.edits)


class ColumnConfigStore:
    def __init__(
        self,
        client: httpx.AsyncClient,
        defaults_path: str = DEFAULTS_PATH,
        customizations_path: str = CUSTOMIZATIONS_PATH,
    ) -> None:
        self.client = client
        self.defaults_path = defaults_path
        self.customizations_path = customizations_path
        self.standard: Optional[StandardConfig] = None
        self.specific: Optional[SpecificConfig] = None
        self._merged: Optional[MergedConfig] = None
        self._listeners: List[ConfigListener] = []
        self.ready = False

    @property
    def merged(self) -> Optional[MergedConfig]:
        return self._merged

    def on_config_changed(self, listener: ConfigListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> Optional[MergedConfig]:
        """Load both documents concurrently. A failed document counts as absent."""
        standard, specific = await asyncio.gather(
            self._load_document(self.defaults_path, StandardConfig.from_dict),
            self._load_document(self.customizations_path, SpecificConfig.from_dict),
        )
        self.standard = standard
        self.specific = specific
        self.ready = True
        await self._remerge()
        return self._merged

    async def apply_sql_columns(self, sql_columns: Sequence[str]) -> Optional[MergedConfig]:
        """Re-derive the standard columns from the live SQL column set."""
        if self.standard is None:
            return self._merged
        self.standard = standard_from_sql_columns(self.standard, sql_columns)
        await self._remerge()
        return self._merged

    def begin_edit(self) -> ConfigDraft:
        return ConfigDraft(self._merged.db_columns if self._merged else [])

    async def save(self, draft: ConfigDraft) -> SpecificConfig:
        specific = copy.deepcopy(self.specific) if self.specific else SpecificConfig()
        specific.column_overrides.update(draft.overrides())
        specific.last_modified = datetime.now(timezone.utc).isoformat()

        try:
            response = await self.client.post(self.customizations_path, json=specific.to_dict())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("config_save_failed", error=str(exc))
            raise SaveConfigError("Error al guardar la configuración") from exc

        self.specific = specific
        logger.info("config_saved", overrides=len(specific.column_overrides))
        await self._remerge()
        return specific

    def current_columns(self) -> List[DbColumn]:
        """Visible merged columns, or the built-in set when nothing is configured."""
        columns = visible_columns(self._merged)
        return columns or fallback_columns()

    def current_fields(self) -> List[str]:
        return [column.field for column in self.current_columns()]

    def columns_filtered_by_sql(self, sql_columns: Sequence[str]) -> List[DbColumn]:
        return visible_columns_filtered_by_sql(self._merged, sql_columns)

    async def _load_document(self, path: str, parser: Callable[[Mapping[str, Any]], Any]) -> Any:
        try:
            return await self._fetch_document(path, parser)
        except ConfigLoadError as exc:
            logger.error("config_load_failed", source=exc.source, error=str(exc))
            return None

    async def _fetch_document(self, path: str, parser: Callable[[Mapping[str, Any]], Any]) -> Any:
        try:
            response = await self.client.get(path)
            response.raise_for_status()
            return parser(response.json())
        except httpx.HTTPError as exc:
            raise ConfigLoadError(path, str(exc)) from exc
        except (ValueError, TypeError, AttributeError) as exc:
            raise ConfigLoadError(path, f"invalid document: {exc}") from exc

    async def _remerge(self) -> None:
        self._merged = merge(self.standard, self.specific)
        logger.info(
            "config_merged",
            standard=self.standard is not None,
            specific=self.specific is not None,
            columns=len(self._merged.db_columns) if self._merged else 0,
        )
        for listener in list(self._listeners):
            result = listener(self._merged)
            if inspect.isawaitable(result):
                await result
