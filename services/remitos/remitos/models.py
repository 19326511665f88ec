"""Domain models for table configuration, dynamic filters and pagination."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

DOCUMENT_FIELD = "SDHNUM_0"
DATE_FIELD = "DLVDAT_0"
CUSTOMER_CODE_FIELD = "BPCORD_0"
CUSTOMER_NAME_FIELD = "BPDNAM_0"
COMPANY_FIELD = "CPY_0"
FACILITY_FIELD = "STOFCY_0"
SIGNED_FIELD = "XX6FLSIGN_0"
CONFIRMATION_FIELD = "CFMFLG_0"

# Flag value meaning "yes" in the delivery table (signed, confirmed, ...).
FLAG_YES = 2

FIRMADO_PENDING = "no-firmados"
FIRMADO_SIGNED = "si-firmados"
FIRMADO_ALL = ""

DEFAULT_WIDTH = "120px"

# JSON documents use camelCase; these are the keys whose attribute differs.
_JSON_TO_ATTR = {
    "filterType": "filter_type",
    "filterOptions": "filter_options",
}
_ATTR_TO_JSON = {attr: key for key, attr in _JSON_TO_ATTR.items()}


class FilterOperator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    LIKE = "LIKE"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    IN = "IN"


@dataclass(slots=True)
class FilterOption:
    value: str
    label: str

    def to_dict(self) -> Dict[str, str]:
        return {"value": self.value, "label": self.label}


def signed_filter_options() -> List[FilterOption]:
    """The three canonical options of the signed-status filter."""
    return [
        FilterOption(value=FIRMADO_PENDING, label="No"),
        FilterOption(value=FIRMADO_SIGNED, label="Sí"),
        FilterOption(value=FIRMADO_ALL, label="Todos"),
    ]


def _parse_options(raw: Any) -> Optional[List[FilterOption]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError("filterOptions must be a list")
    options: List[FilterOption] = []
    for item in raw:
        if isinstance(item, FilterOption):
            options.append(item)
        elif isinstance(item, Mapping):
            options.append(FilterOption(value=str(item.get("value", "")), label=str(item.get("label", ""))))
        else:
            raise ValueError("filterOptions entries must be objects")
    return options


def _parse_position(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


_BOOL_ATTRS = ("visible", "filterable", "sortable")
_STR_ATTRS = ("label", "type", "width", "filter_type")


def validate_override(column_field: str, override: Any) -> None:
    """Raise ValueError when ``override`` cannot be applied to a column."""
    if override is None:
        return
    if not isinstance(override, Mapping):
        raise ValueError(f"override for {column_field} must be an object")
    for key, value in override.items():
        attr = _JSON_TO_ATTR.get(key, key)
        if attr in _BOOL_ATTRS and not isinstance(value, bool):
            raise ValueError(f"{column_field}.{key} must be a boolean")
        if attr in _STR_ATTRS and not isinstance(value, str):
            raise ValueError(f"{column_field}.{key} must be a string")
        if attr == "position" and _parse_position(value) is None:
            raise ValueError(f"{column_field}.position must be an integer")
        if attr == "filter_options":
            _parse_options(value)


@dataclass(slots=True)
class DbColumn:
    """A table column backed by a field of the delivery table."""

    field: str
    label: str
    type: str = "text"
    width: str = DEFAULT_WIDTH
    visible: bool = True
    position: int = 0
    filterable: bool = True
    filter_type: str = "text"
    filter_options: Optional[List[FilterOption]] = None
    sortable: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DbColumn":
        column_field = data.get("field")
        if not column_field:
            raise ValueError("column entry without 'field'")
        column = cls(field=str(column_field), label=str(data.get("label") or column_field))
        return column.with_override(data)

    def with_override(self, override: Mapping[str, Any]) -> "DbColumn":
        """Return a copy where every key present in ``override`` wins.

        Values that cannot be applied (a non-numeric position, malformed
        filter options) are skipped and the column keeps its own value.
        """
        if not isinstance(override, Mapping):
            return replace(self)
        changes: Dict[str, Any] = {}
        for key, value in override.items():
            attr = _JSON_TO_ATTR.get(key, key)
            if attr == "field" or attr not in DbColumn.__dataclass_fields__:
                continue
            if attr == "filter_options":
                try:
                    value = _parse_options(value)
                except ValueError:
                    continue
            elif attr == "position":
                value = _parse_position(value)
                if value is None:
                    continue
            changes[attr] = value
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr in DbColumn.__dataclass_fields__:
            value = getattr(self, attr)
            if attr == "filter_options":
                if value is None:
                    continue
                value = [option.to_dict() for option in value]
            data[_ATTR_TO_JSON.get(attr, attr)] = value
        return data


@dataclass(slots=True)
class StandardConfig:
    """Tenant-wide default table configuration."""

    version: str = "1.0"
    client: str = "standard"
    last_modified: Optional[str] = None
    db_columns: List[DbColumn] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StandardConfig":
        table = data.get("table") or {}
        return cls(
            version=str(data.get("version") or "1.0"),
            client=str(data.get("client") or "standard"),
            last_modified=data.get("lastModified"),
            db_columns=[DbColumn.from_dict(item) for item in table.get("dbColumns") or []],
            settings=dict(table.get("settings") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "client": self.client,
            "lastModified": self.last_modified,
            "table": {
                "dbColumns": [column.to_dict() for column in self.db_columns],
                "settings": dict(self.settings),
            },
        }


@dataclass(slots=True)
class SpecificConfig:
    """Per-installation overrides layered on top of the standard config."""

    version: str = "1.0"
    client: str = "specific"
    last_modified: Optional[str] = None
    column_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    custom_filters: List[Any] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SpecificConfig":
        table = data.get("table") or {}
        overrides = table.get("columnOverrides") or {}
        if not isinstance(overrides, Mapping):
            raise ValueError("columnOverrides must be an object")
        for key, value in overrides.items():
            validate_override(str(key), value)
        return cls(
            version=str(data.get("version") or "1.0"),
            client=str(data.get("client") or "specific"),
            last_modified=data.get("lastModified"),
            column_overrides={str(key): dict(value or {}) for key, value in overrides.items()},
            custom_filters=list(table.get("customFilters") or []),
            settings=dict(table.get("settings") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "client": self.client,
            "lastModified": self.last_modified,
            "table": {
                "columnOverrides": {key: dict(value) for key, value in self.column_overrides.items()},
                "customFilters": list(self.custom_filters),
                "settings": dict(self.settings),
            },
        }


@dataclass(slots=True)
class MergedConfig:
    """Runtime result of combining standard and specific configs. Never persisted."""

    db_columns: List[DbColumn]
    settings: Dict[str, Any] = field(default_factory=dict)

    def column(self, field_name: str) -> Optional[DbColumn]:
        return next((col for col in self.db_columns if col.field == field_name), None)

    def fields(self) -> List[str]:
        return [col.field for col in self.db_columns]


@dataclass(slots=True)
class FilterDescriptor:
    field: str
    operator: FilterOperator | str
    value: str

    def to_dict(self) -> Dict[str, str]:
        operator = self.operator.value if isinstance(self.operator, FilterOperator) else str(self.operator)
        return {"field": self.field, "operator": operator, "value": self.value}


@dataclass(slots=True)
class PaginationState:
    current_page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaginationState":
        return cls(
            current_page=int(data.get("currentPage", 1)),
            page_size=int(data.get("pageSize", 0)),
            total_count=int(data.get("totalCount", 0)),
            total_pages=int(data.get("totalPages", 0)),
            has_next_page=bool(data.get("hasNextPage", False)),
            has_previous_page=bool(data.get("hasPreviousPage", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "pageSize": self.page_size,
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "hasNextPage": self.has_next_page,
            "hasPreviousPage": self.has_previous_page,
        }


@dataclass(slots=True)
class FocusState:
    """Which filter input had focus and where the caret was."""

    field: str
    cursor_position: int = 0


@dataclass(slots=True)
class FilterSessionState:
    """Client-side filter state; survives re-renders, not a reload."""

    firmado_filter: str = FIRMADO_PENDING
    text_filters: Dict[str, str] = field(default_factory=dict)
    focus_state: Optional[FocusState] = None


@dataclass(slots=True)
class FetchResult:
    remitos: List[Dict[str, Any]]
    columns: List[str]
    pagination: PaginationState


@dataclass(slots=True)
class SearchParams:
    """Company/facility selection the table is currently showing."""

    company: str
    facility: str
    desde: Optional[str] = None


def is_signed(row: Mapping[str, Any]) -> bool:
    value = row.get(SIGNED_FIELD)
    if value is None:
        return False
    return str(value).strip() == str(FLAG_YES)
