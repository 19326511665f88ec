"""Merging of standard and specific table configurations."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .logging import get_logger
from .models import (
    COMPANY_FIELD,
    CUSTOMER_CODE_FIELD,
    CUSTOMER_NAME_FIELD,
    DATE_FIELD,
    DEFAULT_WIDTH,
    DOCUMENT_FIELD,
    FACILITY_FIELD,
    SIGNED_FIELD,
    DbColumn,
    MergedConfig,
    SpecificConfig,
    StandardConfig,
    signed_filter_options,
)

logger = get_logger(__name__)

DEFAULT_LABELS = {
    DOCUMENT_FIELD: "Remito",
    DATE_FIELD: "Fecha",
    CUSTOMER_CODE_FIELD: "Código",
    CUSTOMER_NAME_FIELD: "Razón",
    COMPANY_FIELD: COMPANY_FIELD,
    FACILITY_FIELD: FACILITY_FIELD,
    SIGNED_FIELD: "Firmado",
}

HIDDEN_BY_DEFAULT = frozenset({COMPANY_FIELD, FACILITY_FIELD})

FALLBACK_FIELDS = (
    DOCUMENT_FIELD,
    DATE_FIELD,
    CUSTOMER_CODE_FIELD,
    CUSTOMER_NAME_FIELD,
    SIGNED_FIELD,
)


def sort_by_position(columns: Iterable[DbColumn]) -> List[DbColumn]:
    """Order columns by ``position``; equal positions keep their input order."""
    return sorted(columns, key=lambda col: col.position)


def default_label_for_field(field_name: str) -> str:
    return DEFAULT_LABELS.get(field_name, field_name)


def default_visibility_for_field(field_name: str) -> bool:
    return field_name not in HIDDEN_BY_DEFAULT


def _signed_defaults(field_name: str) -> Dict[str, Any]:
    if field_name != SIGNED_FIELD:
        return {}
    return {"filter_type": "select", "filter_options": signed_filter_options()}


def synthesize_column(field_name: str, override: Mapping[str, Any]) -> DbColumn:
    """Create a column that only exists as an override entry."""
    base = DbColumn(
        field=field_name,
        label=field_name,
        type="text",
        width=DEFAULT_WIDTH,
        visible=True,
        position=0,
        filterable=True,
        filter_type="text",
        sortable=True,
        **_signed_defaults(field_name),
    )
    return base.with_override(override)


def merge(standard: Optional[StandardConfig], specific: Optional[SpecificConfig]) -> Optional[MergedConfig]:
    """Combine standard and specific configs into a fresh MergedConfig.

    With only a specific config every override becomes a column of its own.
    With both, the standard columns are the universe: overrides are applied
    key by key and overrides for unknown fields are ignored. Never raises;
    returns None when there is nothing to merge.
    """
    if standard is None and specific is None:
        return None

    if specific is None:
        logger.debug("merge_standard_only", columns=len(standard.db_columns))
        return MergedConfig(
            db_columns=sort_by_position(copy.deepcopy(standard.db_columns)),
            settings=dict(standard.settings),
        )

    if standard is None:
        logger.debug("merge_specific_only", overrides=len(specific.column_overrides))
        columns = [
            synthesize_column(field_name, override or {})
            for field_name, override in specific.column_overrides.items()
        ]
        return MergedConfig(db_columns=sort_by_position(columns), settings=dict(specific.settings))

    columns = []
    for column in standard.db_columns:
        override = specific.column_overrides.get(column.field)
        columns.append(column.with_override(override) if override else copy.deepcopy(column))

    ignored = set(specific.column_overrides) - {col.field for col in standard.db_columns}
    if ignored:
        logger.debug("merge_overrides_ignored", fields=sorted(ignored))

    settings = {**standard.settings, **specific.settings}
    return MergedConfig(db_columns=sort_by_position(columns), settings=settings)


def standard_from_sql_columns(standard: StandardConfig, sql_columns: Sequence[str]) -> StandardConfig:
    """Re-derive the standard column list from the live SQL column set.

    Columns follow SQL order; metadata other than the column list is kept.
    """
    columns = []
    for index, field_name in enumerate(sql_columns):
        columns.append(
            DbColumn(
                field=field_name,
                label=default_label_for_field(field_name),
                type="text",
                width=DEFAULT_WIDTH,
                visible=default_visibility_for_field(field_name),
                position=index,
                filterable=True,
                filter_type="text",
                sortable=True,
                **_signed_defaults(field_name),
            )
        )
    return StandardConfig(
        version=standard.version,
        client=standard.client,
        last_modified=_now_iso(),
        db_columns=columns,
        settings=dict(standard.settings),
    )


def fallback_columns() -> List[DbColumn]:
    """Columns used when no configuration is available at all."""
    return [
        DbColumn(
            field=field_name,
            label=default_label_for_field(field_name),
            position=index,
            **_signed_defaults(field_name),
        )
        for index, field_name in enumerate(FALLBACK_FIELDS)
    ]


def visible_columns(merged: Optional[MergedConfig]) -> List[DbColumn]:
    if merged is None:
        return []
    return sort_by_position(col for col in merged.db_columns if col.visible)


def visible_columns_filtered_by_sql(merged: Optional[MergedConfig], sql_columns: Iterable[str]) -> List[DbColumn]:
    available = set(sql_columns)
    return [col for col in visible_columns(merged) if col.field in available]


def reorder_columns(columns: List[DbColumn], dragged: str, target: str, drop: str = "before") -> bool:
    """Move ``dragged`` before or after ``target`` and renumber positions from 0.

    Returns False (and changes nothing) when either field is unknown or both
    are the same column.
    """
    if dragged == target:
        return False
    order = [col.field for col in sort_by_position(columns)]
    if dragged not in order or target not in order:
        return False

    dragged_index = order.index(dragged)
    target_index = order.index(target)
    order.pop(dragged_index)
    insert_index = target_index
    if dragged_index < target_index:
        insert_index -= 1
    if drop == "after":
        insert_index += 1
    order.insert(insert_index, dragged)

    by_field = {col.field: col for col in columns}
    for index, field_name in enumerate(order):
        by_field[field_name].position = index
    return True


def collect_overrides(
    columns: Sequence[DbColumn],
    edits: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Build the override map saved in the specific config.

    Every column gets an entry so that reordering is preserved; edited values
    win over the current ones and ``position`` always reflects ``columns``.
    """
    edits = edits or {}
    overrides: Dict[str, Dict[str, Any]] = {}
    for column in columns:
        edit = edits.get(column.field, {})
        overrides[column.field] = {
            "visible": bool(edit.get("visible", column.visible)),
            "label": str(edit.get("label", column.label)),
            "width": str(edit.get("width", column.width)),
            "filterable": bool(edit.get("filterable", column.filterable)),
            "position": column.position,
        }
    return overrides


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
