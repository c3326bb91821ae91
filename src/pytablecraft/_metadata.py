"""Client-facing table metadata: columns, capabilities and filter operators."""

from __future__ import annotations

from typing import Any

from pytablecraft._dates import DatePreset
from pytablecraft._fields import FieldResolver, Provenance
from pytablecraft._roles import apply_role_visibility
from pytablecraft.config import ColumnType, FilterKind, Operator, TableConfig
from pytablecraft.dialect._base import Dialect
from pytablecraft.params import EngineContext

_COMMON = (Operator.EQ, Operator.NEQ, Operator.IS_NULL, Operator.IS_NOT_NULL)

OPERATORS_BY_TYPE: dict[ColumnType, tuple[Operator, ...]] = {
    ColumnType.STRING: _COMMON + (
        Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH,
        Operator.LIKE, Operator.ILIKE, Operator.IN, Operator.NOT_IN,
    ),
    ColumnType.NUMBER: _COMMON + (
        Operator.GT, Operator.GTE, Operator.LT, Operator.LTE,
        Operator.BETWEEN, Operator.IN, Operator.NOT_IN,
    ),
    ColumnType.DATE: _COMMON + (
        Operator.GT, Operator.GTE, Operator.LT, Operator.LTE, Operator.BETWEEN,
    ),
    ColumnType.BOOLEAN: (Operator.EQ, Operator.NEQ),
    ColumnType.UUID: _COMMON + (Operator.IN, Operator.NOT_IN),
    ColumnType.JSON: _COMMON,
}
"""Filter operators a client may offer for each column type."""

_CREATED_AT_NAMES = ("createdAt", "created_at")

_DATE_PRESETS = [p.value for p in DatePreset if p != DatePreset.CUSTOM]


def operators_for(column_type: ColumnType | str) -> list[str]:
    return [str(op) for op in OPERATORS_BY_TYPE.get(ColumnType(column_type), _COMMON)]


def _date_range_column(config: TableConfig, date_columns: list[str]) -> str | None:
    if config.date_range_column in date_columns:
        return config.date_range_column
    for name in _CREATED_AT_NAMES:
        if name in date_columns:
            return name
    return date_columns[0] if date_columns else None


def build_metadata(
    config: TableConfig,
    dialect: Dialect,
    context: EngineContext | None = None,
) -> dict[str, Any]:
    """Describe the table as the caller may see it.

    Hidden and role-restricted columns are left out. The date-range column
    is the configured one when it is a visible, non-computed date column,
    else ``createdAt``/``created_at``, else the first such column.
    """
    scoped = apply_role_visibility(config, context)
    resolver = FieldResolver(scoped, dialect)
    visible = resolver.selectable_fields()

    columns = []
    filters = []
    for field in visible:
        col = field.column
        label = (col.label if col is not None else None) or field.name
        entry: dict[str, Any] = {
            "name": field.name,
            "type": str(field.type),
            "label": label,
            "sortable": field.sortable and field.scalar,
            "filterable": field.filterable and field.scalar,
            "source": str(field.provenance),
            "operators": operators_for(field.type),
        }
        if col is not None and col.options:
            entry["options"] = list(col.options)
        if field.type == ColumnType.DATE:
            entry["datePresets"] = list(_DATE_PRESETS)
        columns.append(entry)
        if entry["filterable"]:
            filters.append({
                k: entry[k]
                for k in ("name", "type", "label", "operators", "options", "datePresets")
                if k in entry
            })

    date_columns = [
        f.name for f in visible
        if f.type == ColumnType.DATE and f.provenance in (Provenance.BASE, Provenance.JOIN)
    ]
    static = [f.field for f in scoped.filters if f.type == FilterKind.STATIC]
    static.extend(c.field for c in scoped.backend_conditions)
    search = scoped.search
    pagination = scoped.pagination

    return {
        "name": scoped.name,
        "dateRangeColumn": _date_range_column(scoped, date_columns),
        "dateColumns": date_columns,
        "columns": columns,
        "filters": filters,
        "staticFilters": static,
        "aggregations": [
            {"alias": a.alias, "type": str(a.type), "field": a.field}
            for a in scoped.aggregations
        ],
        "capabilities": {
            "search": bool(search and search.enabled),
            "searchFields": list(search.fields) if search else [],
            "pagination": {
                "enabled": pagination.enabled,
                "defaultPageSize": pagination.default_page_size,
                "maxPageSize": pagination.max_page_size,
                "cursor": True,
            },
            "sort": {
                "enabled": any(c["sortable"] for c in columns),
                "defaultSort": [
                    {"field": s.field, "direction": str(s.direction)}
                    for s in scoped.default_sort
                ],
            },
            "groupBy": bool(scoped.group_by and scoped.group_by.fields),
            "groupByFields": list(scoped.group_by.fields) if scoped.group_by else [],
            "recursive": scoped.recursive is not None,
        },
    }
