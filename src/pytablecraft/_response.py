"""Response shaping: hidden-field stripping, field selection, value transforms."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from pytablecraft._constants import CURSOR_KEY_PREFIX
from pytablecraft._joins import walk_joins
from pytablecraft.config import ColumnConfig, TableConfig

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]

_PARAMETERIZED_RE = re.compile(r"^(\w+)\((.+)\)$")


def _uppercase(v: Any) -> Any:
    return v.upper() if isinstance(v, str) else v


def _lowercase(v: Any) -> Any:
    return v.lower() if isinstance(v, str) else v


def _trim(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


def _to_string(v: Any) -> str:
    return "" if v is None else str(v)


def _to_number(v: Any) -> Any:
    if v is None:
        return 0
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return v
    if isinstance(v, Decimal):
        return float(v)
    try:
        number = float(v)
    except (TypeError, ValueError):
        return float("nan")
    return int(number) if number.is_integer() else number


def _to_boolean(v: Any) -> bool:
    return bool(v)


def _format_date(v: Any) -> Any:
    if isinstance(v, datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, str):
        try:
            return _format_date(datetime.fromisoformat(v.replace("Z", "+00:00")))
        except ValueError:
            return v
    return v


def _format_currency(v: Any) -> Any:
    if isinstance(v, bool) or not isinstance(v, (int, float, Decimal)):
        return v
    sign = "-" if v < 0 else ""
    return f"{sign}${abs(v):,.2f}"


BUILTIN_TRANSFORMS: dict[str, Transform] = {
    "uppercase": _uppercase,
    "lowercase": _lowercase,
    "trim": _trim,
    "toString": _to_string,
    "toNumber": _to_number,
    "toBoolean": _to_boolean,
    "formatDate": _format_date,
    "formatCurrency": _format_currency,
}


class TransformRegistry:
    """Named value transforms; custom registrations take precedence over built-ins."""

    def __init__(self) -> None:
        self._custom: dict[str, Transform] = {}

    def register(self, name: str, fn: Transform) -> None:
        self._custom[name] = fn

    def unregister(self, name: str) -> None:
        self._custom.pop(name, None)

    def get(self, spec: str) -> Transform | None:
        m = _PARAMETERIZED_RE.match(spec)
        if m and m.group(1) == "slice":
            args = [a.strip() for a in m.group(2).split(",")]
            if len(args) == 2:
                try:
                    start, end = int(args[0]), int(args[1])
                except ValueError:
                    return None
                return lambda v: v[start:end] if isinstance(v, str) else v
        return self._custom.get(spec) or BUILTIN_TRANSFORMS.get(spec)


default_registry = TransformRegistry()


def register_transform(name: str, fn: Transform) -> None:
    """Register a custom transform usable in ``ColumnConfig.transform``."""
    default_registry.register(name, fn)


def _all_columns(config: TableConfig) -> list[ColumnConfig]:
    columns = list(config.columns)
    for join, _ in walk_joins(config.joins, config.base):
        columns.extend(join.columns)
    return columns


def _transform_map(
    config: TableConfig, registry: TransformRegistry
) -> dict[str, list[Transform]]:
    result: dict[str, list[Transform]] = {}
    for col in _all_columns(config):
        fns = []
        for spec in col.transform:
            fn = registry.get(spec)
            if fn is None:
                logger.warning("unknown transform %r on column %r", spec, col.name)
                continue
            fns.append(fn)
        if fns:
            result.setdefault(col.name, fns)
    return result


def apply_transforms(
    rows: list[dict[str, Any]],
    config: TableConfig,
    registry: TransformRegistry | None = None,
) -> list[dict[str, Any]]:
    transforms = _transform_map(config, registry or default_registry)
    if not transforms:
        return rows
    out = []
    for row in rows:
        new = dict(row)
        for name, fns in transforms.items():
            if name in new:
                value = new[name]
                for fn in fns:
                    value = fn(value)
                new[name] = value
        out.append(new)
    return out


def hidden_fields(config: TableConfig) -> set[str]:
    return {c.name for c in _all_columns(config) if c.hidden}


def shape_response(
    rows: Iterable[dict[str, Any]],
    meta: dict[str, Any],
    config: TableConfig,
    select: Iterable[str] | None = None,
    aggregations: dict[str, Any] | None = None,
    *,
    registry: TransformRegistry | None = None,
) -> dict[str, Any]:
    """Build the ``{data, meta, aggregations?}`` envelope.

    Hidden fields and raw cursor keys are always removed; with ``select``
    only those fields are kept. Column transforms run last.
    """
    hidden = hidden_fields(config)
    wanted = set(select) if select else None
    data = []
    for row in rows:
        data.append({
            k: v for k, v in row.items()
            if k not in hidden
            and not k.startswith(CURSOR_KEY_PREFIX)
            and (wanted is None or k in wanted)
        })
    result: dict[str, Any] = {
        "data": apply_transforms(data, config, registry),
        "meta": meta,
    }
    if aggregations is not None:
        result["aggregations"] = aggregations
    return result
