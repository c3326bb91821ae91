"""Role-based column visibility and table access rules."""

from __future__ import annotations

from dataclasses import replace

from pytablecraft._errors import AccessDeniedError
from pytablecraft.config import ColumnConfig, JoinConfig, TableConfig
from pytablecraft.params import EngineContext


def _roles(context: EngineContext | None) -> frozenset[str]:
    if context is None or context.user is None:
        return frozenset()
    return frozenset(context.user.roles)


def _permissions(context: EngineContext | None) -> frozenset[str]:
    if context is None or context.user is None:
        return frozenset()
    return frozenset(context.user.permissions)


def _visible_column(col: ColumnConfig, roles: frozenset[str]) -> ColumnConfig:
    if not col.visible_to or col.hidden or roles.intersection(col.visible_to):
        return col
    return replace(col, hidden=True, filterable=False, sortable=False)


def _visible_join(join: JoinConfig, roles: frozenset[str]) -> JoinConfig:
    columns = tuple(_visible_column(c, roles) for c in join.columns)
    joins = tuple(_visible_join(j, roles) for j in join.joins)
    if columns == join.columns and joins == join.joins:
        return join
    return replace(join, columns=columns, joins=joins)


def apply_role_visibility(
    config: TableConfig, context: EngineContext | None
) -> TableConfig:
    """Return a request-scoped view of ``config`` for the caller's roles.

    Columns restricted with ``visible_to`` are marked hidden, and lose their
    filter and sort capability, unless the caller holds at least one listed
    role. ``config`` itself is returned unchanged when nothing is restricted.
    """
    roles = _roles(context)
    columns = tuple(_visible_column(c, roles) for c in config.columns)
    joins = tuple(_visible_join(j, roles) for j in config.joins)
    if columns == config.columns and joins == config.joins:
        return config
    return replace(config, columns=columns, joins=joins)


def check_access(config: TableConfig, context: EngineContext | None) -> None:
    """Raise AccessDeniedError unless the caller passes the table's access rule."""
    rule = config.access
    if rule is None:
        return
    if rule.roles and not _roles(context).intersection(rule.roles):
        raise AccessDeniedError(config.name, "missing required role")
    missing = set(rule.permissions) - _permissions(context)
    if missing:
        raise AccessDeniedError(config.name, "missing required permission")
