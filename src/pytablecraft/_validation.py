"""Startup validation of table configurations."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from pytablecraft._errors import ERR_MSG_INVALID_CONFIG, ConfigError
from pytablecraft._fields import Capability, FieldResolver
from pytablecraft._joins import walk_joins
from pytablecraft._utils import split_qualified
from pytablecraft.config import (
    SUBQUERY_OPERATORS,
    AggregationType,
    ColumnRef,
    FilterCondition,
    FilterExpression,
    FilterGroup,
    JoinType,
    Operator,
    SubqueryMode,
    TableConfig,
)
from pytablecraft.schema import TableSchema

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect


def _leaves(expr: FilterExpression) -> Iterator[FilterCondition]:
    if isinstance(expr, FilterCondition):
        yield expr
    elif isinstance(expr, FilterGroup):
        for child in expr.children:
            yield from _leaves(child)


def _raise(problems: list[str], config: TableConfig) -> None:
    if problems:
        raise ConfigError(
            ERR_MSG_INVALID_CONFIG,
            f"table {config.name!r}: " + "; ".join(problems),
            details={"table": config.name, "problems": problems},
        )


def _check_structure(config: TableConfig) -> list[str]:
    """Checks that must pass before the field namespace can be built."""
    problems = []
    pg = config.pagination
    if pg.default_page_size < 1 or pg.max_page_size < 1:
        problems.append("page sizes must be positive")
    elif pg.default_page_size > pg.max_page_size:
        problems.append("default page size exceeds max page size")

    for sub in config.subqueries:
        try:
            SubqueryMode(sub.mode)
        except ValueError:
            problems.append(f"subquery {sub.alias!r} has invalid mode {sub.mode!r}")
        for cond in sub.conditions:
            if cond.op not in SUBQUERY_OPERATORS:
                problems.append(f"subquery {sub.alias!r} uses unsupported operator {cond.op!r}")

    for agg in config.aggregations:
        try:
            AggregationType(agg.type)
        except ValueError:
            problems.append(f"aggregation {agg.alias!r} has invalid type {agg.type!r}")

    rc = config.recursive
    if rc is not None and (
        isinstance(rc.max_depth, bool) or not isinstance(rc.max_depth, int) or rc.max_depth < 1
    ):
        problems.append("recursive max_depth must be a positive integer")

    for join, _ in walk_joins(config.joins, config.base):
        try:
            JoinType(join.type)
        except ValueError:
            problems.append(f"join {join.table!r} has invalid type {join.type!r}")

    for f in config.filters:
        try:
            Operator(f.operator)
        except ValueError:
            problems.append(f"filter on {f.field!r} has invalid operator {f.operator!r}")
    return problems


def _check_references(config: TableConfig, resolver: FieldResolver) -> list[str]:
    problems = []

    def need(name: str, where: str) -> None:
        if resolver.resolve(name) is None:
            problems.append(f"{where} references unknown field {name!r}")

    if config.search is not None:
        for name in config.search.fields:
            field = resolver.resolve(name)
            if field is None:
                problems.append(f"search references unknown field {name!r}")
            elif not field.allows(Capability.SEARCH):
                problems.append(f"search field {name!r} is not searchable")

    for s in config.default_sort:
        field = resolver.resolve(s.field)
        if field is None:
            problems.append(f"default sort references unknown field {s.field!r}")
        elif not field.allows(Capability.SORT):
            problems.append(f"default sort field {s.field!r} is not sortable")

    for f in config.filters:
        need(f.field, "filter")
    for group in config.filter_groups:
        for leaf in _leaves(group):
            need(leaf.field, "filter group")
    for cond in config.backend_conditions:
        need(cond.field, "backend condition")
    for agg in config.aggregations:
        if agg.field != "*":
            need(agg.field, f"aggregation {agg.alias!r}")

    if config.group_by is not None:
        aliases = {a.alias for a in config.aggregations}
        for name in config.group_by.fields:
            need(name, "group by")
        for having in config.group_by.having:
            if having.alias not in aliases:
                problems.append(f"having references unknown aggregation {having.alias!r}")

    if config.recursive is not None:
        need(config.recursive.parent_key, "recursive parent key")
        need(config.recursive.child_key, "recursive child key")
        if config.recursive.start_with is not None:
            need(config.recursive.start_with.field, "recursive start condition")

    if config.date_range_column is not None:
        need(config.date_range_column, "date range column")
    return problems


def validate_config(config: TableConfig, dialect: Dialect) -> FieldResolver:
    """Fail fast on static misconfiguration and return the field resolver.

    Raises:
        ConfigError: Listing every problem found.
        DialectError: If the config needs a feature the dialect lacks.
    """
    _raise(_check_structure(config), config)
    resolver = FieldResolver(config, dialect)
    _raise(_check_references(config, resolver), config)
    return resolver


def validate_against_schema(
    config: TableConfig, schemas: dict[str, TableSchema]
) -> None:
    """Check that tables and physical columns named by ``config`` exist.

    Raises:
        ConfigError: Listing every missing table or column.
    """
    problems: list[str] = []
    refs: dict[str, str] = {config.base: config.base}
    for join, _ in walk_joins(config.joins, config.base):
        refs[join.ref] = join.table

    def table(name: str) -> TableSchema | None:
        schema = schemas.get(refs.get(name, name))
        if schema is None:
            problems.append(f"table {refs.get(name, name)!r} does not exist")
        return schema

    def column(source: str, default_table: str) -> None:
        qualifier, col = split_qualified(source)
        schema = table(qualifier or default_table)
        if schema is not None and col not in schema:
            problems.append(f"column {col!r} does not exist in {schema.name!r}")

    table(config.base)
    for col in config.columns:
        if not col.computed and col.expression is None:
            column(col.source, config.base)
    for join, _ in walk_joins(config.joins, config.base):
        table(join.ref)
        for col in join.columns:
            column(col.source, join.ref)
    for sub in config.subqueries:
        if table(sub.table) is None:
            continue
        for cond in sub.conditions:
            for operand in (cond.left, cond.right):
                if isinstance(operand, ColumnRef):
                    column(operand.column, sub.table)
    if config.soft_delete is not None and config.soft_delete.enabled:
        if config.column(config.soft_delete.field) is None:
            column(config.soft_delete.field, config.base)
    if config.tenant is not None and config.tenant.enabled:
        if config.column(config.tenant.field) is None:
            column(config.tenant.field, config.base)

    _raise(list(dict.fromkeys(problems)), config)
