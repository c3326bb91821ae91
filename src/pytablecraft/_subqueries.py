"""Correlated subquery expressions (count, exists, first row)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pytablecraft._operators import COMPARISON_OPERATORS
from pytablecraft._sql import Fragment, and_, sql
from pytablecraft._utils import split_qualified
from pytablecraft.config import (
    ColumnRef,
    Operator,
    SubqueryCondition,
    SubqueryConfig,
    SubqueryMode,
    SubqueryOperand,
)
from pytablecraft.dialect._features import Feature, require_feature, supports_feature

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect

logger = logging.getLogger(__name__)


def _operand(operand: SubqueryOperand, table: str, dialect: Dialect) -> Fragment:
    if isinstance(operand, ColumnRef):
        qualifier, column = split_qualified(operand.column)
        return Fragment.text(dialect.qualified(qualifier or table, column))
    return Fragment.param(operand.value)


def build_condition(
    cond: SubqueryCondition, table: str, dialect: Dialect
) -> Fragment:
    """One structured comparison; bare column names belong to the subquery table."""
    left = _operand(cond.left, table, dialect)
    right = _operand(cond.right, table, dialect)
    op = Operator(cond.op)
    if op in COMPARISON_OPERATORS:
        return sql(left, f" {COMPARISON_OPERATORS[op]} ", right)
    if op == Operator.LIKE:
        return sql(left, " LIKE ", right)
    if op == Operator.ILIKE:
        if supports_feature(dialect.name, Feature.ILIKE):
            return dialect.native_ilike(left, right)
        return dialect.case_insensitive_equals(left, right)
    raise ValueError(f"operator {op!r} is not allowed in subquery conditions")


def build_correlation(sub: SubqueryConfig, dialect: Dialect) -> Fragment:
    """Correlation predicate: typed expression, structured conditions, raw filter, TRUE."""
    if sub.expression is not None:
        return Fragment.text(sub.expression.sql)
    if sub.conditions:
        parts = [build_condition(c, sub.table, dialect) for c in sub.conditions]
        return and_(*parts)
    if sub.filter is not None:
        logger.warning(
            "subquery %r uses a raw filter string; prefer structured conditions",
            sub.alias,
        )
        return Fragment.text(sub.filter.sql)
    return Fragment.text(dialect.bool_sql(True))


def build_subquery(sub: SubqueryConfig, dialect: Dialect) -> Fragment:
    where = build_correlation(sub, dialect)
    table = dialect.quote_identifier(sub.table)
    match SubqueryMode(sub.mode):
        case SubqueryMode.COUNT:
            return sql(f"(SELECT count(*) FROM {table} WHERE ", where, ")")
        case SubqueryMode.EXISTS:
            return sql(f"EXISTS (SELECT 1 FROM {table} WHERE ", where, ")")
        case SubqueryMode.FIRST:
            require_feature(dialect.name, Feature.FIRST_ROW_SUBQUERY)
            return dialect.first_row_subquery(sub.table, where)
    raise AssertionError(f"unhandled subquery mode {sub.mode!r}")


def build_subqueries(
    subqueries: tuple[SubqueryConfig, ...], dialect: Dialect
) -> dict[str, Fragment]:
    """Alias to expression for every configured subquery."""
    return {sub.alias: build_subquery(sub, dialect) for sub in subqueries}
