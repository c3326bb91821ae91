"""Operator name to SQL predicate mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pytablecraft._sql import Fragment, join, sql
from pytablecraft._utils import escape_like_pattern
from pytablecraft.config import Operator
from pytablecraft.dialect._features import Feature, require_feature

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect

# Operator -> SQL comparison operator
COMPARISON_OPERATORS: dict[Operator, str] = {
    Operator.EQ: "=",
    Operator.NEQ: "!=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}

# Operators that take no value
NULLARY_OPERATORS = frozenset({Operator.IS_NULL, Operator.IS_NOT_NULL})

# Operators that build a LIKE pattern from the value
PATTERN_OPERATORS = frozenset({
    Operator.LIKE,
    Operator.ILIKE,
    Operator.CONTAINS,
    Operator.STARTS_WITH,
    Operator.ENDS_WITH,
})


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def apply_operator(
    operator: Operator | str,
    target: Fragment,
    value: Any,
    dialect: Dialect,
) -> Fragment | None:
    """Build ``target <operator> value`` with the value bound as a parameter.

    Returns None when the operator has nothing to compare against
    (``between`` without two bounds).
    """
    op = Operator(operator)

    if op in COMPARISON_OPERATORS:
        if value is None and op in (Operator.EQ, Operator.NEQ):
            return sql(target, " IS NULL" if op == Operator.EQ else " IS NOT NULL")
        return sql(target, f" {COMPARISON_OPERATORS[op]} ", Fragment.param(value))

    match op:
        case Operator.IN | Operator.NOT_IN:
            items = _as_list(value)
            if not items:
                return Fragment.text("1 = 0" if op == Operator.IN else "1 = 1")
            keyword = " IN (" if op == Operator.IN else " NOT IN ("
            return sql(target, keyword, join(", ", map(Fragment.param, items)), ")")
        case Operator.BETWEEN:
            items = _as_list(value)
            if len(items) != 2:
                return None
            return sql(
                target, " BETWEEN ", Fragment.param(items[0]),
                " AND ", Fragment.param(items[1]),
            )
        case Operator.IS_NULL:
            return sql(target, " IS NULL")
        case Operator.IS_NOT_NULL:
            return sql(target, " IS NOT NULL")
        case Operator.LIKE:
            return sql(target, " LIKE ", Fragment.param(value))
        case Operator.ILIKE:
            require_feature(dialect.name, Feature.ILIKE)
            return dialect.native_ilike(target, Fragment.param(value))
        case Operator.CONTAINS:
            pattern = f"%{escape_like_pattern(str(value))}%"
            return dialect.case_insensitive_like(target, Fragment.param(pattern))
        case Operator.STARTS_WITH:
            pattern = f"{escape_like_pattern(str(value))}%"
            return dialect.case_insensitive_like(target, Fragment.param(pattern))
        case Operator.ENDS_WITH:
            pattern = f"%{escape_like_pattern(str(value))}"
            return dialect.case_insensitive_like(target, Fragment.param(pattern))
    raise AssertionError(f"unhandled operator {op!r}")
