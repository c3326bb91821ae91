"""Join tree walking and ON-clause construction."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pytablecraft._sql import Fragment, sql
from pytablecraft._utils import split_qualified
from pytablecraft.config import JoinConfig, JoinOn, JoinType, RawSQL
from pytablecraft.dialect._features import Feature, require_feature

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect

_JOIN_KEYWORDS: dict[JoinType, str] = {
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
    JoinType.INNER: "INNER JOIN",
    JoinType.FULL: "FULL OUTER JOIN",
}


@dataclass(frozen=True)
class JoinClause:
    type: JoinType
    table: str
    alias: str | None
    on: Fragment
    parent: str

    def to_fragment(self, dialect: Dialect) -> Fragment:
        target = dialect.quote_identifier(self.table)
        if self.alias:
            target = f"{target} AS {dialect.quote_identifier(self.alias)}"
        return sql(f"{_JOIN_KEYWORDS[self.type]} {target} ON ", self.on)


def walk_joins(
    joins: tuple[JoinConfig, ...], parent: str
) -> Iterator[tuple[JoinConfig, str]]:
    """Yield ``(join, parent_ref)`` depth-first, parents before children."""
    for join in joins:
        yield join, parent
        yield from walk_joins(join.joins, join.ref)


def _column_ref(name: str, default_table: str, dialect: Dialect) -> str:
    qualifier, column = split_qualified(name)
    return dialect.qualified(qualifier or default_table, column)


def build_join_on(join: JoinConfig, parent: str, dialect: Dialect) -> Fragment:
    """Render the ON predicate of ``join``.

    Bare names in a structured pair default to the parent table on the left
    and the joined table on the right.
    """
    if isinstance(join.on, RawSQL):
        return Fragment.text(join.on.sql)
    on: JoinOn = join.on
    return Fragment.text(
        f"{_column_ref(on.left, parent, dialect)} = "
        f"{_column_ref(on.right, join.ref, dialect)}"
    )


def build_joins(
    joins: tuple[JoinConfig, ...], base: str, dialect: Dialect
) -> list[JoinClause]:
    """Flatten the join forest into ordered join clauses."""
    clauses: list[JoinClause] = []
    for join, parent in walk_joins(joins, base):
        if join.type == JoinType.FULL:
            require_feature(dialect.name, Feature.FULL_JOIN)
        clauses.append(
            JoinClause(
                type=JoinType(join.type),
                table=join.table,
                alias=join.alias,
                on=build_join_on(join, parent, dialect),
                parent=parent,
            )
        )
    return clauses
