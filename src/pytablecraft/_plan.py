"""Compiled query plans."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pytablecraft._constants import MAX_SQL_OUTPUT_LENGTH
from pytablecraft._joins import JoinClause
from pytablecraft._pagination import Pagination
from pytablecraft._sort import SortTerm
from pytablecraft._sql import Fragment, Statement, join, sql

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect


class PaginationMode(enum.StrEnum):
    OFFSET = "offset"
    CURSOR = "cursor"
    NONE = "none"


class _Renderable:
    dialect: Dialect

    def to_fragment(self) -> Fragment:
        raise NotImplementedError

    def render(
        self,
        *,
        inline: bool = False,
        max_output_length: int = MAX_SQL_OUTPUT_LENGTH,
    ) -> Statement:
        """Render the plan.

        Args:
            inline: Write parameters as literals. For debugging only.
            max_output_length: Maximum SQL length before QueryError.
        """
        return self.to_fragment().render(
            self.dialect, inline=inline, max_output_length=max_output_length
        )

    def debug_sql(self) -> str:
        return self.to_fragment().debug_sql()


@dataclass(frozen=True)
class QueryPlan(_Renderable):
    """A SELECT assembled from compiled parts."""

    dialect: Dialect
    table: str
    select: list[tuple[str, Fragment]]
    joins: list[JoinClause] = field(default_factory=list)
    where: Fragment | None = None
    group_by: list[Fragment] = field(default_factory=list)
    having: Fragment | None = None
    order_by: list[Fragment] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    mode: PaginationMode = PaginationMode.NONE
    pagination: Pagination | None = None
    page_size: int | None = None
    sort: list[SortTerm] = field(default_factory=list)
    cursor_keys: dict[str, str] = field(default_factory=dict)
    output_fields: tuple[str, ...] | None = None

    def where_clause(self, *, inline: bool = False) -> Statement:
        """Just the WHERE predicate, rendered on its own."""
        if self.where is None:
            return Statement(sql="")
        return self.where.render(self.dialect, inline=inline)

    def to_fragment(self) -> Fragment:
        q = self.dialect.quote_identifier
        columns = join(
            ", ", (sql(expr, f" AS {q(alias)}") for alias, expr in self.select)
        )
        parts: list[str | Fragment] = ["SELECT ", columns, f" FROM {q(self.table)}"]
        for clause in self.joins:
            parts += [" ", clause.to_fragment(self.dialect)]
        if self.where is not None:
            parts += [" WHERE ", self.where]
        if self.group_by:
            parts += [" GROUP BY ", join(", ", self.group_by)]
        if self.having is not None:
            parts += [" HAVING ", self.having]
        if self.order_by:
            parts += [" ORDER BY ", join(", ", self.order_by)]
        if self.limit is not None:
            parts.append(f" LIMIT {int(self.limit)}")
        if self.offset:
            parts.append(f" OFFSET {int(self.offset)}")
        return sql(*parts)


@dataclass(frozen=True)
class SQLPlan(_Renderable):
    """A statement compiled as a whole, such as a recursive tree query."""

    dialect: Dialect
    fragment: Fragment

    def to_fragment(self) -> Fragment:
        return self.fragment
