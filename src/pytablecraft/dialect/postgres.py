"""PostgreSQL dialect implementation."""

from __future__ import annotations

from io import StringIO

from pytablecraft._sql import Fragment, sql
from pytablecraft.dialect._base import Dialect, DialectName


class PostgresDialect(Dialect):
    """PostgreSQL dialect."""

    name = DialectName.POSTGRESQL

    # --- Literals ---

    def write_param_placeholder(self, w: StringIO, param_index: int) -> None:
        w.write(f"${param_index}")

    def write_string_literal(self, w: StringIO, value: str) -> None:
        escaped = value.replace("'", "''")
        w.write(f"'{escaped}'")

    def write_bool_literal(self, w: StringIO, value: bool) -> None:
        w.write("TRUE" if value else "FALSE")

    # --- Operators ---

    def like_escape(self) -> str:
        return " ESCAPE E'\\\\'"

    def case_insensitive_like(self, target: Fragment, pattern: Fragment) -> Fragment:
        return sql(target, " ILIKE ", pattern, self.like_escape())

    def string_concat(self, lhs: Fragment, rhs: Fragment) -> Fragment:
        return sql(lhs, " || ", rhs)

    def cast_to_text(self, expr: Fragment) -> Fragment:
        return sql("CAST(", expr, " AS TEXT)")
