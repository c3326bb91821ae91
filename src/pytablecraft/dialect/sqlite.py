"""SQLite dialect implementation."""

from __future__ import annotations

from io import StringIO

from pytablecraft._sql import Fragment, sql
from pytablecraft.dialect._base import Dialect, DialectName


class SQLiteDialect(Dialect):
    """SQLite dialect."""

    name = DialectName.SQLITE
    nulls_first = True

    # --- Literals ---

    def write_param_placeholder(self, w: StringIO, param_index: int) -> None:
        w.write("?")

    def write_string_literal(self, w: StringIO, value: str) -> None:
        escaped = value.replace("'", "''")
        w.write(f"'{escaped}'")

    def write_bool_literal(self, w: StringIO, value: bool) -> None:
        w.write("1" if value else "0")

    # --- Operators ---

    def like_escape(self) -> str:
        return " ESCAPE '\\'"

    def case_insensitive_like(self, target: Fragment, pattern: Fragment) -> Fragment:
        return sql("LOWER(", target, ") LIKE LOWER(", pattern, ")", self.like_escape())

    def string_concat(self, lhs: Fragment, rhs: Fragment) -> Fragment:
        return sql(lhs, " || ", rhs)

    def cast_to_text(self, expr: Fragment) -> Fragment:
        return sql("CAST(", expr, " AS TEXT)")
