"""MySQL dialect implementation."""

from __future__ import annotations

from io import StringIO

from pytablecraft._sql import Fragment, sql
from pytablecraft.dialect._base import Dialect, DialectName


class MySQLDialect(Dialect):
    """MySQL dialect.

    MySQL has no ILIKE; case-insensitive matching is expressed with
    ``LOWER()`` on both sides so the result does not depend on collation.
    """

    name = DialectName.MYSQL
    nulls_first = True
    identifier_quote = "`"

    # --- Literals ---

    def write_param_placeholder(self, w: StringIO, param_index: int) -> None:
        w.write("?")

    def write_string_literal(self, w: StringIO, value: str) -> None:
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        w.write(f"'{escaped}'")

    def write_bool_literal(self, w: StringIO, value: bool) -> None:
        w.write("TRUE" if value else "FALSE")

    # --- Operators ---

    def like_escape(self) -> str:
        return " ESCAPE '\\\\'"

    def case_insensitive_like(self, target: Fragment, pattern: Fragment) -> Fragment:
        return sql("LOWER(", target, ") LIKE LOWER(", pattern, ")", self.like_escape())

    def string_concat(self, lhs: Fragment, rhs: Fragment) -> Fragment:
        return sql("CONCAT(", lhs, ", ", rhs, ")")

    def cast_to_text(self, expr: Fragment) -> Fragment:
        return sql("CAST(", expr, " AS CHAR)")
