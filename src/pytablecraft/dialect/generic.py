"""Generic ANSI dialect, used when the database could not be identified."""

from __future__ import annotations

from io import StringIO

from pytablecraft._sql import Fragment, sql
from pytablecraft.dialect._base import Dialect, DialectName


class GenericDialect(Dialect):
    """Fallback dialect for unrecognized engines.

    Feature gating fails open for this dialect: gated constructs are
    emitted in their PostgreSQL form.
    """

    name = DialectName.UNKNOWN

    def write_param_placeholder(self, w: StringIO, param_index: int) -> None:
        w.write("?")

    def write_string_literal(self, w: StringIO, value: str) -> None:
        escaped = value.replace("'", "''")
        w.write(f"'{escaped}'")

    def write_bool_literal(self, w: StringIO, value: bool) -> None:
        w.write("TRUE" if value else "FALSE")

    def like_escape(self) -> str:
        return " ESCAPE '\\'"

    def case_insensitive_like(self, target: Fragment, pattern: Fragment) -> Fragment:
        return sql("LOWER(", target, ") LIKE LOWER(", pattern, ")", self.like_escape())

    def string_concat(self, lhs: Fragment, rhs: Fragment) -> Fragment:
        return sql(lhs, " || ", rhs)

    def cast_to_text(self, expr: Fragment) -> Fragment:
        return sql("CAST(", expr, " AS VARCHAR)")
