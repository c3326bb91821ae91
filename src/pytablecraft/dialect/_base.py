"""Abstract base class for SQL dialects."""

from __future__ import annotations

import enum
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Any

from pytablecraft._sql import Fragment, sql


class DialectName(enum.StrEnum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    UNKNOWN = "unknown"


_PLAIN_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

# Words that must be quoted even when they look like plain identifiers.
_RESERVED_WORDS: frozenset[str] = frozenset({
    "all", "and", "as", "asc", "between", "by", "case", "cast", "check",
    "column", "create", "cross", "default", "delete", "desc", "distinct",
    "drop", "else", "end", "exists", "false", "for", "from", "full",
    "group", "having", "in", "index", "inner", "insert", "is", "join",
    "key", "left", "like", "limit", "not", "null", "offset", "on", "or",
    "order", "outer", "primary", "right", "select", "table", "then", "to",
    "true", "union", "update", "user", "using", "values", "when", "where",
    "with",
})


class Dialect(ABC):
    """Abstract base class defining the SQL dialect interface.

    All SQL-syntax-specific code lives behind this interface. Literal and
    placeholder methods write to a StringIO at render time; structural
    methods receive fragments for sub-expressions and return a fragment.
    """

    name: DialectName = DialectName.UNKNOWN

    # --- Literals ---

    @abstractmethod
    def write_param_placeholder(self, w: StringIO, param_index: int) -> None: ...

    @abstractmethod
    def write_string_literal(self, w: StringIO, value: str) -> None: ...

    @abstractmethod
    def write_bool_literal(self, w: StringIO, value: bool) -> None: ...

    def write_literal(self, w: StringIO, value: Any) -> None:
        """Write a Python value as an inline SQL literal."""
        if value is None:
            w.write("NULL")
        elif isinstance(value, bool):
            self.write_bool_literal(w, value)
        elif isinstance(value, (int, float, Decimal)):
            w.write(str(value))
        elif isinstance(value, datetime):
            self.write_string_literal(w, value.isoformat(sep=" "))
        elif isinstance(value, date):
            self.write_string_literal(w, value.isoformat())
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if i > 0:
                    w.write(", ")
                self.write_literal(w, item)
        else:
            self.write_string_literal(w, str(value))

    def bool_sql(self, value: bool) -> str:
        w = StringIO()
        self.write_bool_literal(w, value)
        return w.getvalue()

    # --- Identifiers ---

    identifier_quote = '"'

    def quote_identifier(self, name: str) -> str:
        """Quote a single identifier segment unless it is plain lowercase."""
        if _PLAIN_IDENTIFIER_RE.match(name) and name not in _RESERVED_WORDS:
            return name
        q = self.identifier_quote
        return f"{q}{name.replace(q, q + q)}{q}"

    def qualified(self, table: str, column: str) -> str:
        return f"{self.quote_identifier(table)}.{self.quote_identifier(column)}"

    # --- Ordering ---

    # Whether NULL sorts before every value in an ascending ORDER BY.
    # Descending order reverses it.
    nulls_first = False

    # --- Operators ---

    @abstractmethod
    def like_escape(self) -> str: ...

    def native_ilike(self, target: Fragment, pattern: Fragment) -> Fragment:
        return sql(target, " ILIKE ", pattern)

    @abstractmethod
    def case_insensitive_like(self, target: Fragment, pattern: Fragment) -> Fragment:
        """Portable case-insensitive LIKE, including the ESCAPE clause."""

    def case_insensitive_equals(self, lhs: Fragment, rhs: Fragment) -> Fragment:
        return sql("LOWER(", lhs, ") = LOWER(", rhs, ")")

    @abstractmethod
    def string_concat(self, lhs: Fragment, rhs: Fragment) -> Fragment: ...

    @abstractmethod
    def cast_to_text(self, expr: Fragment) -> Fragment: ...

    # --- Gated constructs ---
    # These emit the PostgreSQL form. Callers consult the feature gate first,
    # so other dialects only reach them when detection failed open.

    def first_row_subquery(self, table: str, where: Fragment) -> Fragment:
        return sql(
            "(SELECT row_to_json(t) FROM (SELECT * FROM ",
            self.quote_identifier(table),
            " WHERE ",
            where,
            " LIMIT 1) t)",
        )

    def full_text_match(
        self, document: Fragment, term: Any, language: str
    ) -> Fragment:
        lang = Fragment.param(language)
        return sql(
            "to_tsvector(", lang, "::regconfig, ", document,
            ") @@ plainto_tsquery(", Fragment.param(language), "::regconfig, ",
            Fragment.param(term), ")",
        )

    def estimated_count(self, table: str) -> Fragment:
        return sql(
            "SELECT reltuples::bigint AS estimate FROM pg_class WHERE relname = ",
            Fragment.param(table),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
