"""Free-text search tests."""

import pytest

from pytablecraft._errors import DialectError, FieldError, ValidationError
from pytablecraft._fields import FieldResolver
from pytablecraft._search import SearchCompiler
from pytablecraft.config import (
    ColumnConfig,
    ColumnType,
    JoinConfig,
    JoinOn,
    SearchConfig,
    SubqueryConfig,
    TableConfig,
)
from pytablecraft.dialect.generic import GenericDialect
from pytablecraft.dialect.mysql import MySQLDialect
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.dialect.sqlite import SQLiteDialect

CONFIG = TableConfig(
    name="orders",
    base="orders",
    columns=(ColumnConfig("id", ColumnType.NUMBER), ColumnConfig("status")),
    joins=(JoinConfig("users", JoinOn("user_id", "id"), columns=(ColumnConfig("email"),)),),
    subqueries=(SubqueryConfig("itemCount", "order_items"),),
)


def search(term, config=SearchConfig(fields=("status", "email")), dialect=None):
    dialect = dialect or PostgresDialect()
    frag = SearchCompiler(config, FieldResolver(CONFIG, dialect)).build(term)
    return frag.render(dialect) if frag is not None else None


class TestPatternSearch:
    def test_postgres(self):
        stmt = search("bob")
        assert stmt.sql == (
            "orders.status ILIKE $1 ESCAPE E'\\\\' OR users.email ILIKE $2 ESCAPE E'\\\\'"
        )
        assert stmt.parameters == ["%bob%", "%bob%"]

    def test_sqlite(self):
        stmt = search("bob", dialect=SQLiteDialect())
        assert stmt.sql == (
            "LOWER(orders.status) LIKE LOWER(?) ESCAPE '\\' "
            "OR LOWER(users.email) LIKE LOWER(?) ESCAPE '\\'"
        )

    def test_term_is_trimmed_and_escaped(self):
        assert search("  50%_off ").parameters[0] == "%50\\%\\_off%"

    def test_single_field(self):
        stmt = search("x", SearchConfig(fields=("status",)))
        assert stmt.sql == "orders.status ILIKE $1 ESCAPE E'\\\\'"
        assert stmt.parameters == ["%x%"]

    @pytest.mark.parametrize(
        "term",
        [
            pytest.param(None, id="none"),
            pytest.param("", id="empty"),
            pytest.param("   ", id="blank"),
        ],
    )
    def test_no_term(self, term):
        assert search(term) is None

    def test_disabled(self):
        assert search("bob", SearchConfig(fields=("status",), enabled=False)) is None

    def test_no_fields(self):
        assert search("bob", SearchConfig()) is None

    def test_no_config(self):
        assert search("bob", None) is None

    def test_null_byte_rejected(self):
        with pytest.raises(ValidationError):
            search("a\x00")

    def test_unknown_field(self):
        with pytest.raises(FieldError):
            search("bob", SearchConfig(fields=("nope",)))

    def test_subquery_not_searchable(self):
        with pytest.raises(FieldError, match="is not searchable"):
            search("bob", SearchConfig(fields=("itemCount",)))


class TestFullText:
    FULL_TEXT = SearchConfig(fields=("status", "email"), full_text=True)

    def test_postgres(self):
        stmt = search("red shoes", self.FULL_TEXT)
        assert stmt.sql == (
            "to_tsvector($1::regconfig, "
            "COALESCE(CAST(orders.status AS TEXT), '') || ' ' || "
            "COALESCE(CAST(users.email AS TEXT), '')) "
            "@@ plainto_tsquery($2::regconfig, $3)"
        )
        assert stmt.parameters == ["english", "english", "red shoes"]

    def test_language(self):
        config = SearchConfig(fields=("status",), full_text=True, language="german")
        assert search("rot", config).parameters == ["german", "german", "rot"]

    def test_unknown_dialect_fails_open(self):
        stmt = search("x", self.FULL_TEXT, GenericDialect())
        assert "plainto_tsquery" in stmt.sql

    @pytest.mark.parametrize(
        "dialect",
        [
            pytest.param(MySQLDialect(), id="mysql"),
            pytest.param(SQLiteDialect(), id="sqlite"),
        ],
    )
    def test_gated(self, dialect):
        with pytest.raises(DialectError, match="fullTextSearch"):
            search("x", self.FULL_TEXT, dialect)
