"""ORDER BY resolution tests."""

import pytest

from pytablecraft._errors import FieldError
from pytablecraft._fields import FieldResolver
from pytablecraft._sort import SortCompiler
from pytablecraft.config import (
    ColumnConfig,
    ColumnType,
    SortConfig,
    SortDirection,
    SubqueryConfig,
    SubqueryMode,
    TableConfig,
)
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.params import SortParam

CONFIG = TableConfig(
    name="orders",
    base="orders",
    columns=(
        ColumnConfig("id", ColumnType.NUMBER),
        ColumnConfig("status"),
        ColumnConfig("createdAt", ColumnType.DATE),
        ColumnConfig("notes", sortable=False),
    ),
    subqueries=(
        SubqueryConfig("itemCount", "order_items"),
        SubqueryConfig("lastItem", "order_items", mode=SubqueryMode.FIRST),
    ),
    default_sort=(SortConfig("createdAt", SortDirection.DESC),),
)


@pytest.fixture
def sorter():
    return SortCompiler(CONFIG, FieldResolver(CONFIG, PostgresDialect()))


def order_by(terms):
    return [f.debug_sql() for f in SortCompiler.build(terms)]


class TestResolve:
    def test_requested(self, sorter):
        terms = sorter.resolve([SortParam("status"), SortParam("id", "desc")])
        assert order_by(terms) == ["orders.status ASC", "orders.id DESC"]

    def test_default_when_empty(self, sorter):
        assert order_by(sorter.resolve()) == ['orders."createdAt" DESC']

    def test_unknown_dropped(self, sorter):
        terms = sorter.resolve([SortParam("nope"), SortParam("status")])
        assert order_by(terms) == ["orders.status ASC"]

    def test_unsortable_dropped(self, sorter):
        assert order_by(sorter.resolve([SortParam("notes")])) == ['orders."createdAt" DESC']

    def test_subquery_sort(self, sorter):
        terms = sorter.resolve([SortParam("itemCount", "desc")])
        assert order_by(terms) == [
            "(SELECT count(*) FROM order_items WHERE TRUE) DESC"
        ]

    def test_first_subquery_not_sortable(self, sorter):
        assert order_by(sorter.resolve([SortParam("lastItem")])) == ['orders."createdAt" DESC']

    def test_default_sort_is_lenient(self):
        config = TableConfig(
            name="t", base="t", columns=(ColumnConfig("a"),),
            default_sort=(SortConfig("gone"), SortConfig("a")),
        )
        sorter = SortCompiler(config, FieldResolver(config, PostgresDialect()))
        assert order_by(sorter.resolve()) == ["t.a ASC"]


class TestResolveStrict:
    def test_requested(self, sorter):
        assert order_by(sorter.resolve_strict([SortParam("status")])) == ["orders.status ASC"]

    def test_unknown_raises(self, sorter):
        with pytest.raises(FieldError, match="no underlying column"):
            sorter.resolve_strict([SortParam("nope")])

    def test_unsortable_raises(self, sorter):
        with pytest.raises(FieldError, match="is not sortable"):
            sorter.resolve_strict([SortParam("notes")])

    def test_default_when_empty(self, sorter):
        assert order_by(sorter.resolve_strict()) == ['orders."createdAt" DESC']
