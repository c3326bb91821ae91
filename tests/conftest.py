"""Shared test fixtures."""

import pytest

from pytablecraft.config import (
    ColumnConfig,
    ColumnType,
    SortConfig,
    SortDirection,
    TableConfig,
)
from pytablecraft.dialect.generic import GenericDialect
from pytablecraft.dialect.mysql import MySQLDialect
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.dialect.sqlite import SQLiteDialect


@pytest.fixture
def pg_dialect():
    return PostgresDialect()


@pytest.fixture
def mysql_dialect():
    return MySQLDialect()


@pytest.fixture
def sqlite_dialect():
    return SQLiteDialect()


@pytest.fixture
def generic_dialect():
    return GenericDialect()


def _orders_config(**overrides):
    kwargs = dict(
        name="orders",
        base="orders",
        columns=(
            ColumnConfig("id", ColumnType.NUMBER),
            ColumnConfig("status"),
            ColumnConfig("total", ColumnType.NUMBER),
            ColumnConfig("createdAt", ColumnType.DATE),
        ),
        default_sort=(SortConfig("createdAt", SortDirection.DESC),),
    )
    kwargs.update(overrides)
    return TableConfig(**kwargs)


@pytest.fixture
def make_orders():
    """Factory for the orders table: id, status, total, createdAt."""
    return _orders_config


@pytest.fixture
def orders():
    return _orders_config()
