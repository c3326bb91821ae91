"""Fixtures and helpers for integration tests against real databases."""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import Any

import pytest

from pytablecraft import TableEngine
from pytablecraft.config import (
    AggregationConfig,
    AggregationType,
    ColumnConfig,
    ColumnType,
    GroupByConfig,
    HavingCondition,
    Operator,
    SearchConfig,
    SoftDeleteConfig,
    SortConfig,
    TableConfig,
)
from pytablecraft.dialect._base import Dialect
from pytablecraft.dialect.mysql import MySQLDialect
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.dialect.sqlite import SQLiteDialect
from pytablecraft.engine import DBAPIExecutor


# ---------------------------------------------------------------------------
# Container runtime detection (Docker or Podman)
# ---------------------------------------------------------------------------

def _get_podman_socket() -> str | None:
    """Get the Podman machine socket path, if available."""
    try:
        result = subprocess.run(
            ["podman", "machine", "inspect", "--format",
             "{{.ConnectionInfo.PodmanSocket.Path}}"],
            capture_output=True, text=True, check=True, timeout=5,
        )
        sock = result.stdout.strip()
        if sock and os.path.exists(sock):
            return sock
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired,
            FileNotFoundError):
        pass
    return None


def _container_runtime_available() -> bool:
    """Check if Docker or Podman is available as a container runtime."""
    for cmd in ["docker", "podman"]:
        if shutil.which(cmd):
            try:
                subprocess.run(
                    [cmd, "info"], capture_output=True, check=True, timeout=10,
                )
                return True
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired,
                    FileNotFoundError):
                continue
    return False


def _configure_testcontainers_for_podman() -> None:
    """Configure testcontainers to work with Podman."""
    if not shutil.which("podman"):
        return
    os.environ.setdefault("TESTCONTAINERS_RYUK_DISABLED", "true")
    if "DOCKER_HOST" not in os.environ:
        sock = _get_podman_socket()
        if sock:
            os.environ["DOCKER_HOST"] = f"unix://{sock}"


CONTAINER_RUNTIME_AVAILABLE = _container_runtime_available()

if CONTAINER_RUNTIME_AVAILABLE:
    _configure_testcontainers_for_podman()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

# id, name, team, score, manager_id, tenant_id, deleted_at
SEED_ROWS = [
    (1, "Alice", "red", 90, None, 1, None),
    (2, "Bob", "red", 75, 1, 1, None),
    (3, "Carol", "blue", 75, 1, 1, None),
    (4, "Dave", "blue", 60, 2, 1, None),
    (5, "Eve", "red", 75, 2, 1, None),
    (6, "Frank", "green", 50, 3, 2, None),
    (7, "Grace", "red", 80, None, 1, "2024-01-01"),
    # manager cycle
    (10, "Loop1", "blue", 10, 11, 1, None),
    (11, "Loop2", "blue", 20, 10, 1, None),
]

_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS people (
        id INTEGER PRIMARY KEY,
        name VARCHAR(64) NOT NULL,
        team VARCHAR(32) NOT NULL,
        score INTEGER NOT NULL,
        manager_id INTEGER,
        tenant_id INTEGER NOT NULL,
        deleted_at VARCHAR(32)
    )
"""

_INSERT = (
    "INSERT INTO people (id, name, team, score, manager_id, tenant_id, deleted_at) "
    "VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})"
)


def _setup(conn, placeholder: str) -> None:
    cur = conn.cursor()
    cur.execute(_CREATE_TABLE)
    for row in SEED_ROWS:
        cur.execute(_INSERT.format(ph=placeholder), row)
    conn.commit()
    cur.close()


def _people_config(**overrides) -> TableConfig:
    kwargs = dict(
        name="people",
        base="people",
        columns=(
            ColumnConfig("id", ColumnType.NUMBER),
            ColumnConfig("name"),
            ColumnConfig("team"),
            ColumnConfig("score", ColumnType.NUMBER),
            ColumnConfig("managerId", ColumnType.NUMBER, field="manager_id"),
        ),
        search=SearchConfig(fields=("name",)),
        default_sort=(SortConfig("id"),),
        soft_delete=SoftDeleteConfig(field="deleted_at"),
        aggregations=(
            AggregationConfig("headcount", AggregationType.COUNT),
            AggregationConfig("scoreSum", AggregationType.SUM, "score"),
        ),
        group_by=GroupByConfig(
            ("team",), having=(HavingCondition("headcount", Operator.GT, 1),),
        ),
    )
    kwargs.update(overrides)
    return TableConfig(**kwargs)


# ---------------------------------------------------------------------------
# Session-scoped container fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def pg_container():
    if not CONTAINER_RUNTIME_AVAILABLE:
        pytest.skip("No container runtime (Docker/Podman) available")
    from testcontainers.postgres import PostgresContainer
    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture(scope="session")
def mysql_container():
    if not CONTAINER_RUNTIME_AVAILABLE:
        pytest.skip("No container runtime (Docker/Podman) available")
    from testcontainers.mysql import MySqlContainer
    with MySqlContainer("mysql:8.0") as mysql:
        yield mysql


# ---------------------------------------------------------------------------
# Session-scoped database fixtures (connection + table + data)
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def pg_db(pg_container):
    import psycopg
    conn = psycopg.connect(
        host=pg_container.get_container_host_ip(),
        port=pg_container.get_exposed_port(5432),
        user=pg_container.username,
        password=pg_container.password,
        dbname=pg_container.dbname,
        autocommit=True,
    )
    _setup(conn, "%s")
    yield conn
    conn.close()


@pytest.fixture(scope="session")
def mysql_db(mysql_container):
    import mysql.connector
    conn = mysql.connector.connect(
        host=mysql_container.get_container_host_ip(),
        port=int(mysql_container.get_exposed_port(3306)),
        user=mysql_container.username,
        password=mysql_container.password,
        database=mysql_container.dbname,
        autocommit=True,
    )
    _setup(conn, "%s")
    yield conn
    conn.close()


@pytest.fixture(scope="session")
def sqlite_db():
    import sqlite3
    conn = sqlite3.connect(":memory:")
    _setup(conn, "?")
    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# Parametrized database fixture
# ---------------------------------------------------------------------------

ALL_DBS = ["pg", "mysql", "sqlite"]

_DIALECTS: dict[str, Dialect] = {
    "pg": PostgresDialect(),
    "mysql": MySQLDialect(),
    "sqlite": SQLiteDialect(),
}


@pytest.fixture(params=ALL_DBS)
def db(request):
    """Yields (connection, dialect, db_name) for each database."""
    name = request.param
    conn = request.getfixturevalue(f"{name}_db")
    return conn, _DIALECTS[name], name


@pytest.fixture
def make_engine(db):
    """Factory: engine over the people table for the current database."""
    conn, dialect, _name = db

    def factory(config=None, **kwargs):
        executor = DBAPIExecutor(conn)
        return TableEngine(config or _people_config(), executor, dialect, **kwargs)

    return factory


@pytest.fixture
def make_people():
    """Factory for the people table config."""
    return _people_config
