"""Dialect capability table and detection."""

from __future__ import annotations

import enum
import logging
from typing import Any

from pytablecraft._errors import DialectError
from pytablecraft.dialect._base import DialectName

logger = logging.getLogger(__name__)


class Feature(enum.StrEnum):
    ILIKE = "ilike"
    FULL_TEXT_SEARCH = "fullTextSearch"
    RECURSIVE_CTE = "recursiveCTE"
    FIRST_ROW_SUBQUERY = "firstRowSubquery"
    RETURNING = "returning"
    LATERAL = "lateral"
    ESTIMATED_COUNT = "estimatedCount"
    FULL_JOIN = "fullJoin"


_PG = DialectName.POSTGRESQL
_MYSQL = DialectName.MYSQL
_SQLITE = DialectName.SQLITE

FEATURE_SUPPORT: dict[Feature, frozenset[DialectName]] = {
    Feature.ILIKE: frozenset({_PG}),
    Feature.FULL_TEXT_SEARCH: frozenset({_PG}),
    Feature.RECURSIVE_CTE: frozenset({_PG, _SQLITE}),
    Feature.FIRST_ROW_SUBQUERY: frozenset({_PG}),
    Feature.RETURNING: frozenset({_PG, _SQLITE}),
    Feature.LATERAL: frozenset({_PG}),
    Feature.ESTIMATED_COUNT: frozenset({_PG}),
    Feature.FULL_JOIN: frozenset({_PG, _SQLITE}),
}
"""Feature to the set of dialects known to support it."""


def supports_feature(dialect: DialectName | str, feature: Feature | str) -> bool:
    """Report whether ``dialect`` supports ``feature``.

    Undetected dialects and features missing from the table are permitted.
    """
    if dialect == DialectName.UNKNOWN:
        return True
    try:
        supported = FEATURE_SUPPORT[Feature(feature)]
    except ValueError:
        return True
    return dialect in supported


def require_feature(dialect: DialectName | str, feature: Feature | str) -> None:
    """Raise DialectError if ``dialect`` does not support ``feature``."""
    if not supports_feature(dialect, feature):
        raise DialectError(str(feature), str(dialect))


def _from_sqlalchemy(conn: Any) -> str | None:
    # Engine and Connection both expose .dialect.name
    sa_dialect = getattr(conn, "dialect", None)
    name = getattr(sa_dialect, "name", None)
    return name if isinstance(name, str) else None


_MODULE_HINTS: tuple[tuple[str, DialectName], ...] = (
    ("psycopg", _PG),
    ("asyncpg", _PG),
    ("pg8000", _PG),
    ("pymysql", _MYSQL),
    ("mysql", _MYSQL),
    ("mariadb", _MYSQL),
    ("sqlite3", _SQLITE),
    ("aiosqlite", _SQLITE),
)

_SQLALCHEMY_NAMES: dict[str, DialectName] = {
    "postgresql": _PG,
    "mysql": _MYSQL,
    "mariadb": _MYSQL,
    "sqlite": _SQLITE,
}


def detect_dialect(conn: Any) -> DialectName:
    """Guess the dialect of a DB-API connection or SQLAlchemy engine.

    Returns ``DialectName.UNKNOWN`` when nothing matches.
    """
    sa_name = _from_sqlalchemy(conn)
    if sa_name is not None:
        return _SQLALCHEMY_NAMES.get(sa_name, DialectName.UNKNOWN)

    module = (type(conn).__module__ or "").lower()
    for hint, name in _MODULE_HINTS:
        if module.startswith(hint) or f".{hint}" in module:
            return name

    logger.debug("could not detect dialect for %s", type(conn).__qualname__)
    return DialectName.UNKNOWN
