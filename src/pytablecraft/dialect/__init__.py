"""SQL dialects and the dialect feature gate."""

from pytablecraft.dialect._base import Dialect, DialectName
from pytablecraft.dialect._features import (
    FEATURE_SUPPORT,
    Feature,
    detect_dialect,
    require_feature,
    supports_feature,
)
from pytablecraft.dialect.generic import GenericDialect
from pytablecraft.dialect.mysql import MySQLDialect
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.dialect.sqlite import SQLiteDialect

__all__ = [
    "Dialect",
    "DialectName",
    "FEATURE_SUPPORT",
    "Feature",
    "GenericDialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    "detect_dialect",
    "dialect_for_connection",
    "get_dialect",
    "require_feature",
    "supports_feature",
]

_REGISTRY: dict[str, type[Dialect]] = {
    DialectName.POSTGRESQL: PostgresDialect,
    DialectName.MYSQL: MySQLDialect,
    DialectName.SQLITE: SQLiteDialect,
    DialectName.UNKNOWN: GenericDialect,
}


def get_dialect(name: str) -> Dialect:
    """Get a dialect instance by name.

    Args:
        name: Dialect name ("postgresql", "mysql", "sqlite" or "unknown").

    Returns:
        A Dialect instance.

    Raises:
        ValueError: If the dialect name is not registered.
    """
    cls = _REGISTRY.get(name)
    if cls is None:
        raise ValueError(
            f"unknown dialect: {name!r}. "
            f"Available: {', '.join(sorted(_REGISTRY))}"
        )
    return cls()


def dialect_for_connection(conn: object) -> Dialect:
    """Return a dialect instance matching a detected connection."""
    return get_dialect(detect_dialect(conn))
