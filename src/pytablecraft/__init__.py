"""pytablecraft - Compile declarative table configs and request params to SQL."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytablecraft")
except PackageNotFoundError:  # running from a source tree
    __version__ = "0.0.0.dev0"

from pytablecraft._cache import CacheEntry, ResponseCache, build_cache_key
from pytablecraft._cel import parse_filter_expression
from pytablecraft._compiler import QueryCompiler
from pytablecraft._cursor import decode_cursor, encode_cursor
from pytablecraft._dates import DatePreset, DateRange, resolve_date_preset
from pytablecraft._errors import (
    AccessDeniedError,
    ConfigError,
    DialectError,
    FieldError,
    NotFoundError,
    QueryError,
    TableCraftError,
    ValidationError,
)
from pytablecraft._metadata import build_metadata
from pytablecraft._plan import PaginationMode, QueryPlan, SQLPlan
from pytablecraft._response import register_transform, shape_response
from pytablecraft._sql import Statement
from pytablecraft._validation import validate_against_schema, validate_config
from pytablecraft.config import (
    AccessControl,
    AggregationConfig,
    AggregationType,
    BackendCondition,
    CacheConfig,
    ColumnConfig,
    ColumnRef,
    ColumnType,
    FilterCondition,
    FilterConfig,
    FilterGroup,
    FilterKind,
    GroupByConfig,
    GroupKind,
    HavingCondition,
    JoinConfig,
    JoinOn,
    JoinType,
    Literal,
    Operator,
    PaginationConfig,
    RawSQL,
    RecursiveConfig,
    SearchConfig,
    SoftDeleteConfig,
    SortConfig,
    SortDirection,
    SubqueryCondition,
    SubqueryConfig,
    SubqueryMode,
    TableConfig,
    TenantConfig,
)
from pytablecraft.dialect import (
    Dialect,
    Feature,
    GenericDialect,
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
    detect_dialect,
    dialect_for_connection,
    get_dialect,
    supports_feature,
)
from pytablecraft.engine import DBAPIExecutor, TableEngine, create_engines, get_engine
from pytablecraft.params import (
    EngineContext,
    EngineParams,
    FilterParam,
    SortParam,
    UserContext,
)
from pytablecraft.schema import ColumnSchema, TableSchema

__all__ = [
    "compile_query",
    "to_sql",
    "QueryCompiler",
    "QueryPlan",
    "SQLPlan",
    "PaginationMode",
    "Statement",
    "TableEngine",
    "DBAPIExecutor",
    "create_engines",
    "get_engine",
    "ResponseCache",
    "CacheEntry",
    "build_cache_key",
    "build_metadata",
    "shape_response",
    "register_transform",
    "parse_filter_expression",
    "encode_cursor",
    "decode_cursor",
    "resolve_date_preset",
    "DatePreset",
    "DateRange",
    "validate_config",
    "validate_against_schema",
    # errors
    "TableCraftError",
    "ConfigError",
    "FieldError",
    "ValidationError",
    "DialectError",
    "AccessDeniedError",
    "NotFoundError",
    "QueryError",
    # config
    "AccessControl",
    "AggregationConfig",
    "AggregationType",
    "BackendCondition",
    "CacheConfig",
    "ColumnConfig",
    "ColumnRef",
    "ColumnType",
    "FilterCondition",
    "FilterConfig",
    "FilterGroup",
    "FilterKind",
    "GroupByConfig",
    "GroupKind",
    "HavingCondition",
    "JoinConfig",
    "JoinOn",
    "JoinType",
    "Literal",
    "Operator",
    "PaginationConfig",
    "RawSQL",
    "RecursiveConfig",
    "SearchConfig",
    "SoftDeleteConfig",
    "SortConfig",
    "SortDirection",
    "SubqueryCondition",
    "SubqueryConfig",
    "SubqueryMode",
    "TableConfig",
    "TenantConfig",
    # params
    "EngineContext",
    "EngineParams",
    "FilterParam",
    "SortParam",
    "UserContext",
    # schema
    "ColumnSchema",
    "TableSchema",
    # dialects
    "Dialect",
    "Feature",
    "GenericDialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    "detect_dialect",
    "dialect_for_connection",
    "get_dialect",
    "supports_feature",
]


def compile_query(
    config: TableConfig,
    params: EngineParams | None = None,
    *,
    context: EngineContext | None = None,
    dialect: Dialect | None = None,
    max_output_length: int | None = None,
) -> Statement:
    """Compile a request to a parameterized SELECT.

    Args:
        config: The table configuration.
        params: Request parameters. Defaults to an empty request.
        context: Caller context (tenant, user, roles).
        dialect: SQL dialect to use. Defaults to PostgreSQL.
        max_output_length: Maximum SQL output length.

    Returns:
        Statement with dialect placeholders and the parameter list.

    Raises:
        TableCraftError: Any compile-time error; see the subclasses.
    """
    kwargs = {}
    if max_output_length is not None:
        kwargs["max_output_length"] = max_output_length
    compiler = QueryCompiler(config, dialect, **kwargs)
    return compiler.render(compiler.compile(params, context))


def to_sql(
    config: TableConfig,
    params: EngineParams | None = None,
    *,
    context: EngineContext | None = None,
    dialect: Dialect | None = None,
) -> str:
    """Compile a request to SELECT text with values inlined as literals.

    Meant for logging and tests; execute :func:`compile_query` output instead.
    """
    compiler = QueryCompiler(config, dialect)
    return compiler.render(compiler.compile(params, context), inline=True).sql
