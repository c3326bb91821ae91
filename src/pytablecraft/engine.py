"""Runtime engine: compiles, executes through a caller-supplied executor, shapes."""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal
from typing import Any, Protocol

from pytablecraft._cache import ResponseCache, build_cache_key
from pytablecraft._compiler import COUNT_ALIAS, QueryCompiler
from pytablecraft._constants import MAX_SQL_OUTPUT_LENGTH, TOTAL_COUNT_ALIAS
from pytablecraft._cursor import CursorPagination
from pytablecraft._errors import (
    ERR_MSG_QUERY_FAILED,
    NotFoundError,
    QueryError,
    TableCraftError,
)
from pytablecraft._metadata import build_metadata
from pytablecraft._pagination import build_meta
from pytablecraft._plan import PaginationMode, QueryPlan, SQLPlan
from pytablecraft._response import TransformRegistry, shape_response
from pytablecraft._roles import apply_role_visibility
from pytablecraft.config import CacheConfig, TableConfig
from pytablecraft.dialect._base import Dialect
from pytablecraft.params import EngineContext, EngineParams

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class Executor(Protocol):
    """Anything that runs a parameterized statement and returns dict rows."""

    def execute(self, sql: str, parameters: list[Any]) -> list[Row]: ...


# Quoted strings and identifiers, then $N placeholders, ? placeholders and %.
_PLACEHOLDER_RE = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|`[^`]*`|\$(\d+)|(\?)|(%)""")

PARAMSTYLES = frozenset({"qmark", "numeric", "named", "format", "pyformat"})


def driver_paramstyle(connection: Any) -> str:
    """The DB-API ``paramstyle`` of the module a connection comes from."""
    module = type(connection).__module__
    while module:
        style = getattr(sys.modules.get(module), "paramstyle", None)
        if isinstance(style, str):
            return style
        module = module.rpartition(".")[0]
    logger.debug("no paramstyle found for %s, using qmark", type(connection).__qualname__)
    return "qmark"


def adapt_placeholders(
    sql: str, parameters: Sequence[Any], paramstyle: str
) -> tuple[str, list[Any] | dict[str, Any]]:
    """Rewrite rendered ``$N`` or ``?`` placeholders for a DB-API driver.

    Parameters are reordered to follow the placeholders. For the ``format``
    and ``pyformat`` styles every literal ``%`` is doubled, including the
    ones inside quoted strings, unless there are no parameters to bind.

    Raises:
        ValueError: If ``paramstyle`` is not a DB-API 2.0 style.
    """
    if paramstyle not in PARAMSTYLES:
        raise ValueError(f"unsupported paramstyle {paramstyle!r}")
    numbered = any(m.group(1) is not None for m in _PLACEHOLDER_RE.finditer(sql))
    percent = paramstyle in ("format", "pyformat") and len(parameters) > 0
    ordered: list[Any] = []
    position = 0

    def placeholder(value: Any) -> str:
        ordered.append(value)
        match paramstyle:
            case "qmark":
                return "?"
            case "numeric":
                return f":{len(ordered)}"
            case "named":
                return f":p{len(ordered)}"
        return "%s"

    def replace(m: re.Match[str]) -> str:
        nonlocal position
        text = m.group(0)
        if m.group(1) is not None:
            return placeholder(parameters[int(m.group(1)) - 1])
        if m.group(2) is not None:
            if numbered:
                return text
            position += 1
            return placeholder(parameters[position - 1])
        return text.replace("%", "%%") if percent else text

    adapted = _PLACEHOLDER_RE.sub(replace, sql)
    if paramstyle == "named":
        return adapted, {f"p{i}": v for i, v in enumerate(ordered, 1)}
    return adapted, ordered


class DBAPIExecutor:
    """Executor over a DB-API 2.0 connection.

    Rendered placeholders are rewritten to the driver's ``paramstyle``,
    read from the connection's module (``psycopg``, ``mysql.connector``,
    ``sqlite3`` and so on) unless one is given.
    """

    def __init__(self, connection: Any, paramstyle: str | None = None) -> None:
        self.connection = connection
        self.paramstyle = paramstyle or driver_paramstyle(connection)
        if self.paramstyle not in PARAMSTYLES:
            raise ValueError(f"unsupported paramstyle {self.paramstyle!r}")

    def execute(self, sql: str, parameters: list[Any]) -> list[Row]:
        statement, args = adapt_placeholders(sql, parameters, self.paramstyle)
        cursor = self.connection.cursor()
        try:
            if args:
                cursor.execute(statement, args)
            else:
                cursor.execute(statement)
            if cursor.description is None:
                return []
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()


def _spawn(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, name="pytablecraft-revalidate", daemon=True).start()


def _number(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        return float(value)
    return value


class TableEngine:
    """Serves one table config.

    Args:
        config: The table configuration. Validated once, here.
        executor: Runs rendered statements, see :class:`Executor`.
        dialect: SQL dialect. Defaults to PostgreSQL.
        cache: Optional shared response cache, used when ``config.cache``
            is enabled.
        registry: Transform registry for response shaping.
        background: Runs a stale-while-revalidate refresh. Defaults to a
            daemon thread.
    """

    def __init__(
        self,
        config: TableConfig,
        executor: Executor,
        dialect: Dialect | None = None,
        cache: ResponseCache | None = None,
        *,
        registry: TransformRegistry | None = None,
        background: Callable[[Callable[[], None]], None] | None = None,
        max_output_length: int = MAX_SQL_OUTPUT_LENGTH,
    ) -> None:
        self.compiler = QueryCompiler(config, dialect, max_output_length=max_output_length)
        self.executor = executor
        self.cache = cache
        self.registry = registry
        self._background = background or _spawn

    @property
    def config(self) -> TableConfig:
        return self.compiler.config

    @property
    def dialect(self) -> Dialect:
        return self.compiler.dialect

    def _execute(self, plan: QueryPlan | SQLPlan) -> list[Row]:
        statement = self.compiler.render(plan)
        try:
            return list(self.executor.execute(statement.sql, statement.parameters))
        except TableCraftError:
            raise
        except Exception as e:
            raise QueryError(
                ERR_MSG_QUERY_FAILED,
                f"{type(e).__name__}: {e}",
                wrapped=e,
                details={"table": self.config.name},
            ) from e

    def _scalar(self, plan: QueryPlan, alias: str) -> int:
        rows = self._execute(plan)
        if not rows:
            return 0
        return int(rows[0].get(alias) or 0)

    # --- queries ---

    def query(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> dict[str, Any]:
        """Run a list request and return ``{data, meta, aggregations?}``.

        With caching enabled a fresh hit is returned directly. A stale hit
        is returned too, and one background refresh is started for its key.
        """
        params = params or EngineParams()
        settings = self.config.cache
        if self.cache is None or settings is None or not settings.enabled:
            return self._run(params, context)

        cache = self.cache
        key = build_cache_key(self.config.name, params, context)
        entry = cache.get(key)
        if entry is not None:
            if entry.stale and cache.mark_revalidating(key):
                self._background(
                    lambda: self._revalidate(cache, settings, key, params, context)
                )
            return entry.value

        result = self._run(params, context)
        cache.set(key, result, settings.ttl, settings.stale_while_revalidate)
        return result

    def _revalidate(
        self,
        cache: ResponseCache,
        settings: CacheConfig,
        key: str,
        params: EngineParams,
        context: EngineContext | None,
    ) -> None:
        try:
            result = self._run(params, context)
            cache.set(key, result, settings.ttl, settings.stale_while_revalidate)
        except TableCraftError as e:
            logger.error(
                "background refresh of %r failed: %s", self.config.name, e.internal()
            )
        except Exception:
            logger.exception("background refresh of %r failed", self.config.name)
        finally:
            cache.unmark_revalidating(key)

    def _run(self, params: EngineParams, context: EngineContext | None) -> dict[str, Any]:
        plan = self.compiler.compile(params, context)
        rows = self._execute(plan)

        if plan.mode == PaginationMode.CURSOR and plan.page_size is not None:
            rows, meta = CursorPagination.build_meta(
                rows, plan.page_size, plan.sort, plan.cursor_keys
            )
        elif plan.pagination is not None:
            if plan.mode == PaginationMode.OFFSET:
                total = self._scalar(self.compiler.compile_count(params, context), COUNT_ALIAS)
            else:
                total = len(rows)
            meta = build_meta(total, plan.pagination)
        else:
            meta = {"total": len(rows)}

        aggregations = None
        agg_plan = self.compiler.compile_aggregations(params, context)
        if agg_plan is not None:
            agg_rows = self._execute(agg_plan)
            summary = agg_rows[0] if agg_rows else {}
            aggregations = {
                k: _number(v) for k, v in summary.items() if k != TOTAL_COUNT_ALIAS
            } or None

        return shape_response(
            rows,
            meta,
            apply_role_visibility(self.config, context),
            plan.output_fields,
            aggregations,
            registry=self.registry,
        )

    def count(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> int:
        """Number of rows matching the request's filters."""
        return self._scalar(self.compiler.compile_count(params, context), COUNT_ALIAS)

    def query_grouped(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> dict[str, Any]:
        plan = self.compiler.compile_grouped(params, context)
        rows = self._execute(plan)
        return {"data": rows, "meta": {"total": len(rows)}}

    def query_recursive(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> dict[str, Any]:
        """Run the bounded tree query and shape its rows."""
        plan = self.compiler.compile_recursive(params, context)
        rows = self._execute(plan)
        return shape_response(
            rows,
            {"total": len(rows)},
            apply_role_visibility(self.config, context),
            registry=self.registry,
        )

    def estimated_count(self) -> int:
        rows = self._execute(self.compiler.estimated_count())
        if not rows:
            return 0
        return int(rows[0].get("estimate") or 0)

    def metadata(self, context: EngineContext | None = None) -> dict[str, Any]:
        """Column and capability description for the caller."""
        return build_metadata(self.config, self.dialect, context)


def create_engines(
    configs: Iterable[TableConfig],
    executor: Executor,
    dialect: Dialect | None = None,
    cache: ResponseCache | None = None,
    **kwargs: Any,
) -> dict[str, TableEngine]:
    """Build one engine per config, keyed by config name."""
    return {
        config.name: TableEngine(config, executor, dialect, cache, **kwargs)
        for config in configs
    }


def get_engine(engines: dict[str, TableEngine], name: str) -> TableEngine:
    """Look up an engine by table name.

    Raises:
        NotFoundError: If no engine serves ``name``.
    """
    engine = engines.get(name)
    if engine is None:
        raise NotFoundError(name)
    return engine
