"""Query orchestration: composes the clause compilers into one plan."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pytablecraft._aggregations import AggregationCompiler
from pytablecraft._constants import CURSOR_KEY_PREFIX, MAX_SQL_OUTPUT_LENGTH
from pytablecraft._cursor import TIEBREAKER_FIELD, CursorPagination
from pytablecraft._errors import ERR_MSG_UNKNOWN_FIELD, ConfigError, FieldError
from pytablecraft._fields import Capability, FieldResolver
from pytablecraft._filters import FilterCompiler, validate_filter_values
from pytablecraft._joins import build_joins
from pytablecraft._pagination import build_pagination
from pytablecraft._plan import PaginationMode, QueryPlan, SQLPlan
from pytablecraft._recursive import RecursiveCompiler
from pytablecraft._roles import apply_role_visibility, check_access
from pytablecraft._search import SearchCompiler
from pytablecraft._sort import SortCompiler
from pytablecraft._sql import Fragment, Statement, and_
from pytablecraft._validation import validate_config
from pytablecraft.config import TableConfig
from pytablecraft.dialect._base import Dialect
from pytablecraft.dialect._features import Feature, require_feature
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.params import EngineContext, EngineParams

logger = logging.getLogger(__name__)

COUNT_ALIAS = "total"


class QueryCompiler:
    """Compiles requests against one validated table config.

    The config is validated and its field namespace built once, at
    construction. Each compile call derives a request-scoped view for the
    caller's roles, so one compiler can serve concurrent requests.
    """

    def __init__(
        self,
        config: TableConfig,
        dialect: Dialect | None = None,
        *,
        max_output_length: int = MAX_SQL_OUTPUT_LENGTH,
    ) -> None:
        self.config = config
        self.dialect = dialect if dialect is not None else PostgresDialect()
        self.max_output_length = max_output_length
        self.resolver = validate_config(config, self.dialect)
        self.joins = build_joins(config.joins, config.base, self.dialect)

    # --- request scope ---

    def _view(self, context: EngineContext | None) -> tuple[TableConfig, FieldResolver]:
        check_access(self.config, context)
        scoped = apply_role_visibility(self.config, context)
        if scoped is self.config:
            return self.config, self.resolver
        return scoped, FieldResolver(scoped, self.dialect)

    def _where(
        self,
        config: TableConfig,
        resolver: FieldResolver,
        params: EngineParams,
        context: EngineContext | None,
    ) -> Fragment | None:
        validate_filter_values(params, resolver)
        search = SearchCompiler(config.search, resolver)
        return FilterCompiler(config, resolver, search).build(params, context)

    def _select(
        self, resolver: FieldResolver, requested: Iterable[str] | None
    ) -> list[tuple[str, Fragment]]:
        if requested is None:
            return [
                (f.name, f.select_expression or f.expression)
                for f in resolver.selectable_fields()
            ]
        select: dict[str, Fragment] = {}
        for name in requested:
            if name in select:
                continue
            field = resolver.require(name, Capability.SELECT)
            select[name] = field.select_expression or field.expression
        if not select:
            raise FieldError("select", ERR_MSG_UNKNOWN_FIELD, "empty field selection")
        ident = resolver.resolve(TIEBREAKER_FIELD)
        if ident is not None and TIEBREAKER_FIELD not in select:
            select[TIEBREAKER_FIELD] = ident.select_expression or ident.expression
        return list(select.items())

    def _log(self, kind: str, plan: QueryPlan | SQLPlan) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("compiled %s query for %r: %s", kind, self.config.name, plan.debug_sql())

    # --- plans ---

    def compile(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> QueryPlan:
        """Compile the row query of a request.

        A cursor in ``params`` (even an empty one, meaning the first page)
        selects keyset pagination; otherwise page/page_size apply.

        Raises:
            AccessDeniedError: If the caller fails the table's access rule.
            FieldError: For selected, filtered or sorted fields that are not allowed.
            ValidationError: For malformed filter values or expressions.
            DialectError: If the request needs a feature the dialect lacks.
        """
        params = params or EngineParams()
        config, resolver = self._view(context)
        select = self._select(resolver, params.select)
        output = tuple(alias for alias, _ in select) if params.select is not None else None
        where = self._where(config, resolver, params, context)
        sorter = SortCompiler(config, resolver)

        if params.cursor is not None:
            window = build_pagination(config.pagination, 1, params.page_size)
            page_size = window.page_size or config.pagination.max_page_size
            cursor = CursorPagination(resolver, sorter).build(
                params.cursor, page_size, params.sort
            )
            # The cursor carries raw sort values, never db-transformed output.
            selected = dict(select)
            cursor_keys: dict[str, str] = {}
            for term in cursor.sort:
                name = term.field.name
                if name not in selected:
                    select.append((name, term.field.expression))
                elif selected[name] != term.field.expression:
                    cursor_keys[name] = CURSOR_KEY_PREFIX + name
                    select.append((cursor_keys[name], term.field.expression))
            plan = QueryPlan(
                dialect=self.dialect,
                table=config.base,
                select=select,
                joins=self.joins,
                where=and_(where, cursor.where),
                order_by=cursor.order_by,
                limit=cursor.limit,
                mode=PaginationMode.CURSOR,
                page_size=page_size,
                sort=cursor.sort,
                cursor_keys=cursor_keys,
                output_fields=output,
            )
        else:
            terms = sorter.resolve(params.sort)
            pagination = build_pagination(config.pagination, params.page, params.page_size)
            plan = QueryPlan(
                dialect=self.dialect,
                table=config.base,
                select=select,
                joins=self.joins,
                where=where,
                order_by=SortCompiler.build(terms),
                limit=pagination.limit,
                offset=pagination.offset,
                mode=PaginationMode.OFFSET if pagination.limit is not None else PaginationMode.NONE,
                pagination=pagination,
                page_size=pagination.page_size,
                sort=terms,
                output_fields=output,
            )
        self._log("row", plan)
        return plan

    def compile_count(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> QueryPlan:
        """``SELECT count(*)`` under the same WHERE as :meth:`compile`."""
        params = params or EngineParams()
        config, resolver = self._view(context)
        plan = QueryPlan(
            dialect=self.dialect,
            table=config.base,
            select=[(COUNT_ALIAS, Fragment.text("count(*)"))],
            joins=self.joins,
            where=self._where(config, resolver, params, context),
        )
        self._log("count", plan)
        return plan

    def compile_aggregations(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> QueryPlan | None:
        """Single-row summary of every configured aggregation, or None."""
        params = params or EngineParams()
        config, resolver = self._view(context)
        if not config.aggregations:
            return None
        plan = QueryPlan(
            dialect=self.dialect,
            table=config.base,
            select=AggregationCompiler(config, resolver).build_aggregation_select(),
            joins=self.joins,
            where=self._where(config, resolver, params, context),
        )
        self._log("aggregation", plan)
        return plan

    def compile_grouped(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> QueryPlan:
        """GROUP BY query with aggregates and HAVING.

        Request sort terms apply only to grouped fields.
        """
        params = params or EngineParams()
        config, resolver = self._view(context)
        grouped = AggregationCompiler(config, resolver).build_group_by()
        if grouped is None or config.group_by is None:
            raise ConfigError(
                "table has no group by configuration",
                f"{config.name!r} has no group_by fields",
            )
        keys = set(config.group_by.fields)
        terms = [
            t for t in SortCompiler(config, resolver).resolve(params.sort)
            if t.field.name in keys
        ]
        plan = QueryPlan(
            dialect=self.dialect,
            table=config.base,
            select=grouped.select,
            joins=self.joins,
            where=self._where(config, resolver, params, context),
            group_by=grouped.group_by,
            having=grouped.having,
            order_by=SortCompiler.build(terms),
            sort=terms,
        )
        self._log("grouped", plan)
        return plan

    def compile_recursive(
        self, params: EngineParams | None = None, context: EngineContext | None = None
    ) -> SQLPlan:
        """Bounded tree query, scoped by backend, soft-delete and tenant conditions."""
        params = params or EngineParams()
        config, resolver = self._view(context)
        filters = FilterCompiler(config, resolver)
        scope = and_(
            filters.backend_conditions(context),
            filters.soft_delete(params.include_deleted),
            filters.tenant(context),
        )
        plan = SQLPlan(self.dialect, RecursiveCompiler(config, resolver).build(scope))
        self._log("recursive", plan)
        return plan

    def estimated_count(self) -> SQLPlan:
        """Planner row estimate for the base table."""
        require_feature(self.dialect.name, Feature.ESTIMATED_COUNT)
        return SQLPlan(self.dialect, self.dialect.estimated_count(self.config.base))

    def render(self, plan: QueryPlan | SQLPlan, *, inline: bool = False) -> Statement:
        return plan.render(inline=inline, max_output_length=self.max_output_length)
