"""Field namespace: the single whitelist for filter, sort, select and search."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pytablecraft._errors import (
    ERR_MSG_NOT_FILTERABLE,
    ERR_MSG_NOT_SEARCHABLE,
    ERR_MSG_NOT_SELECTABLE,
    ERR_MSG_NOT_SORTABLE,
    ERR_MSG_UNKNOWN_FIELD,
    ConfigError,
    FieldError,
)
from pytablecraft._joins import walk_joins
from pytablecraft._sql import Fragment
from pytablecraft._subqueries import build_subquery
from pytablecraft._utils import split_qualified, validate_identifier
from pytablecraft.config import ColumnConfig, ColumnType, SubqueryMode, TableConfig

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect


class Provenance(enum.StrEnum):
    BASE = "base"
    JOIN = "join"
    COMPUTED = "computed"
    SUBQUERY = "subquery"


class Capability(enum.StrEnum):
    FILTER = "filter"
    SORT = "sort"
    SELECT = "select"
    SEARCH = "search"


_CAPABILITY_MESSAGES: dict[Capability, str] = {
    Capability.FILTER: ERR_MSG_NOT_FILTERABLE,
    Capability.SORT: ERR_MSG_NOT_SORTABLE,
    Capability.SELECT: ERR_MSG_NOT_SELECTABLE,
    Capability.SEARCH: ERR_MSG_NOT_SEARCHABLE,
}


@dataclass(frozen=True)
class ResolvedField:
    """Where a field comes from and what may be done with it."""

    name: str
    provenance: Provenance
    expression: Fragment
    type: ColumnType
    sortable: bool
    filterable: bool
    selectable: bool
    scalar: bool = True
    column: ColumnConfig | None = None
    select_expression: Fragment | None = None

    @property
    def searchable(self) -> bool:
        return self.scalar and self.provenance != Provenance.SUBQUERY

    def allows(self, capability: Capability) -> bool:
        match capability:
            case Capability.FILTER:
                return self.filterable and self.scalar
            case Capability.SORT:
                return self.sortable and self.scalar
            case Capability.SELECT:
                return self.selectable
            case Capability.SEARCH:
                return self.searchable
        return False


_SUBQUERY_TYPES: dict[SubqueryMode, ColumnType] = {
    SubqueryMode.COUNT: ColumnType.NUMBER,
    SubqueryMode.EXISTS: ColumnType.BOOLEAN,
    SubqueryMode.FIRST: ColumnType.JSON,
}


def _with_db_transform(expr: Fragment, funcs: tuple[str, ...]) -> Fragment:
    for func in funcs:
        validate_identifier(func, "db transform")
        expr = f"{func}(" + expr + ")"
    return expr


class FieldResolver:
    """Builds the field namespace of a table config once.

    Lookup order is base columns, join columns at any depth, computed
    columns, then subquery aliases. A join column is shadowed by a base
    column only when the base config declares that name; any other
    collision is a configuration error.
    """

    def __init__(self, config: TableConfig, dialect: Dialect) -> None:
        self.config = config
        self.dialect = dialect
        self._base: dict[str, ResolvedField] = {}
        self._joined: dict[str, ResolvedField] = {}
        self._computed: dict[str, ResolvedField] = {}
        self._subqueries: dict[str, ResolvedField] = {}
        self._qualified: dict[str, ResolvedField] = {}
        self._build()

    # --- construction ---

    def _column_expression(self, table: str, column: str) -> Fragment:
        return Fragment.text(self.dialect.qualified(table, column))

    def _source_expression(self, col: ColumnConfig, default_table: str) -> tuple[Fragment, bool]:
        qualifier, column = split_qualified(col.source)
        if qualifier is not None:
            validate_identifier(qualifier, "table name")
        validate_identifier(column, "column name")
        table = qualifier or default_table
        return self._column_expression(table, column), table != self.config.base

    def _declare(self, registry: dict[str, ResolvedField], field: ResolvedField) -> None:
        if field.name in registry:
            raise ConfigError(
                f"duplicate field '{field.name}'",
                f"field {field.name!r} is declared twice in {self.config.name!r}",
            )
        registry[field.name] = field

    def _column_field(
        self, col: ColumnConfig, expr: Fragment, provenance: Provenance
    ) -> ResolvedField:
        return ResolvedField(
            name=col.name,
            provenance=provenance,
            expression=expr,
            type=ColumnType(col.type),
            sortable=col.sortable,
            filterable=col.filterable,
            selectable=not col.hidden,
            column=col,
            select_expression=_with_db_transform(expr, col.db_transform),
        )

    def _build(self) -> None:
        cfg = self.config
        validate_identifier(cfg.base, "table name")

        computed: list[ColumnConfig] = []
        for col in cfg.columns:
            if col.computed or col.expression is not None:
                computed.append(col)
                continue
            expr, via_join = self._source_expression(col, cfg.base)
            prov = Provenance.JOIN if via_join else Provenance.BASE
            self._declare(self._base, self._column_field(col, expr, prov))

        for join, _parent in walk_joins(cfg.joins, cfg.base):
            validate_identifier(join.table, "table name")
            if join.alias:
                validate_identifier(join.alias, "join alias")
            for col in join.columns:
                expr, _ = self._source_expression(col, join.ref)
                field = self._column_field(col, expr, Provenance.JOIN)
                self._qualified[f"{join.ref}.{col.name}"] = field
                if col.name in self._base:
                    continue
                if col.name in self._joined:
                    raise ConfigError(
                        f"ambiguous field '{col.name}'",
                        f"join column {col.name!r} is exposed by more than one join",
                    )
                self._joined[col.name] = field

        for col in computed:
            if col.expression is None:
                raise ConfigError(
                    f"computed column '{col.name}' has no expression",
                    f"column {col.name!r} is marked computed without an expression",
                )
            self._check_collision(col.name, "computed column")
            expr = Fragment.text(col.expression.sql).wrap()
            self._declare(self._computed, self._column_field(col, expr, Provenance.COMPUTED))

        for sub in cfg.subqueries:
            validate_identifier(sub.table, "table name")
            self._check_collision(sub.alias, "subquery alias")
            if sub.alias in self._computed:
                raise ConfigError(
                    f"ambiguous field '{sub.alias}'",
                    f"subquery alias {sub.alias!r} collides with a computed column",
                )
            mode = SubqueryMode(sub.mode)
            scalar = mode != SubqueryMode.FIRST
            expr = build_subquery(sub, self.dialect)
            self._declare(
                self._subqueries,
                ResolvedField(
                    name=sub.alias,
                    provenance=Provenance.SUBQUERY,
                    expression=expr,
                    type=_SUBQUERY_TYPES[mode],
                    sortable=scalar,
                    filterable=scalar,
                    selectable=True,
                    scalar=scalar,
                    select_expression=expr,
                ),
            )

    def _check_collision(self, name: str, kind: str) -> None:
        if name in self._base:
            raise ConfigError(
                f"duplicate field '{name}'",
                f"{kind} {name!r} collides with a base column",
            )
        if name in self._joined:
            raise ConfigError(
                f"ambiguous field '{name}'",
                f"{kind} {name!r} collides with a join column",
            )

    # --- lookup ---

    def resolve(self, name: str) -> ResolvedField | None:
        """Resolve an output field name, or a ``joinref.column`` name."""
        for registry in (self._base, self._joined, self._computed, self._subqueries):
            field = registry.get(name)
            if field is not None:
                return field
        return self._qualified.get(name)

    def require(self, name: str, capability: Capability) -> ResolvedField:
        """Resolve ``name`` and check ``capability``; raise FieldError otherwise."""
        field = self.resolve(name)
        if field is None:
            raise FieldError(name, ERR_MSG_UNKNOWN_FIELD)
        if not field.allows(capability):
            raise FieldError(
                name,
                _CAPABILITY_MESSAGES[capability],
                f"{capability} rejected for {field.provenance} field {name!r}",
            )
        return field

    def base_column(self, name: str) -> Fragment:
        """A declared field, or an undeclared column of the base table.

        Only for developer-configured names (tenant, soft delete, backend
        conditions); request input must go through :meth:`resolve`.
        """
        field = self.resolve(name)
        if field is not None:
            return field.expression
        qualifier, column = split_qualified(name)
        validate_identifier(column, "column name")
        if qualifier is not None:
            validate_identifier(qualifier, "table name")
        return self._column_expression(qualifier or self.config.base, column)

    def fields(self) -> list[ResolvedField]:
        """All unqualified fields in lookup order."""
        seen: dict[str, ResolvedField] = {}
        for registry in (self._base, self._joined, self._computed, self._subqueries):
            for name, field in registry.items():
                seen.setdefault(name, field)
        return list(seen.values())

    def selectable_fields(self) -> list[ResolvedField]:
        return [f for f in self.fields() if f.selectable]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None
