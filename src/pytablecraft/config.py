"""Declarative, immutable table configuration."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union

from pytablecraft._constants import (
    DEFAULT_CACHE_TTL,
    DEFAULT_MAX_PAGE_SIZE,
    DEFAULT_MAX_TREE_DEPTH,
    DEFAULT_PAGE_SIZE,
)
from pytablecraft._errors import ConfigError


class ColumnType(enum.StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"
    UUID = "uuid"


class Operator(enum.StrEnum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NOT_IN = "notIn"
    BETWEEN = "between"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class JoinType(enum.StrEnum):
    LEFT = "left"
    RIGHT = "right"
    INNER = "inner"
    FULL = "full"


class SortDirection(enum.StrEnum):
    ASC = "asc"
    DESC = "desc"


class AggregationType(enum.StrEnum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class SubqueryMode(enum.StrEnum):
    COUNT = "count"
    EXISTS = "exists"
    FIRST = "first"


class FilterKind(enum.StrEnum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class GroupKind(enum.StrEnum):
    AND = "and"
    OR = "or"


def _tuple_fields(obj: Any, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if not isinstance(value, tuple):
            object.__setattr__(obj, name, tuple(value))


def _require_raw(value: Any, context: str) -> None:
    if value is not None and not isinstance(value, RawSQL):
        raise ConfigError(
            f"{context} must be RawSQL",
            f"{context} received {type(value).__name__}; wrap developer SQL in RawSQL",
        )


@dataclass(frozen=True)
class RawSQL:
    """Developer-authored SQL text.

    Request parsing never produces this type, so a value of it always comes
    from code. Config fields that accept raw SQL reject plain strings.
    """

    sql: str

    def __post_init__(self) -> None:
        if not isinstance(self.sql, str):
            raise ConfigError("RawSQL requires a string", f"got {type(self.sql).__name__}")


@dataclass(frozen=True)
class ColumnConfig:
    """A column exposed by the table API.

    ``field`` is the underlying source column when it differs from ``name``
    and may be dot-qualified (``users.email``) to point into a join.
    """

    name: str
    type: ColumnType = ColumnType.STRING
    field: str | None = None
    label: str | None = None
    hidden: bool = False
    sortable: bool = True
    filterable: bool = True
    computed: bool = False
    expression: RawSQL | None = None
    visible_to: tuple[str, ...] = ()
    options: tuple[Any, ...] = ()
    db_transform: tuple[str, ...] = ()
    transform: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _require_raw(self.expression, f"column '{self.name}' expression")
        _tuple_fields(self, "visible_to", "options", "db_transform", "transform")

    @property
    def source(self) -> str:
        return self.field or self.name


@dataclass(frozen=True)
class JoinOn:
    """Structured ON predicate: ``left = right`` between qualified columns."""

    left: str
    right: str


@dataclass(frozen=True)
class JoinConfig:
    table: str
    on: JoinOn | RawSQL
    alias: str | None = None
    type: JoinType = JoinType.LEFT
    columns: tuple[ColumnConfig, ...] = ()
    joins: tuple[JoinConfig, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.on, JoinOn):
            _require_raw(self.on, f"join '{self.table}' on")
        _tuple_fields(self, "columns", "joins")

    @property
    def ref(self) -> str:
        """Name the joined table is referenced by in SQL."""
        return self.alias or self.table


@dataclass(frozen=True)
class FilterCondition:
    field: str
    operator: Operator = Operator.EQ
    value: Any = None


@dataclass(frozen=True)
class FilterGroup:
    kind: GroupKind
    children: tuple[FilterExpression, ...] = ()

    def __post_init__(self) -> None:
        _tuple_fields(self, "children")


FilterExpression = Union[FilterCondition, FilterGroup]


@dataclass(frozen=True)
class FilterConfig:
    field: str
    operator: Operator = Operator.EQ
    value: Any = None
    type: FilterKind = FilterKind.DYNAMIC
    label: str | None = None


@dataclass(frozen=True)
class BackendCondition:
    """A server-side condition; ``$``-prefixed string values read the request context."""

    field: str
    operator: Operator = Operator.EQ
    value: Any = None


@dataclass(frozen=True)
class SearchConfig:
    fields: tuple[str, ...] = ()
    enabled: bool = True
    full_text: bool = False
    language: str = "english"

    def __post_init__(self) -> None:
        _tuple_fields(self, "fields")


@dataclass(frozen=True)
class SortConfig:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    enabled: bool = True


@dataclass(frozen=True)
class AggregationConfig:
    alias: str
    type: AggregationType
    field: str = "*"


@dataclass(frozen=True)
class ColumnRef:
    """A column operand in a structured subquery condition."""

    column: str


@dataclass(frozen=True)
class Literal:
    """A literal operand; always bound as a parameter."""

    value: Any


SubqueryOperand = Union[ColumnRef, Literal]

SUBQUERY_OPERATORS = frozenset({
    Operator.EQ, Operator.NEQ, Operator.GT, Operator.GTE,
    Operator.LT, Operator.LTE, Operator.LIKE, Operator.ILIKE,
})


@dataclass(frozen=True)
class SubqueryCondition:
    left: SubqueryOperand
    right: SubqueryOperand
    op: Operator = Operator.EQ


@dataclass(frozen=True)
class SubqueryConfig:
    """A correlated subquery exposed under ``alias``.

    Correlation comes from ``expression`` when set, else ``conditions``,
    else the deprecated raw ``filter``.
    """

    alias: str
    table: str
    mode: SubqueryMode = SubqueryMode.COUNT
    conditions: tuple[SubqueryCondition, ...] = ()
    filter: RawSQL | None = None
    expression: RawSQL | None = None

    def __post_init__(self) -> None:
        _require_raw(self.filter, f"subquery '{self.alias}' filter")
        _require_raw(self.expression, f"subquery '{self.alias}' expression")
        _tuple_fields(self, "conditions")

    @property
    def scalar(self) -> bool:
        return self.mode != SubqueryMode.FIRST


@dataclass(frozen=True)
class HavingCondition:
    alias: str
    operator: Operator
    value: Any


@dataclass(frozen=True)
class GroupByConfig:
    fields: tuple[str, ...]
    having: tuple[HavingCondition, ...] = ()

    def __post_init__(self) -> None:
        _tuple_fields(self, "fields", "having")


@dataclass(frozen=True)
class RecursiveConfig:
    parent_key: str
    child_key: str = "id"
    max_depth: int = DEFAULT_MAX_TREE_DEPTH
    start_with: FilterCondition | None = None
    depth_alias: str = "depth"
    path_alias: str | None = None


@dataclass(frozen=True)
class SoftDeleteConfig:
    field: str = "deletedAt"
    enabled: bool = True


@dataclass(frozen=True)
class TenantConfig:
    field: str = "tenantId"
    enabled: bool = True


@dataclass(frozen=True)
class AccessControl:
    """Any listed role grants access; every listed permission is required."""

    roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _tuple_fields(self, "roles", "permissions")


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = False
    ttl: float = DEFAULT_CACHE_TTL
    stale_while_revalidate: float = 0


@dataclass(frozen=True)
class TableConfig:
    """Complete configuration for one table API."""

    name: str
    base: str
    columns: tuple[ColumnConfig, ...] = ()
    joins: tuple[JoinConfig, ...] = ()
    filters: tuple[FilterConfig, ...] = ()
    filter_groups: tuple[FilterGroup, ...] = ()
    search: SearchConfig | None = None
    default_sort: tuple[SortConfig, ...] = ()
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    backend_conditions: tuple[BackendCondition, ...] = ()
    aggregations: tuple[AggregationConfig, ...] = ()
    subqueries: tuple[SubqueryConfig, ...] = ()
    group_by: GroupByConfig | None = None
    recursive: RecursiveConfig | None = None
    soft_delete: SoftDeleteConfig | None = None
    tenant: TenantConfig | None = None
    access: AccessControl | None = None
    cache: CacheConfig | None = None
    date_range_column: str | None = None

    def __post_init__(self) -> None:
        _tuple_fields(
            self,
            "columns",
            "joins",
            "filters",
            "filter_groups",
            "default_sort",
            "backend_conditions",
            "aggregations",
            "subqueries",
        )

    def column(self, name: str) -> ColumnConfig | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None
