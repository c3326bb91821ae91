"""Aggregate selects, GROUP BY and HAVING."""

from __future__ import annotations

from dataclasses import dataclass

from pytablecraft._constants import TOTAL_COUNT_ALIAS
from pytablecraft._errors import ConfigError
from pytablecraft._fields import FieldResolver
from pytablecraft._operators import apply_operator
from pytablecraft._sql import Fragment, and_
from pytablecraft.config import AggregationConfig, AggregationType, TableConfig

_FUNCTIONS: dict[AggregationType, str] = {
    AggregationType.COUNT: "count",
    AggregationType.SUM: "sum",
    AggregationType.AVG: "avg",
    AggregationType.MIN: "min",
    AggregationType.MAX: "max",
}


@dataclass(frozen=True)
class GroupedQuery:
    select: list[tuple[str, Fragment]]
    group_by: list[Fragment]
    having: Fragment | None


class AggregationCompiler:
    def __init__(self, config: TableConfig, resolver: FieldResolver) -> None:
        self.config = config
        self.resolver = resolver

    def expression(self, agg: AggregationConfig) -> Fragment:
        func = _FUNCTIONS[AggregationType(agg.type)]
        if agg.field == "*":
            if agg.type != AggregationType.COUNT:
                raise ConfigError(
                    f"aggregation '{agg.alias}' needs a field",
                    f"{agg.type} over '*' is not valid",
                )
            return Fragment.text(f"{func}(*)")
        return f"{func}(" + self.resolver.base_column(agg.field) + ")"

    def find(self, alias: str) -> AggregationConfig:
        for agg in self.config.aggregations:
            if agg.alias == alias:
                return agg
        raise ConfigError(
            f"unknown aggregation alias '{alias}'",
            f"having references {alias!r} which is not a configured aggregation",
        )

    def build_aggregations(self) -> list[tuple[str, Fragment]]:
        """Alias and aggregate expression for every configured aggregation."""
        return [(agg.alias, self.expression(agg)) for agg in self.config.aggregations]

    def build_aggregation_select(self) -> list[tuple[str, Fragment]]:
        """Aggregations plus a total row count, for a standalone summary query."""
        return [(TOTAL_COUNT_ALIAS, Fragment.text("count(*)"))] + self.build_aggregations()

    def build_having(self) -> Fragment | None:
        group_by = self.config.group_by
        if group_by is None:
            return None
        parts = []
        for having in group_by.having:
            expr = self.expression(self.find(having.alias))
            parts.append(
                apply_operator(having.operator, expr, having.value, self.resolver.dialect)
            )
        return and_(*parts)

    def build_group_by(self) -> GroupedQuery | None:
        group_by = self.config.group_by
        if group_by is None or not group_by.fields:
            return None
        select: list[tuple[str, Fragment]] = []
        keys: list[Fragment] = []
        for name in group_by.fields:
            expr = self.resolver.base_column(name)
            select.append((name, expr))
            keys.append(expr)
        select.extend(self.build_aggregations())
        return GroupedQuery(select=select, group_by=keys, having=self.build_having())
