"""WHERE-clause compilation from config filters and request parameters."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from pytablecraft._cel import parse_filter_expression
from pytablecraft._constants import MAX_FILTER_DEPTH
from pytablecraft._dates import build_date_preset_condition, is_date_preset
from pytablecraft._errors import ValidationError
from pytablecraft._fields import Capability, FieldResolver, ResolvedField
from pytablecraft._operators import NULLARY_OPERATORS, PATTERN_OPERATORS, apply_operator
from pytablecraft._sql import Fragment, and_, or_
from pytablecraft._utils import is_valid_uuid, parse_iso_value, validate_no_null_bytes
from pytablecraft.config import (
    ColumnType,
    FilterCondition,
    FilterExpression,
    FilterGroup,
    FilterKind,
    GroupKind,
    Operator,
    TableConfig,
)

if TYPE_CHECKING:
    from pytablecraft._search import SearchCompiler
    from pytablecraft.params import EngineContext, EngineParams

logger = logging.getLogger(__name__)

CONTEXT_REF_PREFIX = "$"


def _coerce_operator(field: str, operator: Any) -> Operator:
    try:
        return Operator(operator)
    except ValueError:
        raise ValidationError(field, "a supported operator", operator) from None


def _validate_single(field: ResolvedField, value: Any) -> None:
    name = field.name
    if isinstance(value, str):
        validate_no_null_bytes(name, value)
    match field.type:
        case ColumnType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(name, "number", value)
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(name, "finite number", value)
        case ColumnType.BOOLEAN:
            if not isinstance(value, bool):
                raise ValidationError(name, "boolean", value)
        case ColumnType.UUID:
            if not isinstance(value, str) or not is_valid_uuid(value):
                raise ValidationError(name, "valid UUID", value)
        case ColumnType.DATE:
            if isinstance(value, (date, datetime)):
                return
            if not isinstance(value, str) or parse_iso_value(value) is None:
                raise ValidationError(name, "ISO date", value)


def validate_value(field: ResolvedField, operator: Operator | str, value: Any) -> Operator:
    """Check that ``value`` fits ``operator`` and the field's declared type."""
    op = _coerce_operator(field.name, operator)
    if op in NULLARY_OPERATORS:
        return op
    if field.type == ColumnType.DATE and is_date_preset(value):
        return op
    if op in (Operator.IN, Operator.NOT_IN):
        if not isinstance(value, (list, tuple)):
            raise ValidationError(field.name, f"array for '{op}'", value)
        for item in value:
            _validate_single(field, item)
        return op
    if op == Operator.BETWEEN:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValidationError(field.name, "array of [min, max]", value)
        _validate_single(field, value[0])
        _validate_single(field, value[1])
        return op
    if op in PATTERN_OPERATORS:
        if not isinstance(value, str):
            raise ValidationError(field.name, "string pattern", value)
        validate_no_null_bytes(field.name, value)
        return op
    if value is None:
        return op
    _validate_single(field, value)
    return op


def validate_filter_values(params: EngineParams, resolver: FieldResolver) -> None:
    """Validate flat request filters before any SQL is built.

    Unknown fields are skipped; known fields must be filterable and carry
    values of the right shape and type.
    """
    for name, param in params.filter_items():
        if resolver.resolve(name) is None:
            logger.info("skipping filter on unknown field %r", name)
            continue
        field = resolver.require(name, Capability.FILTER)
        validate_value(field, param.operator, param.value)


class FilterCompiler:
    """Builds the AND-combined WHERE predicate of a request."""

    def __init__(
        self,
        config: TableConfig,
        resolver: FieldResolver,
        search: SearchCompiler | None = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.dialect = resolver.dialect
        self.search = search

    # --- leaves ---

    def _predicate(
        self, field: ResolvedField | None, target: Fragment, op: Operator, value: Any
    ) -> Fragment | None:
        is_date = field is not None and field.type == ColumnType.DATE
        if is_date and is_date_preset(value) and op not in NULLARY_OPERATORS:
            return build_date_preset_condition(target, value)
        return apply_operator(op, target, value, self.dialect)

    def condition(self, cond: FilterCondition, *, trusted: bool = False) -> Fragment | None:
        """Compile one leaf.

        Request leaves (``trusted=False``) go through the whitelist: unknown
        fields are skipped, others must be filterable.
        """
        if trusted:
            field = self.resolver.resolve(cond.field)
            target = field.expression if field else self.resolver.base_column(cond.field)
            return self._predicate(field, target, Operator(cond.operator), cond.value)

        if self.resolver.resolve(cond.field) is None:
            logger.info("skipping filter on unknown field %r", cond.field)
            return None
        field = self.resolver.require(cond.field, Capability.FILTER)
        op = validate_value(field, cond.operator, cond.value)
        return self._predicate(field, field.expression, op, cond.value)

    # --- groups ---

    def expression(
        self, expr: FilterExpression, *, trusted: bool = False, depth: int = 0
    ) -> Fragment | None:
        """Compile a filter tree, keeping its AND/OR structure."""
        if depth > MAX_FILTER_DEPTH:
            raise ValidationError(
                "filter",
                f"nesting of at most {MAX_FILTER_DEPTH} levels",
                expr,
                f"filter expression exceeds depth {MAX_FILTER_DEPTH}",
            )
        if isinstance(expr, FilterCondition):
            return self.condition(expr, trusted=trusted)
        if not isinstance(expr, FilterGroup):
            raise ValidationError("filter", "condition or group", expr)
        parts = [
            self.expression(child, trusted=trusted, depth=depth + 1)
            for child in expr.children
        ]
        if GroupKind(expr.kind) == GroupKind.OR:
            return or_(*parts)
        return and_(*parts)

    # --- config-driven parts ---

    def backend_conditions(self, context: EngineContext | None) -> Fragment | None:
        parts = []
        for cond in self.config.backend_conditions:
            value = cond.value
            target = self.resolver.base_column(cond.field)
            if isinstance(value, str) and value.startswith(CONTEXT_REF_PREFIX):
                key = value[len(CONTEXT_REF_PREFIX):]
                found, value = context.lookup(key) if context else (False, None)
                if not found:
                    logger.warning(
                        "context key %r missing for backend condition on %r; "
                        "no rows will match",
                        key,
                        cond.field,
                    )
                    parts.append(Fragment.text("1 = 0"))
                    continue
            parts.append(apply_operator(cond.operator, target, value, self.dialect))
        return and_(*parts)

    def soft_delete(self, include_deleted: bool) -> Fragment | None:
        sd = self.config.soft_delete
        if sd is None or not sd.enabled or include_deleted:
            return None
        return self.resolver.base_column(sd.field) + " IS NULL"

    def tenant(self, context: EngineContext | None) -> Fragment | None:
        tenant = self.config.tenant
        if tenant is None or not tenant.enabled:
            return None
        if context is None or context.tenant_id is None:
            return None
        return apply_operator(
            Operator.EQ, self.resolver.base_column(tenant.field),
            context.tenant_id, self.dialect,
        )

    def static_filters(self) -> Fragment | None:
        parts = []
        for f in self.config.filters:
            if f.type != FilterKind.STATIC or f.value is None:
                continue
            cond = FilterCondition(f.field, f.operator, f.value)
            parts.append(self.condition(cond, trusted=True))
        return and_(*parts)

    def config_groups(self) -> Fragment | None:
        return and_(*(self.expression(g, trusted=True) for g in self.config.filter_groups))

    # --- request parts ---

    def dynamic_filters(self, params: EngineParams) -> Fragment | None:
        parts = []
        for name, param in params.filter_items():
            cond = FilterCondition(name, param.operator, param.value)
            parts.append(self.condition(cond))
        return and_(*parts)

    def request_groups(self, params: EngineParams) -> Fragment | None:
        return and_(*(self.expression(g) for g in params.filter_groups))

    def where_expression(self, params: EngineParams) -> Fragment | None:
        if not params.where or not params.where.strip():
            return None
        return self.expression(parse_filter_expression(params.where))

    def build(
        self, params: EngineParams, context: EngineContext | None = None
    ) -> Fragment | None:
        """Every WHERE part, AND-combined in a fixed order."""
        search = self.search.build(params.search) if self.search else None
        return and_(
            self.backend_conditions(context),
            self.soft_delete(params.include_deleted),
            self.tenant(context),
            self.static_filters(),
            self.config_groups(),
            self.dynamic_filters(params),
            self.request_groups(params),
            self.where_expression(params),
            search,
        )
