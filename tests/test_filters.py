"""WHERE clause compilation tests."""

import logging

import pytest

from pytablecraft._errors import FieldError, ValidationError
from pytablecraft._fields import FieldResolver
from pytablecraft._filters import FilterCompiler, validate_filter_values
from pytablecraft.config import (
    BackendCondition,
    ColumnConfig,
    ColumnType,
    FilterCondition,
    FilterConfig,
    FilterGroup,
    FilterKind,
    GroupKind,
    Operator,
    SoftDeleteConfig,
    TableConfig,
    TenantConfig,
)
from pytablecraft.dialect.postgres import PostgresDialect
from pytablecraft.params import EngineContext, EngineParams, FilterParam, UserContext

COLUMNS = (
    ColumnConfig("id", ColumnType.NUMBER),
    ColumnConfig("status"),
    ColumnConfig("total", ColumnType.NUMBER),
    ColumnConfig("paid", ColumnType.BOOLEAN),
    ColumnConfig("ref", ColumnType.UUID),
    ColumnConfig("createdAt", ColumnType.DATE),
    ColumnConfig("notes", filterable=False),
    ColumnConfig("secret", hidden=True),
)


def make_config(**overrides):
    kwargs = dict(name="orders", base="orders", columns=COLUMNS)
    kwargs.update(overrides)
    return TableConfig(**kwargs)


def compile_where(params, config=None, context=None):
    config = config or make_config()
    resolver = FieldResolver(config, PostgresDialect())
    validate_filter_values(params, resolver)
    frag = FilterCompiler(config, resolver).build(params, context)
    return frag.render(PostgresDialect()) if frag is not None else None


def filters(**kwargs):
    return EngineParams(filters=kwargs)


class TestDynamicFilters:
    def test_eq(self):
        stmt = compile_where(filters(status=FilterParam(Operator.EQ, "active")))
        assert stmt.sql == "orders.status = $1"
        assert stmt.parameters == ["active"]

    def test_operator_as_string(self):
        stmt = compile_where(filters(total=FilterParam("gte", 10)))
        assert stmt.sql == "orders.total >= $1"

    def test_several_operators_on_one_field(self):
        params = filters(total=[FilterParam("gte", 10), FilterParam("lt", 100)])
        stmt = compile_where(params)
        assert stmt.sql == "orders.total >= $1 AND orders.total < $2"
        assert stmt.parameters == [10, 100]

    def test_unknown_field_skipped(self, caplog):
        with caplog.at_level(logging.INFO, logger="pytablecraft._filters"):
            stmt = compile_where(filters(nope=FilterParam("eq", 1)))
        assert stmt is None
        assert "nope" in caplog.text

    def test_not_filterable_rejected(self):
        with pytest.raises(FieldError, match="is not filterable"):
            compile_where(filters(notes=FilterParam("eq", "x")))

    def test_hidden_field_filterable(self):
        assert compile_where(filters(secret=FilterParam("eq", "x"))).sql == "orders.secret = $1"

    def test_pattern_operator(self):
        stmt = compile_where(filters(status=FilterParam("contains", "act")))
        assert stmt.sql == "orders.status ILIKE $1 ESCAPE E'\\\\'"
        assert stmt.parameters == ["%act%"]

    def test_date_preset_expands(self):
        stmt = compile_where(filters(createdAt=FilterParam("eq", "last7days")))
        assert stmt.sql == 'orders."createdAt" >= $1 AND orders."createdAt" < $2'
        start, end = stmt.parameters
        assert start < end

    def test_date_iso_string(self):
        stmt = compile_where(filters(createdAt=FilterParam("gt", "2024-01-10")))
        assert stmt.sql == 'orders."createdAt" > $1'
        assert stmt.parameters == ["2024-01-10"]


class TestValueValidation:
    @pytest.mark.parametrize(
        "field,param",
        [
            pytest.param("total", FilterParam("eq", "abc"), id="number_from_string"),
            pytest.param("total", FilterParam("eq", True), id="number_from_bool"),
            pytest.param("total", FilterParam("eq", float("inf")), id="number_infinite"),
            pytest.param("paid", FilterParam("eq", "yes"), id="boolean"),
            pytest.param("ref", FilterParam("eq", "not-a-uuid"), id="uuid"),
            pytest.param("createdAt", FilterParam("eq", "someday"), id="date"),
            pytest.param("total", FilterParam("in", 5), id="in_needs_array"),
            pytest.param("total", FilterParam("in", [1, "x"]), id="in_item_type"),
            pytest.param("total", FilterParam("between", [1]), id="between_arity"),
            pytest.param("status", FilterParam("contains", 5), id="pattern_needs_string"),
            pytest.param("status", FilterParam("eq", "a\x00b"), id="null_byte"),
            pytest.param("status", FilterParam("regex", "a"), id="unknown_operator"),
        ],
    )
    def test_rejected(self, field, param):
        with pytest.raises(ValidationError):
            compile_where(EngineParams(filters={field: param}))

    def test_valid_uuid(self):
        value = "123e4567-e89b-12d3-a456-426614174000"
        assert compile_where(filters(ref=FilterParam("eq", value))).parameters == [value]

    def test_null_value_means_is_null(self):
        assert compile_where(filters(total=FilterParam("eq", None))).sql == "orders.total IS NULL"

    def test_between(self):
        stmt = compile_where(filters(total=FilterParam("between", [1, 9])))
        assert stmt.sql == "orders.total BETWEEN $1 AND $2"


class TestOrdering:
    def test_parts_in_fixed_order(self):
        config = make_config(
            backend_conditions=(BackendCondition("ownerId", value="$user.id"),),
            soft_delete=SoftDeleteConfig(),
            tenant=TenantConfig(),
            filters=(
                FilterConfig("status", Operator.NEQ, "archived", type=FilterKind.STATIC),
                FilterConfig("total"),
            ),
        )
        context = EngineContext(tenant_id=7, user=UserContext(id=3))
        stmt = compile_where(filters(total=FilterParam("gt", 5)), config, context)
        assert stmt.sql == (
            'orders."ownerId" = $1 AND orders."deletedAt" IS NULL '
            'AND orders."tenantId" = $2 AND orders.status != $3 AND orders.total > $4'
        )
        assert stmt.parameters == [3, 7, "archived", 5]

    def test_include_deleted(self):
        config = make_config(soft_delete=SoftDeleteConfig(field="deleted_at"))
        assert compile_where(EngineParams(), config).sql == "orders.deleted_at IS NULL"
        assert compile_where(EngineParams(include_deleted=True), config) is None

    def test_tenant_needs_context(self):
        config = make_config(tenant=TenantConfig(field="tenant_id"))
        assert compile_where(EngineParams(), config) is None
        stmt = compile_where(EngineParams(), config, EngineContext(tenant_id="t1"))
        assert stmt.sql == "orders.tenant_id = $1"

    def test_dynamic_config_filter_not_applied(self):
        config = make_config(filters=(FilterConfig("status", value="x"),))
        assert compile_where(EngineParams(), config) is None


class TestBackendConditions:
    def test_literal_value(self):
        config = make_config(backend_conditions=(BackendCondition("region", value="eu"),))
        assert compile_where(EngineParams(), config).sql == "orders.region = $1"

    def test_context_reference(self):
        config = make_config(
            backend_conditions=(BackendCondition("org_id", value="$org"),),
        )
        stmt = compile_where(EngineParams(), config, EngineContext(extra={"org": 12}))
        assert stmt.parameters == [12]

    def test_missing_context_key_fails_closed(self, caplog):
        config = make_config(
            backend_conditions=(BackendCondition("owner_id", value="$user.id"),),
        )
        with caplog.at_level(logging.WARNING, logger="pytablecraft._filters"):
            stmt = compile_where(EngineParams(), config, EngineContext())
        assert stmt.sql == "1 = 0"
        assert "user.id" in caplog.text


class TestGroups:
    def test_nested_structure_preserved(self):
        group = FilterGroup(GroupKind.OR, (
            FilterCondition("status", Operator.EQ, "a"),
            FilterGroup(GroupKind.AND, (
                FilterCondition("total", Operator.GT, 1),
                FilterCondition("total", Operator.LT, 5),
            )),
        ))
        params = EngineParams(
            filters={"paid": FilterParam("eq", True)}, filter_groups=(group,),
        )
        stmt = compile_where(params)
        assert stmt.sql == (
            "orders.paid = $1 AND "
            "(orders.status = $2 OR (orders.total > $3 AND orders.total < $4))"
        )

    def test_empty_group(self):
        params = EngineParams(filter_groups=(FilterGroup(GroupKind.OR, ()),))
        assert compile_where(params) is None

    def test_unknown_leaf_skipped(self):
        group = FilterGroup(GroupKind.OR, (
            FilterCondition("nope", Operator.EQ, 1),
            FilterCondition("status", Operator.EQ, "a"),
        ))
        assert compile_where(EngineParams(filter_groups=(group,))).sql == "orders.status = $1"

    def test_leaf_not_filterable(self):
        group = FilterGroup(GroupKind.AND, (FilterCondition("notes", Operator.EQ, "x"),))
        with pytest.raises(FieldError):
            compile_where(EngineParams(filter_groups=(group,)))

    def test_depth_limit(self):
        expr = FilterCondition("status", Operator.EQ, "a")
        for _ in range(40):
            expr = FilterGroup(GroupKind.AND, (expr,))
        with pytest.raises(ValidationError, match="nesting"):
            compile_where(EngineParams(filter_groups=(expr,)))

    def test_config_group_is_trusted(self):
        group = FilterGroup(GroupKind.OR, (
            FilterCondition("archived", Operator.EQ, False),
            FilterCondition("status", Operator.EQ, "vip"),
        ))
        stmt = compile_where(EngineParams(), make_config(filter_groups=(group,)))
        assert stmt.sql == "orders.archived = $1 OR orders.status = $2"


class TestWhereExpression:
    def test_cel_expression(self):
        params = EngineParams(where='status == "active" && (total > 100 || id in [1, 2])')
        stmt = compile_where(params)
        assert stmt.sql == (
            "orders.status = $1 AND (orders.total > $2 OR orders.id IN ($3, $4))"
        )
        assert stmt.parameters == ["active", 100, 1, 2]

    def test_cel_unknown_field_skipped(self):
        stmt = compile_where(EngineParams(where='nope == 1 && status == "a"'))
        assert stmt.sql == "orders.status = $1"

    def test_cel_not_filterable(self):
        with pytest.raises(FieldError):
            compile_where(EngineParams(where='notes == "x"'))

    def test_cel_type_checked(self):
        with pytest.raises(ValidationError):
            compile_where(EngineParams(where='total == "many"'))

    def test_blank_where(self):
        assert compile_where(EngineParams(where="  ")) is None
