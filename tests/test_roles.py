"""Role visibility and access rule tests."""

import pytest

from pytablecraft._errors import AccessDeniedError
from pytablecraft._roles import apply_role_visibility, check_access
from pytablecraft.config import AccessControl, ColumnConfig, JoinConfig, JoinOn
from pytablecraft.params import EngineContext, UserContext


def as_user(*roles, permissions=()):
    return EngineContext(user=UserContext(id=1, roles=roles, permissions=permissions))


@pytest.fixture
def restricted(make_orders):
    return make_orders(
        columns=(
            ColumnConfig("id"),
            ColumnConfig("margin", visible_to=("finance", "admin")),
        ),
        joins=(
            JoinConfig("users", JoinOn("user_id", "id"), columns=(
                ColumnConfig("email", visible_to=("support",)),
            )),
        ),
        default_sort=(),
    )


class TestVisibility:
    def test_unrestricted_config_returned_as_is(self, orders):
        assert apply_role_visibility(orders, as_user("viewer")) is orders

    def test_restricted_column_hidden(self, restricted):
        scoped = apply_role_visibility(restricted, None)
        margin = scoped.column("margin")
        assert margin.hidden
        assert not margin.filterable
        assert not margin.sortable

    def test_any_listed_role_grants(self, restricted):
        scoped = apply_role_visibility(restricted, as_user("viewer", "admin"))
        assert not scoped.column("margin").hidden

    def test_join_columns(self, restricted):
        hidden = apply_role_visibility(restricted, as_user("finance"))
        assert hidden.joins[0].columns[0].hidden
        shown = apply_role_visibility(restricted, as_user("support"))
        assert not shown.joins[0].columns[0].hidden

    def test_original_untouched(self, restricted):
        apply_role_visibility(restricted, None)
        assert not restricted.column("margin").hidden


class TestAccess:
    def test_no_rule(self, orders):
        check_access(orders, None)

    def test_role_required(self, make_orders):
        config = make_orders(access=AccessControl(roles=("admin", "ops")))
        check_access(config, as_user("ops"))
        with pytest.raises(AccessDeniedError, match="missing required role"):
            check_access(config, as_user("viewer"))

    def test_anonymous_denied(self, make_orders):
        config = make_orders(access=AccessControl(roles=("admin",)))
        with pytest.raises(AccessDeniedError) as exc_info:
            check_access(config, EngineContext())
        assert exc_info.value.status_code == 403

    def test_all_permissions_required(self, make_orders):
        config = make_orders(access=AccessControl(permissions=("orders:read", "orders:export")))
        check_access(config, as_user(permissions=("orders:read", "orders:export", "x")))
        with pytest.raises(AccessDeniedError, match="missing required permission"):
            check_access(config, as_user(permissions=("orders:read",)))
