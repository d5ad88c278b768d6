import uuid

import pytest

from app.core.errors import UnauthorizedError
from app.core.permissions import (
    ADMIN,
    CUSTOMER,
    PERMISSIONS,
    STAFF,
    can_perform,
    ensure_can_perform,
    ensure_not_self_demotion,
)


@pytest.mark.parametrize(
    "role, action, allowed",
    [
        (ADMIN, "create_product", True),
        (STAFF, "create_product", False),
        (CUSTOMER, "create_product", False),
        (STAFF, "update_stock", True),
        (CUSTOMER, "update_stock", False),
        (CUSTOMER, "create_order", True),
        (STAFF, "create_order", False),
        (ADMIN, "create_order", False),
        (STAFF, "update_order_status", True),
        (CUSTOMER, "update_order_status", False),
        (STAFF, "generate_invoice", True),
        (CUSTOMER, "generate_invoice", False),
        (STAFF, "update_user_role", False),
        (ADMIN, "update_user_role", True),
        (STAFF, "view_statistics", True),
        (CUSTOMER, "view_statistics", False),
    ],
)
def test_permission_table(role, action, allowed):
    assert can_perform(role, action) is allowed


def test_unknown_action_and_role_denied():
    assert can_perform(ADMIN, "launch_rockets") is False
    assert can_perform("auditor", "view_all_orders") is False
    assert can_perform(None, "view_all_orders") is False


def test_every_action_has_at_least_one_role():
    assert all(PERMISSIONS.values())


def test_ensure_can_perform_raises_403():
    with pytest.raises(UnauthorizedError) as exc:
        ensure_can_perform(CUSTOMER, "generate_invoice")
    assert exc.value.status_code == 403


def test_admin_cannot_demote_self():
    me = uuid.uuid4()
    with pytest.raises(UnauthorizedError):
        ensure_not_self_demotion(me, ADMIN, me, new_role=STAFF)


def test_admin_cannot_disable_self():
    me = uuid.uuid4()
    with pytest.raises(UnauthorizedError):
        ensure_not_self_demotion(me, ADMIN, me, new_status="disabled")


def test_admin_may_change_others_and_keep_own_role():
    me, other = uuid.uuid4(), uuid.uuid4()
    ensure_not_self_demotion(me, ADMIN, other, new_role=CUSTOMER)
    ensure_not_self_demotion(me, ADMIN, other, new_status="disabled")
    ensure_not_self_demotion(me, ADMIN, me, new_role=ADMIN)
