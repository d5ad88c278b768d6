# app/core/permissions.py
import logging
import uuid

from app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

ADMIN = "admin"
STAFF = "staff"
CUSTOMER = "customer"

# action -> roles allowed to perform it
PERMISSIONS: dict[str, frozenset[str]] = {
    # Catalog
    "create_product": frozenset({ADMIN}),
    "update_product": frozenset({ADMIN}),
    "delete_product": frozenset({ADMIN}),
    "update_stock": frozenset({ADMIN, STAFF}),
    # Orders
    "create_order": frozenset({CUSTOMER}),
    "view_all_orders": frozenset({ADMIN, STAFF}),
    "update_order_status": frozenset({ADMIN, STAFF}),
    # Invoices
    "generate_invoice": frozenset({ADMIN, STAFF}),
    "update_invoice_status": frozenset({ADMIN, STAFF}),
    "view_all_invoices": frozenset({ADMIN, STAFF}),
    # Users
    "view_users": frozenset({ADMIN}),
    "update_user_role": frozenset({ADMIN}),
    "update_user_status": frozenset({ADMIN}),
    # Dashboard
    "view_statistics": frozenset({ADMIN, STAFF}),
}


def can_perform(role: str | None, action: str) -> bool:
    """
    Static table lookup. Unknown actions and missing roles are denied.
    """
    if role is None:
        return False
    return role in PERMISSIONS.get(action, frozenset())


def ensure_can_perform(role: str | None, action: str) -> None:
    """
    Guard used inside services before a mutation.

    Raises:
        UnauthorizedError: if the role may not perform the action.
    """
    if not can_perform(role, action):
        logger.warning("Denied %s for role=%s", action, role)
        raise UnauthorizedError(detail=f"Role '{role}' is not allowed to {action.replace('_', ' ')}")


def ensure_not_self_demotion(
    actor_id: uuid.UUID,
    actor_role: str,
    target_id: uuid.UUID,
    new_role: str | None = None,
    new_status: str | None = None,
) -> None:
    """
    An admin may never demote or disable their own account.

    Checked at the point of mutation so the system can't end up with zero
    admins, whatever the UI hides.
    """
    if actor_id != target_id or actor_role != ADMIN:
        return

    if new_role is not None and new_role != ADMIN:
        logger.warning("Admin %s tried to change own role to %s", actor_id, new_role)
        raise UnauthorizedError(detail="Admins cannot change their own role")

    if new_status is not None and new_status != "active":
        logger.warning("Admin %s tried to set own status to %s", actor_id, new_status)
        raise UnauthorizedError(detail="Admins cannot disable their own account")
