"""Capability checks shared by the HTTP layer and the services."""
from enum import Enum

from errors import ForbiddenError
from schemas import Role


class Action(str, Enum):
    manage_products = "manage_products"
    manage_orders = "manage_orders"
    view_order = "view_order"


def has_role(user, role: Role) -> bool:
    return bool(user) and user.get("role") == role.value


def can(user, action: Action, resource=None) -> bool:
    """Return True when ``user`` may perform ``action`` on ``resource``.

    Admins may do anything. Regular users may only view orders they own.
    """
    if not user:
        return False
    if has_role(user, Role.admin):
        return True
    if action == Action.view_order and resource is not None:
        return str(resource.get("user_id")) == str(user.get("_id"))
    return False


def authorize(user, action: Action, resource=None):
    if not can(user, action, resource):
        raise ForbiddenError()
