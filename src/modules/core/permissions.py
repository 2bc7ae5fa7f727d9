"""Typed capabilities checked centrally for every API view.

Identity issues role names in the token; this module is the only place
that knows which role grants which capability.  Views declare the
capabilities they need per action via ``required_permissions`` and
``HasPermissions`` enforces them.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Union

from rest_framework.permissions import BasePermission


class Permission(str, Enum):
    READ_CATALOG = "catalog:read"
    RESERVE_STOCK = "catalog:stock"
    MANAGE_CATALOG = "catalog:manage"
    PLACE_ORDERS = "orders:place"
    VIEW_OWN_ORDERS = "orders:read_own"
    CANCEL_OWN_ORDERS = "orders:cancel_own"
    MANAGE_ORDERS = "orders:manage"


class Role(str, Enum):
    USER = "User"
    ADMIN = "Admin"
    SERVICE = "Service"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    # The orders service forwards the customer's own token to the catalog,
    # so a customer must be allowed to reserve and release stock.
    Role.USER: frozenset(
        {
            Permission.READ_CATALOG,
            Permission.RESERVE_STOCK,
            Permission.PLACE_ORDERS,
            Permission.VIEW_OWN_ORDERS,
            Permission.CANCEL_OWN_ORDERS,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Permission.READ_CATALOG,
            Permission.RESERVE_STOCK,
            Permission.MANAGE_CATALOG,
            Permission.MANAGE_ORDERS,
        }
    ),
    Role.SERVICE: frozenset({Permission.READ_CATALOG, Permission.RESERVE_STOCK}),
}


def permissions_for_roles(roles: Iterable[str]) -> FrozenSet[Permission]:
    """Resolve role names to capabilities.  Unknown roles grant nothing."""
    granted: set[Permission] = set()
    for name in roles:
        try:
            role = Role(name)
        except ValueError:
            continue
        granted |= ROLE_PERMISSIONS[role]
    return frozenset(granted)


RequiredPermissions = Union[
    FrozenSet[Permission], Mapping[str, FrozenSet[Permission]]
]


class HasPermissions(BasePermission):
    """Grant access when the user holds every capability the view requires.

    ``view.required_permissions`` is either a set (applies to every action)
    or a mapping ``{action: set}``.  An action missing from the mapping is
    denied (fail closed).
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        required = getattr(view, "required_permissions", None)
        if required is None:
            return False
        if isinstance(required, Mapping):
            needed = required.get(getattr(view, "action", None))
            if needed is None:
                return False
        else:
            needed = required

        granted = getattr(user, "permissions", frozenset())
        return all(permission in granted for permission in needed)
