"""Unit tests for the typed permission map and ``HasPermissions``."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from modules.core.permissions import (
    HasPermissions,
    Permission,
    Role,
    permissions_for_roles,
)

pytestmark = pytest.mark.unit


def _request(*permissions, authenticated=True):
    user = SimpleNamespace(
        is_authenticated=authenticated, permissions=frozenset(permissions)
    )
    return SimpleNamespace(user=user)


class TestRoleMap:
    def test_user_role(self):
        granted = permissions_for_roles(["User"])
        assert Permission.PLACE_ORDERS in granted
        assert Permission.CANCEL_OWN_ORDERS in granted
        assert Permission.MANAGE_ORDERS not in granted

    def test_admin_role(self):
        granted = permissions_for_roles([Role.ADMIN.value])
        assert Permission.MANAGE_ORDERS in granted
        assert Permission.MANAGE_CATALOG in granted
        assert Permission.PLACE_ORDERS not in granted

    @pytest.mark.parametrize("role", ["User", "Service"])
    def test_only_admin_manages_catalog(self, role):
        assert Permission.MANAGE_CATALOG not in permissions_for_roles([role])

    def test_roles_are_combined(self):
        granted = permissions_for_roles(["User", "Admin"])
        assert {Permission.PLACE_ORDERS, Permission.MANAGE_ORDERS} <= granted

    def test_unknown_role_grants_nothing(self):
        assert permissions_for_roles(["Root", ""]) == frozenset()


class TestHasPermissions:
    def test_set_applies_to_every_action(self):
        view = SimpleNamespace(
            action="anything", required_permissions=frozenset({Permission.MANAGE_ORDERS})
        )
        assert HasPermissions().has_permission(_request(Permission.MANAGE_ORDERS), view)
        assert not HasPermissions().has_permission(_request(Permission.PLACE_ORDERS), view)

    def test_mapping_per_action(self):
        view = SimpleNamespace(
            action="cancel",
            required_permissions={
                "cancel": frozenset({Permission.CANCEL_OWN_ORDERS}),
            },
        )
        assert HasPermissions().has_permission(
            _request(Permission.CANCEL_OWN_ORDERS), view
        )

    def test_unmapped_action_is_denied(self):
        view = SimpleNamespace(
            action="destroy",
            required_permissions={"list": frozenset({Permission.READ_CATALOG})},
        )
        assert not HasPermissions().has_permission(
            _request(*list(Permission)), view
        )

    def test_view_without_requirements_is_denied(self):
        view = SimpleNamespace(action="list")
        assert not HasPermissions().has_permission(_request(*list(Permission)), view)

    def test_anonymous_is_denied(self):
        view = SimpleNamespace(action="list", required_permissions=frozenset())
        assert not HasPermissions().has_permission(
            SimpleNamespace(user=None), view
        )
        assert not HasPermissions().has_permission(
            _request(authenticated=False), view
        )
