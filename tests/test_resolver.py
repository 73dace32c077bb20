# tests/test_resolver.py

"""
Tests for permission resolution along the role parent chain.
"""

import pytest

from tenant_rbac.core.exceptions import CycleDetectedError, ResourceNotFoundError, ValidationError
from tenant_rbac.models.role import RoleLevel
from tenant_rbac.services.resolver import (
    PermissionResolver,
    apply_overrides,
    merge_permissions,
    normalize_permissions,
)
from tenant_rbac.stores.sql import SqlRoleStore


def as_map(permissions):
    return {p["name"]: p["allowed"] for p in permissions}


def test_member_inherits_through_manager(role_service, org):
    """Member has no own settings and sees Manager's merged view of Owner."""
    resolved = role_service.resolve_effective_permissions(org["member"].id)

    assert as_map(resolved) == {"manage_billing": False, "invite_users": True}


def test_closer_role_wins_in_both_directions(role_service):
    root = role_service.create_role(
        "Root", RoleLevel.enterprise_admin,
        permissions=[{"name": "export", "allowed": True}, {"name": "purge", "allowed": False}],
    )
    child = role_service.create_role(
        "Child", RoleLevel.user,
        permissions=[{"name": "export", "allowed": False}, {"name": "purge", "allowed": True}],
        parent_role_id=root.id,
    )

    assert as_map(role_service.resolve_effective_permissions(child.id)) == {
        "export": False,
        "purge": True,
    }


def test_ancestor_only_permission_passes_through(role_service, org):
    for role in (org["manager"], org["member"]):
        resolved = as_map(role_service.resolve_effective_permissions(role.id))
        assert "invite_users" in resolved

    leaf = role_service.create_role(
        "Leaf", RoleLevel.device, parent_role_id=org["member"].id,
    )
    assert as_map(role_service.resolve_effective_permissions(leaf.id))["invite_users"] is True


def test_resolve_missing_role_raises_not_found(role_service):
    with pytest.raises(ResourceNotFoundError):
        role_service.resolve_effective_permissions(999)


def test_two_role_cycle_is_detected(db, role_service):
    a = role_service.create_role("Role A", RoleLevel.user)
    b = role_service.create_role("Role B", RoleLevel.user, parent_role_id=a.id)
    a.parent_role_id = b.id
    db.commit()

    with pytest.raises(CycleDetectedError):
        role_service.resolve_effective_permissions(a.id)
    with pytest.raises(CycleDetectedError):
        role_service.resolve_effective_permissions(b.id)


def test_depth_bound_raises_cycle_detected(db, role_service):
    parent = None
    for i in range(5):
        role = role_service.create_role(
            f"Level {i}", RoleLevel.user,
            parent_role_id=parent.id if parent else None,
        )
        parent = role

    resolver = PermissionResolver(SqlRoleStore(db), max_depth=3)
    with pytest.raises(CycleDetectedError):
        resolver.resolve(parent.id)


def test_missing_parent_ends_the_chain(db, role_service, org):
    org["owner"].is_deleted = True
    db.commit()

    resolved = as_map(role_service.resolve_effective_permissions(org["member"].id))

    assert resolved == {"manage_billing": False, "invite_users": True}
    assert as_map(role_service.resolve_effective_permissions(org["manager"].id)) == resolved


def test_output_is_sorted_and_deterministic():
    merged = merge_permissions([
        [{"name": "zeta", "allowed": True}, {"name": "alpha", "allowed": True}],
        [{"name": "alpha", "allowed": False}],
    ])

    assert merged == [
        {"name": "alpha", "allowed": False},
        {"name": "zeta", "allowed": True},
    ]


def test_user_overrides_win_over_role():
    base = [{"name": "invite_users", "allowed": True}, {"name": "export", "allowed": False}]

    result = apply_overrides(base, [{"name": "export", "allowed": True}])

    assert as_map(result) == {"invite_users": True, "export": True}


def test_normalize_rejects_duplicates_and_blank_names():
    with pytest.raises(ValidationError):
        normalize_permissions([{"name": "a"}, {"name": "a", "allowed": False}])
    with pytest.raises(ValidationError):
        normalize_permissions([{"name": "  "}])

    assert normalize_permissions([{"name": " a "}]) == [{"name": "a", "allowed": True}]


def test_normalize_rejects_non_boolean_allowed():
    with pytest.raises(ValidationError):
        normalize_permissions([{"name": "export", "allowed": "false"}])
    with pytest.raises(ValidationError):
        normalize_permissions([{"name": "export", "allowed": 0}])

    assert normalize_permissions([{"name": "export", "allowed": False}]) == [
        {"name": "export", "allowed": False},
    ]
