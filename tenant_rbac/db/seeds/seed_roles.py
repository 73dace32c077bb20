"""Seed the default role tree into the database."""

from sqlalchemy.orm import Session

from tenant_rbac.core.config import settings
from tenant_rbac.models.role import RoleLevel
from tenant_rbac.services.role_service import build_role_service

ROLE_TREE = [
    {
        "name": settings.ADMIN_ROLE_NAME,
        "level": RoleLevel.global_admin,
        "parent": None,
        "description": "Full system access, bypasses permission checks",
        "permissions": [],
    },
    {
        "name": "Enterprise Admin",
        "level": RoleLevel.enterprise_admin,
        "parent": None,
        "description": "Manage roles, users, workspaces and teams of an enterprise",
        "permissions": [
            {"name": "view_roles", "allowed": True},
            {"name": "manage_roles", "allowed": True},
            {"name": "delete_roles", "allowed": True},
            {"name": "view_users", "allowed": True},
            {"name": "manage_users", "allowed": True},
            {"name": "manage_workspaces", "allowed": True},
            {"name": "manage_teams", "allowed": True},
        ],
    },
    {
        "name": "Team Member",
        "level": RoleLevel.user,
        "parent": "Enterprise Admin",
        "description": "Read-only access to roles and users",
        "permissions": [
            {"name": "manage_roles", "allowed": False},
            {"name": "delete_roles", "allowed": False},
            {"name": "manage_users", "allowed": False},
            {"name": "manage_workspaces", "allowed": False},
            {"name": "manage_teams", "allowed": False},
        ],
    },
    {
        "name": "Device",
        "level": RoleLevel.device,
        "parent": "Team Member",
        "description": "Screen/device identity",
        "permissions": [
            {"name": "view_users", "allowed": False},
        ],
    },
]


def seed_roles(db: Session) -> None:
    """Insert the default role tree, skipping roles that already exist."""
    service = build_role_service(db, mode="sync")
    created = 0
    for role_data in ROLE_TREE:
        if service.roles.get_by_name(role_data["name"]):
            continue
        parent = service.roles.get_by_name(role_data["parent"]) if role_data["parent"] else None
        service.create_role(
            name=role_data["name"],
            level=role_data["level"],
            permissions=role_data["permissions"],
            parent_role_id=parent.id if parent else None,
            description=role_data["description"],
        )
        created += 1
    print(f"✅ Seeded {created} roles ({len(ROLE_TREE) - created} already present)")
