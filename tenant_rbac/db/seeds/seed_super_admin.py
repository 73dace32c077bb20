"""Seed the super-admin user from env vars."""

from sqlalchemy.orm import Session

from tenant_rbac.core.config import settings
from tenant_rbac.services.role_service import build_role_service
from tenant_rbac.services.user_service import UserService


def seed_super_admin(db: Session) -> None:
    """Create the super-admin user if not already present."""
    service = build_role_service(db, mode="sync")
    admin_role = service.roles.get_by_name(settings.ADMIN_ROLE_NAME, include_deleted=False)
    if not admin_role:
        print(f"⚠️  '{settings.ADMIN_ROLE_NAME}' role not found. Run seed_roles first.")
        return

    if service.users.get_by_email(settings.SUPER_ADMIN_EMAIL):
        print(f"ℹ️  Super admin '{settings.SUPER_ADMIN_EMAIL}' already exists, skipping.")
        return

    admin = UserService(service).create_user(
        email=settings.SUPER_ADMIN_EMAIL,
        full_name=settings.SUPER_ADMIN_NAME,
        role_id=admin_role.id,
    )
    print(f"✅ Created super admin: {admin.email} (id={admin.id})")
