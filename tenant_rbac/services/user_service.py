"""User service — user creation and lookup on top of the role engine."""

import logging
from typing import Any, Iterable, Optional

from tenant_rbac.core.exceptions import ResourceConflictError, ResourceNotFoundError
from tenant_rbac.models.user import User
from tenant_rbac.services.resolver import apply_overrides, encode_permissions, normalize_permissions
from tenant_rbac.services.role_service import RoleService

logger = logging.getLogger("tenant_rbac.users")


class UserService:
    """Creates users with a resolved permission snapshot."""

    def __init__(self, role_service: RoleService):
        self.role_service = role_service
        self.users = role_service.users

    def create_user(
        self,
        email: str,
        full_name: str,
        role_id: int,
        permissions: Optional[Iterable[Any]] = None,
    ) -> User:
        """Create a user assigned to ``role_id``.

        Raises:
            ResourceConflictError: If the email is taken.
            ResourceNotFoundError: If the role does not exist.
        """
        if self.users.get_by_email(email):
            raise ResourceConflictError(f"User with email {email} already exists")

        custom = normalize_permissions(permissions or [])
        effective = self.role_service.resolve_effective_permissions(role_id)
        user = User(
            email=email,
            full_name=full_name,
            role_id=role_id,
            is_active=True,
            custom_permissions_json=encode_permissions(custom),
            permissions_override_json=encode_permissions(apply_overrides(effective, custom)),
        )
        self.users.create(user)
        logger.info("Created user %s with role %s", user.id, role_id)
        return user

    def get_user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user
