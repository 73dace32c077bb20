"""Authorization gate — request-time permission checks with an admin bypass.

The gate trusts the snapshot stored on the user (``permissions_override_json``)
and never walks the role chain. In ``deferred`` cascade mode that snapshot is
eventually consistent with the role tree.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from tenant_rbac.core.config import settings
from tenant_rbac.core.exceptions import AuthenticationError, AuthorizationError
from tenant_rbac.models.role import Role, RoleLevel
from tenant_rbac.models.user import User
from tenant_rbac.services.resolver import PermissionResolver, decode_permissions

logger = logging.getLogger("tenant_rbac.authz")


@dataclass(frozen=True)
class AccessDecision:
    permission: str
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


class AuthorizationGate:
    """Decides allow/deny for a user and a permission name."""

    def __init__(self, admin_role_name: Optional[str] = None):
        self.admin_role_name = admin_role_name or settings.ADMIN_ROLE_NAME

    def is_admin_role(self, role: Optional[Role]) -> bool:
        """True for the top administrative role: level ``global_admin`` or the configured name."""
        if role is None or role.is_deleted:
            return False
        return role.level == RoleLevel.global_admin or role.name == self.admin_role_name

    def authorize(self, user: Optional[User], permission: str) -> AccessDecision:
        """Allow or deny; denial is a return value, not an exception.

        Raises:
            AuthenticationError: If there is no user or the user is inactive.
        """
        if user is None:
            raise AuthenticationError("Not authenticated")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        if self.is_admin_role(user.role):
            return AccessDecision(permission, True, "admin_bypass")

        for perm in decode_permissions(user.permissions_override_json):
            if perm["name"] == permission:
                if perm["allowed"]:
                    return AccessDecision(permission, True, "granted")
                return AccessDecision(permission, False, "denied")
        return AccessDecision(permission, False, "not_granted")

    def require(self, user: Optional[User], permission: str) -> AccessDecision:
        """Like :meth:`authorize` but raises AuthorizationError on deny."""
        decision = self.authorize(user, permission)
        if not decision.allowed:
            logger.info("Denied '%s' to user %s (%s)", permission, user.id, decision.reason)
            raise AuthorizationError(f"Missing permission '{permission}'")
        return decision

    def authorize_role(self, resolver: PermissionResolver, role_id: int, permission: str) -> AccessDecision:
        """Check a role directly, resolving its chain instead of reading a snapshot."""
        chain = resolver.chain(role_id)
        if self.is_admin_role(chain[0]):
            return AccessDecision(permission, True, "admin_bypass")
        for perm in resolver.merge_chain(chain):
            if perm["name"] == permission:
                return AccessDecision(permission, perm["allowed"], "granted" if perm["allowed"] else "denied")
        return AccessDecision(permission, False, "not_granted")


authorization_gate = AuthorizationGate()
