"""Models package — import all models so metadata.create_all can discover them."""

from tenant_rbac.models.role import Role, RoleLevel
from tenant_rbac.models.user import User

__all__ = ["Role", "RoleLevel", "User"]
