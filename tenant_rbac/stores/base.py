"""Store interfaces the role engine depends on."""

from typing import List, Optional, Protocol, Tuple

from tenant_rbac.models.role import Role
from tenant_rbac.models.user import User


class RoleStore(Protocol):
    """Persists Role records. Soft-deleted roles are hidden unless asked for."""

    def get_by_id(self, role_id: int, include_deleted: bool = False) -> Optional[Role]: ...

    def get_by_name(self, name: str, include_deleted: bool = True) -> Optional[Role]: ...

    def get_children(self, parent_id: int) -> List[Role]: ...

    def list_roles(
        self,
        include_deleted: bool = False,
        parent_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Role], int]: ...

    def create(self, role: Role) -> Role: ...

    def update(self, role: Role) -> Role: ...


class UserStore(Protocol):
    """Persists User records."""

    def get_by_id(self, user_id: int) -> Optional[User]: ...

    def get_by_email(self, email: str) -> Optional[User]: ...

    def get_all_by_role(self, role_id: int, offset: int = 0, limit: int = 500) -> List[User]: ...

    def count_by_role(self, role_id: int) -> int: ...

    def create(self, user: User) -> User: ...

    def update(self, user: User) -> User: ...
