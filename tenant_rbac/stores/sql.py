"""SQLAlchemy-backed role and user stores."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tenant_rbac.core.exceptions import StoreError
from tenant_rbac.models.role import Role
from tenant_rbac.models.user import User

logger = logging.getLogger("tenant_rbac.stores")


def _commit(db: Session, entity, label: str):
    """Commit the session and refresh ``entity``; failures roll back and raise StoreError."""
    try:
        db.commit()
        db.refresh(entity)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to persist %s: %s", label, e)
        raise StoreError(f"Failed to persist {label}") from e
    return entity


class SqlRoleStore:
    """Role store over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, role_id: int, include_deleted: bool = False) -> Optional[Role]:
        query = self.db.query(Role).filter(Role.id == role_id)
        if not include_deleted:
            query = query.filter(Role.is_deleted == False)  # noqa: E712
        return query.first()

    def get_by_name(self, name: str, include_deleted: bool = True) -> Optional[Role]:
        query = self.db.query(Role).filter(Role.name == name)
        if not include_deleted:
            query = query.filter(Role.is_deleted == False)  # noqa: E712
        return query.first()

    def get_children(self, parent_id: int) -> List[Role]:
        try:
            return (
                self.db.query(Role)
                .filter(Role.parent_role_id == parent_id, Role.is_deleted == False)  # noqa: E712
                .order_by(Role.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to load children of role {parent_id}") from e

    def list_roles(
        self,
        include_deleted: bool = False,
        parent_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Role], int]:
        query = self.db.query(Role)
        if not include_deleted:
            query = query.filter(Role.is_deleted == False)  # noqa: E712
        if parent_id is not None:
            query = query.filter(Role.parent_role_id == parent_id)

        total = query.count()
        roles = (
            query.order_by(Role.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return roles, total

    def create(self, role: Role) -> Role:
        self.db.add(role)
        return _commit(self.db, role, f"role '{role.name}'")

    def update(self, role: Role) -> Role:
        return _commit(self.db, role, f"role {role.id}")


class SqlUserStore:
    """User store over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def get_all_by_role(self, role_id: int, offset: int = 0, limit: int = 500) -> List[User]:
        try:
            return (
                self.db.query(User)
                .filter(User.role_id == role_id)
                .order_by(User.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to load users of role {role_id}") from e

    def count_by_role(self, role_id: int) -> int:
        return self.db.query(User).filter(User.role_id == role_id).count()

    def create(self, user: User) -> User:
        self.db.add(user)
        return _commit(self.db, user, f"user '{user.email}'")

    def update(self, user: User) -> User:
        return _commit(self.db, user, f"user {user.id}")
