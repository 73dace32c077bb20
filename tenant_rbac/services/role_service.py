"""Role service — role mutations, cascading recomputation, and role assignment."""

import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from tenant_rbac.core.config import settings
from tenant_rbac.core.exceptions import (
    CycleDetectedError,
    HasDependentsError,
    ResourceConflictError,
    ResourceNotFoundError,
    StoreError,
    ValidationError,
)
from tenant_rbac.models.role import Role, RoleLevel
from tenant_rbac.models.user import User
from tenant_rbac.services.resolver import (
    PermissionResolver,
    apply_overrides,
    decode_permissions,
    encode_permissions,
    normalize_permissions,
)
from tenant_rbac.stores.base import RoleStore, UserStore
from tenant_rbac.stores.sql import SqlRoleStore, SqlUserStore

logger = logging.getLogger("tenant_rbac.roles")

UPDATABLE_FIELDS = {
    "name", "level", "description", "permissions",
    "parent_role_id", "enterprise_id", "channel_id",
}


@dataclass
class CascadeFailure:
    entity_type: str  # "role" or "user"
    entity_id: int
    error: str


@dataclass
class CascadeReport:
    """Outcome of a cascade run.

    ``status`` is ``completed`` when every visited entity was refreshed,
    ``partial`` when some failed (see ``failures``), and ``queued`` when the
    cascade was handed to a worker.
    """

    root_role_id: int
    status: str = "completed"
    roles_updated: List[int] = field(default_factory=list)
    users_updated: int = 0
    failures: List[CascadeFailure] = field(default_factory=list)
    task_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "partial"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RoleService:
    """Coordinates role mutations and keeps cached permission sets in sync.

    Every role visited by a cascade gets its ``effective_permissions_json``
    rewritten, and every user assigned one of those roles gets its
    ``permissions_override_json`` snapshot rewritten. Nothing is cached
    in-process; each call re-reads the stores.
    """

    def __init__(
        self,
        role_store: RoleStore,
        user_store: UserStore,
        resolver: Optional[PermissionResolver] = None,
        page_size: Optional[int] = None,
        mode: Optional[str] = None,
        strict_delete: Optional[bool] = None,
    ):
        self.roles = role_store
        self.users = user_store
        self.resolver = resolver or PermissionResolver(role_store)
        self.page_size = page_size or settings.CASCADE_PAGE_SIZE
        self.mode = mode or settings.CASCADE_MODE
        self.strict_delete = settings.STRICT_ROLE_DELETE if strict_delete is None else strict_delete

    # ---- Reads ----

    def get_role(self, role_id: int, include_deleted: bool = False) -> Role:
        role = self.roles.get_by_id(role_id, include_deleted=include_deleted)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    def list_roles(
        self,
        include_deleted: bool = False,
        parent_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        roles, total = self.roles.list_roles(include_deleted, parent_id, page, page_size)
        return {"roles": roles, "total": total, "page": page}

    def resolve_effective_permissions(self, role_id: int) -> List[Dict[str, Any]]:
        return self.resolver.resolve(role_id)

    # ---- Mutations ----

    def create_role(
        self,
        name: str,
        level: Any = RoleLevel.user,
        permissions: Optional[Iterable[Any]] = None,
        parent_role_id: Optional[int] = None,
        description: Optional[str] = None,
        enterprise_id: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> Role:
        """Create a role and populate its effective permissions.

        Raises:
            ResourceConflictError: If the name is taken (deleted roles included).
            ResourceNotFoundError: If ``parent_role_id`` does not exist.
            CycleDetectedError: If the parent's chain is cyclic or already at the depth limit.
        """
        if self.roles.get_by_name(name, include_deleted=True):
            raise ResourceConflictError(f"Role with name '{name}' already exists")
        if parent_role_id is not None:
            ancestors = self.resolver.chain(parent_role_id)
            if len(ancestors) >= self.resolver.max_depth:
                raise CycleDetectedError(
                    f"Role {parent_role_id} is already {len(ancestors)} levels deep"
                )

        role = Role(
            name=name,
            level=RoleLevel(level),
            description=description,
            parent_role_id=parent_role_id,
            permissions_json=encode_permissions(normalize_permissions(permissions or [])),
            enterprise_id=enterprise_id,
            channel_id=channel_id,
        )
        self.roles.create(role)

        role.effective_permissions_json = encode_permissions(self.resolver.resolve(role.id))
        self.roles.update(role)
        logger.info("Created role %s '%s' (parent=%s)", role.id, role.name, parent_role_id)
        return role

    def update_role(self, role_id: int, **patch: Any) -> Tuple[Role, CascadeReport]:
        """Apply a patch to a role, persist it, then cascade from it.

        The role's own write is committed before the cascade starts; the
        returned report covers the cached sets of the subtree and its users.

        Raises:
            ResourceNotFoundError: If the role or the new parent does not exist.
            ResourceConflictError: If the new name is taken.
            CycleDetectedError: If the new parent is the role itself or one of its descendants.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update role fields: {', '.join(sorted(unknown))}")

        role = self.get_role(role_id)
        changed = sorted(patch)

        new_name = patch.get("name")
        if new_name and new_name != role.name and self.roles.get_by_name(new_name, include_deleted=True):
            raise ResourceConflictError(f"Role with name '{new_name}' already exists")

        if "parent_role_id" in patch:
            self._check_parent(role, patch["parent_role_id"])

        if "permissions" in patch:
            role.permissions_json = encode_permissions(normalize_permissions(patch.pop("permissions") or []))
        level = patch.pop("level", None)
        if level is not None:
            role.level = RoleLevel(level)
        for key, value in patch.items():
            if key == "name" and not value:
                continue
            setattr(role, key, value)

        self.roles.update(role)
        logger.info("Updated role %s (%s)", role.id, ", ".join(changed))

        return role, self._dispatch_cascade(role.id)

    def delete_role(self, role_id: int) -> CascadeReport:
        """Soft-delete a role.

        In strict mode a role with active child roles or assigned users is not
        deleted. Otherwise the role is marked deleted without reassigning
        anything: orphaned child subtrees are re-cascaded so they lose the
        settings they inherited through it, while users assigned directly to
        the deleted role keep their last snapshot.

        Raises:
            ResourceNotFoundError: If the role does not exist.
            HasDependentsError: In strict mode, if dependents remain.
        """
        role = self.get_role(role_id)
        children = self.roles.get_children(role.id)

        if self.strict_delete:
            user_count = self.users.count_by_role(role.id)
            if children or user_count:
                raise HasDependentsError(
                    f"Role {role.id} still has {len(children)} child roles and {user_count} users"
                )

        role.is_deleted = True
        role.deleted_at = datetime.now(timezone.utc)
        self.roles.update(role)
        logger.info("Soft-deleted role %s '%s'", role.id, role.name)

        if not children:
            return self._finish(CascadeReport(root_role_id=role.id))
        return self._dispatch_cascade(role.id, [child.id for child in children])

    def restore_role(self, role_id: int) -> Tuple[Role, CascadeReport]:
        """Undo a soft delete and cascade from the restored role.

        Raises:
            CycleDetectedError: If the role's parent chain now leads back to it,
                which happens when an ancestor was re-parented under one of its
                descendants while the role was deleted.
        """
        role = self.get_role(role_id, include_deleted=True)
        if role.is_deleted:
            if role.parent_role_id is not None and self._leads_to(role.parent_role_id, role.id):
                raise CycleDetectedError(
                    f"Restoring role {role.id} would close a cycle through role {role.parent_role_id}"
                )
            role.is_deleted = False
            role.deleted_at = None
            self.roles.update(role)
            logger.info("Restored role %s '%s'", role.id, role.name)
        return role, self._dispatch_cascade(role.id)

    # ---- Users ----

    def assign_role(self, user_id: int, role_id: int) -> User:
        """Point a user at a role and snapshot the resolved permissions onto it."""
        user = self._get_user(user_id)
        effective = self.resolver.resolve(role_id)
        user.role_id = role_id
        user.permissions_override_json = encode_permissions(
            apply_overrides(effective, decode_permissions(user.custom_permissions_json))
        )
        self.users.update(user)
        logger.info("Assigned role %s to user %s", role_id, user_id)
        return user

    def set_user_permissions(self, user_id: int, permissions: Iterable[Any]) -> User:
        """Replace a user's custom settings and re-snapshot its permissions."""
        user = self._get_user(user_id)
        custom = normalize_permissions(permissions)
        effective = self.resolver.resolve(user.role_id)
        user.custom_permissions_json = encode_permissions(custom)
        user.permissions_override_json = encode_permissions(apply_overrides(effective, custom))
        self.users.update(user)
        return user

    # ---- Cascade ----

    def cascade(self, role_id: int, start_ids: Optional[List[int]] = None) -> CascadeReport:
        """Recompute effective permissions for the subtree rooted at ``role_id``.

        ``start_ids`` replaces the root with other roles to walk from; a delete
        uses it to re-cascade the children of a role that no longer resolves.

        Failures on individual roles or users are collected in the report and
        do not stop the traversal. Re-running converges to the same state.
        """
        if start_ids is None:
            self.get_role(role_id)
            start_ids = [role_id]
        report = CascadeReport(root_role_id=role_id)
        self._run_cascade(list(start_ids), report)
        return self._finish(report)

    def _dispatch_cascade(self, role_id: int, start_ids: Optional[List[int]] = None) -> CascadeReport:
        if self.mode == "deferred":
            from tenant_rbac.tasks.celery_app import cascade_role

            if start_ids is None:
                result = cascade_role.delay(role_id)
            else:
                result = cascade_role.delay(role_id, list(start_ids))
            logger.info("Queued cascade for role %s as task %s", role_id, result.id)
            return CascadeReport(root_role_id=role_id, status="queued", task_id=result.id)
        return self.cascade(role_id, start_ids)

    def _run_cascade(self, start_ids: List[int], report: CascadeReport) -> None:
        queue = deque(start_ids)
        visited = set()
        while queue:
            current_id = queue.popleft()
            if current_id in visited:
                continue
            visited.add(current_id)

            try:
                chain = self.resolver.chain(current_id)
                effective = self.resolver.merge_chain(chain)
                role = chain[0]
                role.effective_permissions_json = encode_permissions(effective)
                self.roles.update(role)
                report.roles_updated.append(current_id)
            except (CycleDetectedError, ResourceNotFoundError, StoreError) as e:
                logger.error("Cascade could not refresh role %s: %s", current_id, e.message)
                report.failures.append(CascadeFailure("role", current_id, e.message))
            else:
                self._refresh_users(current_id, effective, report)

            try:
                children = self.roles.get_children(current_id)
            except StoreError as e:
                report.failures.append(CascadeFailure("role", current_id, e.message))
                continue
            queue.extend(child.id for child in children if child.id not in visited)

    def _refresh_users(self, role_id: int, effective: List[Dict[str, Any]], report: CascadeReport) -> None:
        offset = 0
        while True:
            try:
                users = self.users.get_all_by_role(role_id, offset=offset, limit=self.page_size)
            except StoreError as e:
                report.failures.append(CascadeFailure("role", role_id, e.message))
                return

            for user in users:
                user_id = user.id
                try:
                    user.permissions_override_json = encode_permissions(
                        apply_overrides(effective, decode_permissions(user.custom_permissions_json))
                    )
                    self.users.update(user)
                    report.users_updated += 1
                except StoreError as e:
                    logger.error("Cascade could not refresh user %s: %s", user_id, e.message)
                    report.failures.append(CascadeFailure("user", user_id, e.message))

            if len(users) < self.page_size:
                return
            offset += self.page_size

    @staticmethod
    def _finish(report: CascadeReport) -> CascadeReport:
        report.status = "partial" if report.failures else "completed"
        logger.info(
            "Cascade from role %s %s: %d roles, %d users, %d failures",
            report.root_role_id, report.status,
            len(report.roles_updated), report.users_updated, len(report.failures),
        )
        return report

    # ---- Helpers ----

    def _get_user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    def _check_parent(self, role: Role, parent_id: Optional[int]) -> None:
        if parent_id is None:
            return
        if parent_id == role.id:
            raise CycleDetectedError(f"Role {role.id} cannot be its own parent")
        self.resolver.chain(parent_id)
        if self._leads_to(parent_id, role.id):
            raise CycleDetectedError(
                f"Role {parent_id} is a descendant of role {role.id}; re-parenting would form a cycle"
            )

    def _leads_to(self, start_id: int, target_id: int) -> bool:
        """Whether the parent chain from ``start_id`` reaches ``target_id``.

        Soft-deleted roles are walked through: they can be restored.
        """
        seen = set()
        current_id = start_id
        while current_id is not None and current_id not in seen:
            if current_id == target_id:
                return True
            seen.add(current_id)
            role = self.roles.get_by_id(current_id, include_deleted=True)
            current_id = role.parent_role_id if role else None
        return False


def build_role_service(db: Session, **kwargs: Any) -> RoleService:
    """Role service over SQL stores sharing one session."""
    return RoleService(SqlRoleStore(db), SqlUserStore(db), **kwargs)
