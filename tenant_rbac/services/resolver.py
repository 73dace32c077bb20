"""Permission resolver — merges a role's own settings with those of its ancestors.

Permissions travel as plain dicts ``{"name": str, "allowed": bool}``. Merging is
closer-wins per name: layers are applied farthest-first, so the target role's
own settings (and, for users, their custom settings) are applied last.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from tenant_rbac.core.config import settings
from tenant_rbac.core.exceptions import CycleDetectedError, ResourceNotFoundError, ValidationError
from tenant_rbac.models.role import Role
from tenant_rbac.stores.base import RoleStore

logger = logging.getLogger("tenant_rbac.resolver")


def normalize_permissions(permissions: Iterable[Any]) -> List[Dict[str, Any]]:
    """Validate a permission list and coerce it to plain dicts.

    Raises:
        ValidationError: On an empty name, a name listed twice, or a
            non-boolean ``allowed``.
    """
    seen = set()
    normalized = []
    for perm in permissions:
        if not isinstance(perm, dict):
            perm = perm.model_dump()
        name = (perm.get("name") or "").strip()
        if not name:
            raise ValidationError("Permission name must not be empty")
        if name in seen:
            raise ValidationError(f"Permission '{name}' is listed more than once")
        allowed = perm.get("allowed", True)
        if not isinstance(allowed, bool):
            raise ValidationError(f"Permission '{name}': allowed must be true or false")
        seen.add(name)
        normalized.append({"name": name, "allowed": allowed})
    return normalized


def decode_permissions(raw: Optional[str]) -> List[Dict[str, Any]]:
    """Parse a JSON permission column; empty columns decode to an empty list."""
    if not raw:
        return []
    return [{"name": p["name"], "allowed": bool(p.get("allowed", True))} for p in json.loads(raw)]


def encode_permissions(permissions: Iterable[Dict[str, Any]]) -> str:
    return json.dumps([{"name": p["name"], "allowed": p["allowed"]} for p in permissions])


def merge_permissions(layers: Iterable[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Merge permission layers ordered farthest-first; later layers win per name."""
    decisions: Dict[str, bool] = {}
    for layer in layers:
        for perm in layer:
            decisions[perm["name"]] = perm["allowed"]
    return [{"name": name, "allowed": decisions[name]} for name in sorted(decisions)]


def apply_overrides(
    base: List[Dict[str, Any]], overrides: Optional[List[Dict[str, Any]]]
) -> List[Dict[str, Any]]:
    """Layer per-user settings on top of a resolved role set."""
    return merge_permissions([base, overrides or []])


class PermissionResolver:
    """Walks the parent chain of a role and produces its effective permissions.

    Reads only; never writes to the store.
    """

    def __init__(self, role_store: RoleStore, max_depth: Optional[int] = None):
        self.roles = role_store
        self.max_depth = max_depth or settings.MAX_ROLE_DEPTH

    def chain(self, role_id: int) -> List[Role]:
        """Return the role followed by its ancestors, root last.

        A parent reference to a missing or soft-deleted role ends the chain.

        Raises:
            ResourceNotFoundError: If the role does not exist.
            CycleDetectedError: If the chain revisits a role or exceeds ``max_depth``.
        """
        role = self.roles.get_by_id(role_id)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")

        chain = [role]
        visited = {role.id}
        current = role
        while current.parent_role_id is not None:
            parent_id = current.parent_role_id
            if parent_id in visited:
                raise CycleDetectedError(
                    f"Role {role_id}: parent chain revisits role {parent_id}"
                )
            if len(chain) >= self.max_depth:
                raise CycleDetectedError(
                    f"Role {role_id}: parent chain exceeds {self.max_depth} levels"
                )
            parent = self.roles.get_by_id(parent_id)
            if parent is None:
                logger.warning(
                    "Role %s references missing parent %s; treating it as a root",
                    current.id, parent_id,
                )
                break
            visited.add(parent.id)
            chain.append(parent)
            current = parent
        return chain

    @staticmethod
    def merge_chain(chain: List[Role]) -> List[Dict[str, Any]]:
        """Merge a chain as returned by :meth:`chain` (target first, root last)."""
        return merge_permissions(decode_permissions(r.permissions_json) for r in reversed(chain))

    def resolve(self, role_id: int) -> List[Dict[str, Any]]:
        """Effective permission set of a role, sorted by name."""
        return self.merge_chain(self.chain(role_id))
