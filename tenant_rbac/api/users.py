"""Users API router — user creation, role assignment, permission checks."""

from fastapi import APIRouter, Depends, status

from tenant_rbac.schemas.schemas import (
    UserCreate, UserOut, RoleAssignRequest, UserPermissionsUpdate, AuthorizeResponse,
)
from tenant_rbac.models.user import User
from tenant_rbac.api.roles import get_role_service
from tenant_rbac.services.authorization import authorization_gate
from tenant_rbac.services.resolver import decode_permissions
from tenant_rbac.services.role_service import RoleService
from tenant_rbac.services.user_service import UserService
from tenant_rbac.core.security import get_current_user, require_view_users, require_manage_users

router = APIRouter(prefix="/users", tags=["users"])


def user_to_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role_id=user.role_id,
        role=user.role.name if user.role else None,
        is_active=user.is_active,
        custom_permissions=decode_permissions(user.custom_permissions_json),
        permissions=decode_permissions(user.permissions_override_json),
        created_at=user.created_at,
    )


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    service: RoleService = Depends(get_role_service),
    actor: User = Depends(require_manage_users),
):
    """Create a user and snapshot its role's permissions."""
    user = UserService(service).create_user(
        body.email, body.full_name, body.role_id,
        [p.model_dump() for p in body.permissions],
    )
    return user_to_out(user)


@router.get("/me/authorize/{permission}", response_model=AuthorizeResponse)
async def authorize_me(
    permission: str,
    user: User = Depends(get_current_user),
):
    """Check whether the current user holds a permission."""
    decision = authorization_gate.authorize(user, permission)
    return AuthorizeResponse(
        permission=decision.permission,
        allowed=decision.allowed,
        reason=decision.reason,
    )


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: int,
    service: RoleService = Depends(get_role_service),
    actor: User = Depends(require_view_users),
):
    """Get a user with its cached permission snapshot."""
    return user_to_out(UserService(service).get_user(user_id))


@router.put("/{user_id}/role", response_model=UserOut)
async def assign_role(
    user_id: int,
    body: RoleAssignRequest,
    service: RoleService = Depends(get_role_service),
    actor: User = Depends(require_manage_users),
):
    """Assign a role to a user and refresh its snapshot."""
    return user_to_out(service.assign_role(user_id, body.role_id))


@router.put("/{user_id}/permissions", response_model=UserOut)
async def set_user_permissions(
    user_id: int,
    body: UserPermissionsUpdate,
    service: RoleService = Depends(get_role_service),
    actor: User = Depends(require_manage_users),
):
    """Replace a user's custom permission settings."""
    user = service.set_user_permissions(user_id, [p.model_dump() for p in body.permissions])
    return user_to_out(user)
