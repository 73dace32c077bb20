"""Roles API router — role CRUD, effective permissions, cascades."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tenant_rbac.db.session import get_db
from tenant_rbac.schemas.schemas import (
    RoleCreate, RoleUpdate, RoleOut, RoleListResponse,
    EffectivePermissionsOut, CascadeReportOut, RoleMutationResponse,
)
from tenant_rbac.models.role import Role
from tenant_rbac.models.user import User
from tenant_rbac.services.resolver import decode_permissions
from tenant_rbac.services.role_service import RoleService, build_role_service
from tenant_rbac.core.middleware import record_cascade
from tenant_rbac.core.security import (
    require_view_roles, require_manage_roles, require_delete_roles,
)

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_service(db: Session = Depends(get_db)) -> RoleService:
    return build_role_service(db)


def role_to_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        level=role.level,
        description=role.description,
        parent_role_id=role.parent_role_id,
        permissions=decode_permissions(role.permissions_json),
        effective_permissions=decode_permissions(role.effective_permissions_json),
        enterprise_id=role.enterprise_id,
        channel_id=role.channel_id,
        is_deleted=role.is_deleted,
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


@router.post("/", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_manage_roles),
):
    """Create a role."""
    role = service.create_role(
        name=body.name,
        level=body.level,
        permissions=[p.model_dump() for p in body.permissions],
        parent_role_id=body.parent_role_id,
        description=body.description,
        enterprise_id=body.enterprise_id,
        channel_id=body.channel_id,
    )
    return role_to_out(role)


@router.get("/", response_model=RoleListResponse)
async def list_roles(
    parent_id: Optional[int] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_view_roles),
):
    """List roles, optionally only the children of one role."""
    result = service.list_roles(include_deleted, parent_id, page, page_size)
    return RoleListResponse(
        roles=[role_to_out(r) for r in result["roles"]],
        total=result["total"],
        page=result["page"],
    )


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: int,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_view_roles),
):
    """Get a role with its own and cached effective permissions."""
    return role_to_out(service.get_role(role_id))


@router.get("/{role_id}/permissions", response_model=EffectivePermissionsOut)
async def get_effective_permissions(
    role_id: int,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_view_roles),
):
    """Resolve a role's effective permissions from the live role tree."""
    return EffectivePermissionsOut(
        role_id=role_id,
        permissions=service.resolve_effective_permissions(role_id),
    )


@router.put("/{role_id}", response_model=RoleMutationResponse)
async def update_role(
    role_id: int,
    request: Request,
    body: RoleUpdate,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_manage_roles),
):
    """Update a role and cascade the change to descendant roles and users."""
    role, report = service.update_role(role_id, **body.model_dump(exclude_unset=True))
    record_cascade(request, report)
    return RoleMutationResponse(
        role=role_to_out(role),
        cascade=CascadeReportOut.model_validate(report),
    )


@router.delete("/{role_id}", response_model=CascadeReportOut)
async def delete_role(
    role_id: int,
    request: Request,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_delete_roles),
):
    """Soft-delete a role."""
    report = service.delete_role(role_id)
    record_cascade(request, report)
    return CascadeReportOut.model_validate(report)


@router.post("/{role_id}/restore", response_model=RoleMutationResponse)
async def restore_role(
    role_id: int,
    request: Request,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_manage_roles),
):
    """Restore a soft-deleted role."""
    role, report = service.restore_role(role_id)
    record_cascade(request, report)
    return RoleMutationResponse(
        role=role_to_out(role),
        cascade=CascadeReportOut.model_validate(report),
    )


@router.post("/{role_id}/cascade", response_model=CascadeReportOut)
async def run_cascade(
    role_id: int,
    request: Request,
    service: RoleService = Depends(get_role_service),
    user: User = Depends(require_manage_roles),
):
    """Re-run the cascade for a role's subtree synchronously."""
    report = service.cascade(role_id)
    record_cascade(request, report)
    return CascadeReportOut.model_validate(report)
