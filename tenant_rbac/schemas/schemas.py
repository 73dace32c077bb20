"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

from tenant_rbac.models.role import RoleLevel


# ---- Permission ----
class PermissionEntry(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    allowed: bool = True


def _unique_names(permissions: Optional[List[PermissionEntry]]) -> Optional[List[PermissionEntry]]:
    if permissions is None:
        return permissions
    names = [p.name for p in permissions]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"duplicate permission names: {', '.join(duplicates)}")
    return permissions


# ---- Role ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    level: RoleLevel
    description: Optional[str] = None
    parent_role_id: Optional[int] = None
    permissions: List[PermissionEntry] = []
    enterprise_id: Optional[str] = None
    channel_id: Optional[str] = None

    @field_validator("permissions")
    @classmethod
    def unique_permission_names(cls, v):
        return _unique_names(v)

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    level: Optional[RoleLevel] = None
    description: Optional[str] = None
    parent_role_id: Optional[int] = None
    permissions: Optional[List[PermissionEntry]] = None
    enterprise_id: Optional[str] = None
    channel_id: Optional[str] = None

    @field_validator("permissions")
    @classmethod
    def unique_permission_names(cls, v):
        return _unique_names(v)

class RoleOut(BaseModel):
    id: int
    name: str
    level: RoleLevel
    description: Optional[str] = None
    parent_role_id: Optional[int] = None
    permissions: List[PermissionEntry] = []
    effective_permissions: List[PermissionEntry] = []
    enterprise_id: Optional[str] = None
    channel_id: Optional[str] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class RoleListResponse(BaseModel):
    roles: List[RoleOut]
    total: int
    page: int

class EffectivePermissionsOut(BaseModel):
    role_id: int
    permissions: List[PermissionEntry]


# ---- Cascade ----
class CascadeFailureOut(BaseModel):
    entity_type: str
    entity_id: int
    error: str

    class Config:
        from_attributes = True

class CascadeReportOut(BaseModel):
    root_role_id: int
    status: str
    roles_updated: List[int] = []
    users_updated: int = 0
    failures: List[CascadeFailureOut] = []
    task_id: Optional[str] = None

    class Config:
        from_attributes = True

class RoleMutationResponse(BaseModel):
    role: RoleOut
    cascade: CascadeReportOut


# ---- User ----
class UserCreate(BaseModel):
    email: str = Field(..., min_length=4)
    full_name: str = Field(..., min_length=1)
    role_id: int
    permissions: List[PermissionEntry] = []

    @field_validator("permissions")
    @classmethod
    def unique_permission_names(cls, v):
        return _unique_names(v)

class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    role_id: int
    role: Optional[str] = None
    is_active: bool = True
    custom_permissions: List[PermissionEntry] = []
    permissions: List[PermissionEntry] = []
    created_at: Optional[datetime] = None

class RoleAssignRequest(BaseModel):
    role_id: int

class UserPermissionsUpdate(BaseModel):
    permissions: List[PermissionEntry]

    @field_validator("permissions")
    @classmethod
    def unique_permission_names(cls, v):
        return _unique_names(v)

class AuthorizeResponse(BaseModel):
    permission: str
    allowed: bool
    reason: str
