"""Role model for the role hierarchy."""

import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum, func
from tenant_rbac.db.base import Base


class RoleLevel(str, enum.Enum):
    global_admin = "global_admin"
    channel_admin = "channel_admin"
    enterprise_admin = "enterprise_admin"
    user = "user"
    device = "device"


class Role(Base):
    """Named bundle of permission decisions, optionally inheriting from a parent role."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    level = Column(Enum(RoleLevel), nullable=False, default=RoleLevel.user)
    description = Column(String(255), nullable=True)
    parent_role_id = Column(Integer, ForeignKey("roles.id"), nullable=True, index=True)
    permissions_json = Column(Text, nullable=True)  # own settings: [{"name", "allowed"}]
    effective_permissions_json = Column(Text, nullable=True)  # derived, written by cascade
    enterprise_id = Column(String(64), nullable=True, index=True)
    channel_id = Column(String(64), nullable=True, index=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
