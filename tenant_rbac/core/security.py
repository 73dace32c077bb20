"""JWT bearer authentication and permission-checking dependencies."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from tenant_rbac.core.config import settings
from tenant_rbac.db.session import get_db
from tenant_rbac.models.user import User
from tenant_rbac.services.authorization import authorization_gate
from tenant_rbac.stores.sql import SqlUserStore

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> int:
    """Extract user_id from the JWT Bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    request.state.actor_id = int(user_id)
    return request.state.actor_id


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Load the user behind the bearer token; None if it no longer exists."""
    return SqlUserStore(db).get_by_id(user_id)


class RequirePermission:
    """Dependency that checks the current user's cached permissions.

    Unknown or inactive users surface as 401, missing permissions as 403.
    """

    def __init__(self, permission: str):
        self.permission = permission

    async def __call__(self, user: Optional[User] = Depends(get_current_user)) -> User:
        authorization_gate.require(user, self.permission)
        return user


# Convenience dependency factories
require_view_roles = RequirePermission("view_roles")
require_manage_roles = RequirePermission("manage_roles")
require_delete_roles = RequirePermission("delete_roles")
require_view_users = RequirePermission("view_users")
require_manage_users = RequirePermission("manage_users")
