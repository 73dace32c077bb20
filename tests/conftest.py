# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_rbac.db.base import Base
from tenant_rbac.db.session import get_db
from tenant_rbac.core.security import create_access_token
from tenant_rbac.main import app
from tenant_rbac.models.role import RoleLevel
from tenant_rbac.services.role_service import build_role_service
from tenant_rbac.services.user_service import UserService
import tenant_rbac.models  # noqa: F401

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Fresh in-memory database per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def role_service(db):
    """Synchronous role service with strict deletes."""
    return build_role_service(db, mode="sync", strict_delete=True, page_size=2)


@pytest.fixture
def user_service(role_service):
    return UserService(role_service)


@pytest.fixture
def org(role_service):
    """Owner -> Manager -> Member chain plus an unrelated Auditor root."""
    owner = role_service.create_role(
        "Owner", RoleLevel.enterprise_admin,
        permissions=[{"name": "manage_billing", "allowed": True}],
    )
    manager = role_service.create_role(
        "Manager", RoleLevel.enterprise_admin,
        permissions=[
            {"name": "manage_billing", "allowed": False},
            {"name": "invite_users", "allowed": True},
        ],
        parent_role_id=owner.id,
    )
    member = role_service.create_role("Member", RoleLevel.user, parent_role_id=manager.id)
    auditor = role_service.create_role(
        "Auditor", RoleLevel.user,
        permissions=[{"name": "view_reports", "allowed": True}],
    )
    return {"owner": owner, "manager": manager, "member": member, "auditor": auditor}


@pytest.fixture
def client(db):
    """Test client bound to the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(role_service, user_service):
    """Bearer headers for a user holding the administrative role."""
    admin_role = role_service.create_role("Global Admin", RoleLevel.global_admin)
    admin = user_service.create_user("admin@example.com", "Admin", admin_role.id)
    return {"Authorization": f"Bearer {create_access_token({'sub': str(admin.id)})}"}


@pytest.fixture
def auth_headers():
    """Build bearer headers for any user."""
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}
    return _headers
