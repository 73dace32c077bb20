# tests/test_api.py

"""
Tests for the roles and users HTTP endpoints.
"""

import logging

from fastapi.testclient import TestClient

from tenant_rbac.models.role import RoleLevel


def test_health(client: TestClient):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_is_401(client: TestClient):
    response = client.get("/api/roles/")

    assert response.status_code == 401


def test_token_for_unknown_user_is_401(client: TestClient, auth_headers):
    class Ghost:
        id = 9999

    response = client.get("/api/roles/", headers=auth_headers(Ghost()))

    assert response.status_code == 401


def test_create_and_get_role(client: TestClient, admin_headers):
    response = client.post(
        "/api/roles/",
        json={
            "name": "Owner",
            "level": "enterprise_admin",
            "permissions": [{"name": "manage_billing", "allowed": True}],
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    role = response.json()
    assert role["effective_permissions"] == [{"name": "manage_billing", "allowed": True}]

    fetched = client.get(f"/api/roles/{role['id']}", headers=admin_headers)
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Owner"


def test_duplicate_role_name_is_409(client: TestClient, admin_headers, org):
    response = client.post(
        "/api/roles/",
        json={"name": "Owner", "level": "user"},
        headers=admin_headers,
    )

    assert response.status_code == 409


def test_duplicate_permission_names_are_422(client: TestClient, admin_headers):
    response = client.post(
        "/api/roles/",
        json={
            "name": "Broken",
            "level": "user",
            "permissions": [{"name": "a"}, {"name": "a", "allowed": False}],
        },
        headers=admin_headers,
    )

    assert response.status_code == 422


def test_unknown_role_is_404(client: TestClient, admin_headers):
    response = client.get("/api/roles/777/permissions", headers=admin_headers)

    assert response.status_code == 404


def test_effective_permissions_endpoint(client: TestClient, admin_headers, org):
    response = client.get(f"/api/roles/{org['member'].id}/permissions", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["permissions"] == [
        {"name": "invite_users", "allowed": True},
        {"name": "manage_billing", "allowed": False},
    ]


def test_update_role_returns_cascade_report(client: TestClient, admin_headers, user_service, org):
    member = user_service.create_user("member@example.com", "Member", org["member"].id)

    response = client.put(
        f"/api/roles/{org['manager'].id}",
        json={"permissions": [{"name": "invite_users", "allowed": False}]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cascade"]["status"] == "completed"
    assert body["cascade"]["roles_updated"] == [org["manager"].id, org["member"].id]

    user = client.get(f"/api/users/{member.id}", headers=admin_headers).json()
    assert {"name": "invite_users", "allowed": False} in user["permissions"]


def test_mutations_report_cascade_status_header(client: TestClient, admin_headers, org):
    updated = client.put(
        f"/api/roles/{org['manager'].id}",
        json={"description": "Middle management"},
        headers={**admin_headers, "X-Request-Id": "req-42"},
    )
    fetched = client.get(f"/api/roles/{org['manager'].id}", headers=admin_headers)

    assert updated.headers["X-Cascade-Status"] == "completed"
    assert updated.headers["X-Request-Id"] == "req-42"
    assert "X-Cascade-Status" not in fetched.headers
    assert fetched.headers["X-Request-Id"]


def test_request_log_names_the_acting_user(client: TestClient, auth_headers, user_service, org, caplog):
    member = user_service.create_user("actor@example.com", "Actor", org["member"].id)

    with caplog.at_level(logging.INFO, logger="tenant_rbac.requests"):
        client.get("/api/users/me/authorize/invite_users", headers=auth_headers(member))

    assert f"actor={member.id}" in caplog.text


def test_cyclic_reparent_is_500_without_detail(client: TestClient, admin_headers, org):
    response = client.put(
        f"/api/roles/{org['owner'].id}",
        json={"parent_role_id": org["member"].id},
        headers=admin_headers,
    )

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_strict_delete_with_dependents_is_409(client: TestClient, admin_headers, org):
    response = client.delete(f"/api/roles/{org['manager'].id}", headers=admin_headers)

    assert response.status_code == 409


def test_delete_and_restore(client: TestClient, admin_headers, org):
    deleted = client.delete(f"/api/roles/{org['auditor'].id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/roles/{org['auditor'].id}", headers=admin_headers).status_code == 404

    restored = client.post(f"/api/roles/{org['auditor'].id}/restore", headers=admin_headers)
    assert restored.status_code == 200
    assert restored.json()["role"]["is_deleted"] is False


def test_permission_denied_is_403(client: TestClient, auth_headers, user_service, org):
    member = user_service.create_user("plain@example.com", "Plain", org["member"].id)

    response = client.post(
        "/api/roles/",
        json={"name": "Sneaky", "level": "user"},
        headers=auth_headers(member),
    )

    assert response.status_code == 403


def test_delegated_role_manager(client: TestClient, auth_headers, role_service, user_service):
    role = role_service.create_role(
        "Role Manager", RoleLevel.enterprise_admin,
        permissions=[{"name": "view_roles", "allowed": True}, {"name": "manage_roles", "allowed": True}],
    )
    manager = user_service.create_user("rm@example.com", "RM", role.id)

    created = client.post(
        "/api/roles/",
        json={"name": "Delegated", "level": "user", "parent_role_id": role.id},
        headers=auth_headers(manager),
    )
    assert created.status_code == 201
    assert client.delete(f"/api/roles/{created.json()['id']}", headers=auth_headers(manager)).status_code == 403


def test_user_lifecycle(client: TestClient, admin_headers, org):
    created = client.post(
        "/api/users/",
        json={"email": "new@example.com", "full_name": "New", "role_id": org["member"].id},
        headers=admin_headers,
    )
    assert created.status_code == 201
    user_id = created.json()["id"]

    moved = client.put(
        f"/api/users/{user_id}/role",
        json={"role_id": org["owner"].id},
        headers=admin_headers,
    )
    assert moved.status_code == 200
    assert moved.json()["permissions"] == [{"name": "manage_billing", "allowed": True}]

    custom = client.put(
        f"/api/users/{user_id}/permissions",
        json={"permissions": [{"name": "manage_billing", "allowed": False}]},
        headers=admin_headers,
    )
    assert custom.status_code == 200
    assert custom.json()["permissions"] == [{"name": "manage_billing", "allowed": False}]


def test_authorize_me(client: TestClient, auth_headers, user_service, org):
    member = user_service.create_user("me@example.com", "Me", org["member"].id)

    allowed = client.get("/api/users/me/authorize/invite_users", headers=auth_headers(member))
    denied = client.get("/api/users/me/authorize/manage_billing", headers=auth_headers(member))

    assert allowed.json() == {"permission": "invite_users", "allowed": True, "reason": "granted"}
    assert denied.status_code == 200
    assert denied.json()["allowed"] is False
