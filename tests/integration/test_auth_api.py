"""Integration tests for login, refresh and logout"""

import pytest
from fastapi.testclient import TestClient

PASSWORD = "Secret@123"


@pytest.fixture
def approved_member_request(make_credit_request, member):
    return make_credit_request(member, amount="1000.00", status="approved")


def test_admin_login(client: TestClient, admin):
    response = client.post(
        "/api/admin/auth/login",
        json={"email": admin.email, "password": PASSWORD},
        headers={"User-Agent": "dashboard/1.0", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Login successful"
    assert body["data"]["accessToken"]
    assert body["data"]["refreshToken"]
    assert body["data"]["user"]["email"] == admin.email
    assert body["data"]["user"]["role"] == "admin"
    assert "password" not in body["data"]["user"]


def test_admin_login_wrong_password(client: TestClient, admin):
    response = client.post("/api/admin/auth/login", json={"email": admin.email, "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid credentials"}


def test_admin_login_refuses_member(client: TestClient, member):
    response = client.post("/api/admin/auth/login", json={"email": member.email, "password": PASSWORD})
    assert response.status_code == 401


def test_member_login(client: TestClient, member):
    response = client.post("/api/auth/login", json={"email": member.email, "password": PASSWORD})

    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "member"


def test_login_validation(client: TestClient):
    response = client.post("/api/admin/auth/login", json={"email": "not-an-email", "password": ""})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"email", "password"}


def test_refresh_rotates(client: TestClient, admin):
    tokens = client.post("/api/admin/auth/login", json={"email": admin.email, "password": PASSWORD}).json()["data"]

    response = client.post("/api/admin/auth/refresh", json={"refreshToken": tokens["refreshToken"]})

    assert response.status_code == 200
    assert response.json()["message"] == "Token refreshed successfully"
    rotated = response.json()["data"]
    assert rotated["refreshToken"] != tokens["refreshToken"]

    reused = client.post("/api/admin/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert reused.status_code == 401
    assert reused.json()["message"] == "Invalid refresh token"


def test_logout_revokes_tokens(client: TestClient, admin):
    tokens = client.post("/api/admin/auth/login", json={"email": admin.email, "password": PASSWORD}).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    response = client.post("/api/admin/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"
    assert client.get("/api/admin/users/profile", headers=headers).status_code == 401
    assert client.post("/api/admin/auth/refresh", json={"refreshToken": tokens["refreshToken"]}).status_code == 401


def test_logout_requires_bearer(client: TestClient):
    response = client.post("/api/admin/auth/logout", json={"refreshToken": "anything"})
    assert response.status_code == 401


def test_invalid_bearer_token(client: TestClient):
    response = client.get("/api/admin/users/profile", headers={"Authorization": "Bearer garbage"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid token"}


def test_login_records_device(client: TestClient, admin, admin_headers):
    client.post(
        "/api/admin/auth/login",
        json={"email": admin.email, "password": PASSWORD},
        headers={"User-Agent": "dashboard/1.0", "X-Forwarded-For": "203.0.113.7"},
    )

    response = client.get(f"/api/admin/users/users/{admin.id}", headers=admin_headers)

    activity = response.json()["data"]["activity"]
    assert activity["sessionsActive"] == 2
    assert any(
        d["deviceInfo"] == "dashboard/1.0" and d["ipAddress"] == "203.0.113.7" for d in activity["devices"]
    )


def test_suspended_member_token_stops_working(client: TestClient, admin_headers, member, approved_member_request):
    tokens = client.post("/api/auth/login", json={"email": member.email, "password": PASSWORD}).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    suspended = client.patch(
        f"/api/admin/users/users/{member.id}/status",
        json={"status": "suspended"},
        headers=admin_headers,
    )
    response = client.post(
        f"/api/credit/requests/{approved_member_request.id}/repayments",
        json={"amount": 10},
        headers=headers,
    )

    assert suspended.status_code == 200
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Account is not active"}


def test_deleted_admin_token_stops_working(client: TestClient, admin_headers, make_user):
    other = make_user("Other", role="admin")
    tokens = client.post("/api/admin/auth/login", json={"email": other.email, "password": PASSWORD}).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    client.delete(f"/api/admin/users/users/{other.id}", headers=admin_headers)

    response = client.get("/api/admin/users/profile", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Account is not active"
