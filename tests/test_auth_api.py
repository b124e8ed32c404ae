"""
Tests for the authentication endpoints.
"""

import pytest_asyncio

from gatehouse.config import settings

from conftest import (
    ADMIN_PASSWORD,
    USER_PASSWORD,
    bearer,
    create_user,
    login,
    refresh_cookie,
    with_refresh_cookie,
)


@pytest_asyncio.fixture
async def tester(session_factory):
    return await create_user(session_factory, "test@example.com", password="Test123!")


# =============================================================================
# Login Tests
# =============================================================================

class TestLogin:
    """Tests for POST /auth/login."""

    def test_login_success(self, client, alice):
        """Test login returns an access token and sets the refresh cookie."""
        response = client.post("/auth/login", json={"email": "alice@example.com", "password": USER_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["tokenType"] == "bearer"
        assert 14 * 60 < body["expiresIn"] <= 15 * 60
        assert body["token"].count(".") == 2
        assert "refreshToken" not in body

    def test_refresh_cookie_attributes(self, client, alice):
        """Test the refresh cookie is HttpOnly, Secure, strict and path-scoped."""
        response = client.post("/auth/login", json={"email": "alice@example.com", "password": USER_PASSWORD})

        value, attributes = refresh_cookie(response)
        attributes = attributes.lower()
        assert value
        assert "httponly" in attributes
        assert "secure" in attributes
        assert "samesite=strict" in attributes
        assert f"path={settings.refresh_cookie_path}" in attributes
        max_age = int(attributes.split("max-age=")[1].split(";")[0])
        assert 6 * 24 * 3600 < max_age <= 7 * 24 * 3600

    def test_login_enabled_then_disabled(self, client, admin, tester):
        """Test 200 while enabled, 403 once disabled, 401 on a wrong password."""
        credentials = {"email": "test@example.com", "password": "Test123!"}

        enabled = client.post("/auth/login", json=credentials)
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.put(f"/users/{tester.id}", json={"enabled": False}, headers=bearer(admin_token))
        disabled = client.post("/auth/login", json=credentials)
        wrong = client.post("/auth/login", json={**credentials, "password": "Test123?"})

        assert enabled.status_code == 200
        assert enabled.json()["token"]
        assert disabled.status_code == 403
        assert wrong.status_code == 401

    def test_login_email_case_insensitive(self, client, alice):
        response = client.post("/auth/login", json={"email": "ALICE@Example.com", "password": USER_PASSWORD})

        assert response.status_code == 200

    def test_login_wrong_password(self, client, alice):
        """Test wrong password yields the uniform 401 body."""
        response = client.post("/auth/login", json={"email": "alice@example.com", "password": "Wrong#Pass1"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        body = response.json()
        assert body["status"] == 401
        assert body["error"] == "Unauthorized"
        assert body["message"] == "Invalid email or password"
        assert body["path"] == "/auth/login"
        assert "timestamp" in body
        assert "set-cookie" not in response.headers

    def test_login_unknown_email_indistinguishable(self, client, alice):
        """Test unknown emails get the same answer as wrong passwords."""
        unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": USER_PASSWORD})
        wrong = client.post("/auth/login", json={"email": "alice@example.com", "password": "Wrong#Pass1"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json()["message"] == wrong.json()["message"]

    def test_login_disabled_user(self, client, admin, alice):
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.put(f"/users/{alice.id}", json={"enabled": False}, headers=bearer(admin_token))

        response = client.post("/auth/login", json={"email": "alice@example.com", "password": USER_PASSWORD})

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    def test_login_disabled_user_wrong_password(self, client, admin, alice):
        """Test a disabled account with a wrong password is still just 401."""
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.put(f"/users/{alice.id}", json={"enabled": False}, headers=bearer(admin_token))

        response = client.post("/auth/login", json={"email": "alice@example.com", "password": "Wrong#Pass1"})

        assert response.status_code == 401

    def test_login_soft_deleted_user(self, client, admin, alice):
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        assert client.delete(f"/users/{alice.id}", headers=bearer(admin_token)).status_code == 204

        response = client.post("/auth/login", json={"email": "alice@example.com", "password": USER_PASSWORD})

        assert response.status_code == 401

    def test_login_missing_fields(self, client):
        response = client.post("/auth/login", json={"email": "alice@example.com"})

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed for one or more fields"
        assert [e["field"] for e in body["errors"]] == ["password"]

    def test_login_invalid_email(self, client):
        response = client.post("/auth/login", json={"email": "not-an-email", "password": "x"})

        assert response.status_code == 400
        assert body_fields(response) == ["email"]

    def test_login_malformed_json(self, client):
        response = client.post(
            "/auth/login",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Malformed JSON request or invalid request body"

    def test_login_records_last_login(self, client, alice):
        token, _ = login(client, "alice@example.com", USER_PASSWORD)

        response = client.get("/auth/me", headers=bearer(token))

        assert response.json()["lastLoginAt"] is not None


def body_fields(response) -> list[str]:
    return [e["field"] for e in response.json()["errors"]]


# =============================================================================
# Current User Tests
# =============================================================================

class TestMe:
    """Tests for GET /auth/me."""

    def test_me(self, client, alice):
        token, _ = login(client, "alice@example.com", USER_PASSWORD)

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(alice.id)
        assert body["email"] == "alice@example.com"
        assert body["firstName"] == "Alice"
        assert body["roles"] == ["USER"]
        assert "hashedPassword" not in body
        assert "password" not in body

    def test_me_requires_token(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["path"] == "/auth/me"

    def test_me_rejects_garbage_token(self, client):
        response = client.get("/auth/me", headers=bearer("not.a.token"))

        assert response.status_code == 401

    def test_me_rejects_refresh_token(self, client, alice):
        """Test a refresh token cannot be used as a bearer token."""
        _, refresh = login(client, "alice@example.com", USER_PASSWORD)

        response = client.get("/auth/me", headers=bearer(refresh))

        assert response.status_code == 401

    def test_me_after_soft_delete(self, client, admin, alice):
        """Test a still-valid token for a deleted user resolves to 404."""
        token, _ = login(client, "alice@example.com", USER_PASSWORD)
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.delete(f"/users/{alice.id}", headers=bearer(admin_token))

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 404


# =============================================================================
# Refresh Tests
# =============================================================================

class TestRefresh:
    """Tests for POST /auth/refresh."""

    def test_refresh_rotates_token(self, client, alice):
        """Test refresh returns a new access token and replaces the cookie."""
        _, refresh = login(client, "alice@example.com", USER_PASSWORD)

        response = client.post("/auth/refresh", headers=with_refresh_cookie(refresh))

        assert response.status_code == 200
        new_refresh, _ = refresh_cookie(response)
        assert new_refresh and new_refresh != refresh
        me = client.get("/auth/me", headers=bearer(response.json()["token"]))
        assert me.json()["id"] == str(alice.id)

    def test_refresh_without_cookie(self, client):
        response = client.post("/auth/refresh")

        assert response.status_code == 401

    def test_refresh_with_access_token(self, client, alice):
        token, _ = login(client, "alice@example.com", USER_PASSWORD)

        response = client.post("/auth/refresh", headers=with_refresh_cookie(token))

        assert response.status_code == 401

    def test_refresh_with_garbage(self, client):
        response = client.post("/auth/refresh", headers=with_refresh_cookie("garbage"))

        assert response.status_code == 401

    def test_rotated_token_reuse_revokes_session(self, client, alice):
        """Test replaying a rotated refresh token kills the whole session."""
        _, first = login(client, "alice@example.com", USER_PASSWORD)
        rotated = client.post("/auth/refresh", headers=with_refresh_cookie(first))
        second, _ = refresh_cookie(rotated)

        replay = client.post("/auth/refresh", headers=with_refresh_cookie(first))
        after = client.post("/auth/refresh", headers=with_refresh_cookie(second))

        assert replay.status_code == 401
        assert after.status_code == 401

    def test_other_sessions_unaffected_by_reuse(self, client, alice):
        _, laptop = login(client, "alice@example.com", USER_PASSWORD)
        _, phone = login(client, "alice@example.com", USER_PASSWORD)
        client.post("/auth/refresh", headers=with_refresh_cookie(laptop))
        client.post("/auth/refresh", headers=with_refresh_cookie(laptop))

        response = client.post("/auth/refresh", headers=with_refresh_cookie(phone))

        assert response.status_code == 200

    def test_refresh_for_disabled_user(self, client, admin, alice):
        _, refresh = login(client, "alice@example.com", USER_PASSWORD)
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.put(f"/users/{alice.id}", json={"enabled": False}, headers=bearer(admin_token))

        response = client.post("/auth/refresh", headers=with_refresh_cookie(refresh))

        assert response.status_code == 403

    def test_refresh_for_deleted_user(self, client, admin, alice):
        _, refresh = login(client, "alice@example.com", USER_PASSWORD)
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.delete(f"/users/{alice.id}", headers=bearer(admin_token))

        response = client.post("/auth/refresh", headers=with_refresh_cookie(refresh))

        assert response.status_code == 401

    def test_refreshed_token_carries_current_roles(self, client, admin, alice):
        """Test a role granted after login shows up after refresh."""
        _, refresh = login(client, "alice@example.com", USER_PASSWORD)
        admin_token, _ = login(client, "admin@example.com", ADMIN_PASSWORD)
        client.post(f"/users/{alice.id}/roles", json={"role": "ADMIN"}, headers=bearer(admin_token))

        response = client.post("/auth/refresh", headers=with_refresh_cookie(refresh))
        listing = client.get(f"/users/{admin.id}/role-changes", headers=bearer(response.json()["token"]))

        assert listing.status_code == 200


# =============================================================================
# Revocation Tests
# =============================================================================

class TestRevoke:
    """Tests for POST /auth/revoke-refresh-token."""

    def test_revoke_clears_cookie_and_blocks_refresh(self, client, alice):
        token, refresh = login(client, "alice@example.com", USER_PASSWORD)

        response = client.post("/auth/revoke-refresh-token", headers=bearer(token))

        assert response.status_code == 204
        value, attributes = refresh_cookie(response)
        assert value == ""
        assert "max-age=0" in attributes.lower()
        assert client.post("/auth/refresh", headers=with_refresh_cookie(refresh)).status_code == 401

    def test_access_token_survives_revoke(self, client, alice):
        """Test revoking the refresh token leaves the access token usable until expiry."""
        token, _ = login(client, "alice@example.com", USER_PASSWORD)
        client.post("/auth/revoke-refresh-token", headers=bearer(token))

        assert client.get("/auth/me", headers=bearer(token)).status_code == 200

    def test_revoke_requires_authentication(self, client):
        response = client.post("/auth/revoke-refresh-token")

        assert response.status_code == 401

    def test_revoke_is_idempotent(self, client, alice):
        token, _ = login(client, "alice@example.com", USER_PASSWORD)

        assert client.post("/auth/revoke-refresh-token", headers=bearer(token)).status_code == 204
        assert client.post("/auth/revoke-refresh-token", headers=bearer(token)).status_code == 204
