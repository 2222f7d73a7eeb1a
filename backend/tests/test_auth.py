"""Tests for login, tokens and role checks."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tableside.core.security import create_access_token, decode_access_token

API = "/api/v1"


class TestLogin:
    """POST /auth/login"""

    def test_login_success(self, client: TestClient, manager_user):
        response = client.post(
            f"{API}/auth/login",
            json={"email": "manager@example.com", "password": "testpass123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        payload = decode_access_token(data["access_token"])
        assert payload["sub"] == str(manager_user.id)
        assert payload["role"] == "manager"
        assert payload["restaurant_id"] == manager_user.restaurant_id

    def test_wrong_password(self, client: TestClient, manager_user):
        response = client.post(
            f"{API}/auth/login",
            json={"email": "manager@example.com", "password": "nope"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_unknown_user(self, client: TestClient):
        response = client.post(
            f"{API}/auth/login",
            json={"email": "ghost@example.com", "password": "testpass123"},
        )
        assert response.status_code == 401

    def test_inactive_user(self, client: TestClient, db_session: Session, waiter_user):
        waiter_user.is_active = False
        db_session.commit()

        response = client.post(
            f"{API}/auth/login",
            json={"email": "waiter@example.com", "password": "testpass123"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "User account is inactive"

    def test_invalid_email(self, client: TestClient):
        response = client.post(f"{API}/auth/login", json={"email": "not-an-email", "password": "x"})
        assert response.status_code == 422


class TestTokens:
    def test_token_has_unique_jti(self):
        first = decode_access_token(create_access_token({"sub": "1"}))
        second = decode_access_token(create_access_token({"sub": "1"}))
        assert first["jti"] != second["jti"]

    def test_tampered_token_rejected(self):
        token = create_access_token({"sub": "1"})
        assert decode_access_token(token[:-2] + "xx") is None

    def test_garbage_bearer_token(self, client: TestClient):
        response = client.get(
            f"{API}/table-sessions/active",
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    def test_unknown_role_rejected(self, client: TestClient):
        token = create_access_token({"sub": "1", "email": "x@example.com", "role": "janitor"})
        response = client.get(
            f"{API}/table-sessions/active",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401
