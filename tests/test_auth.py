"""Tests for registration, login and token handling."""

import time
from datetime import timedelta

import pytest
from bson import ObjectId

import auth
import config
from database import USERS
from errors import ForbiddenError, UnauthorizedError
from schemas import Role

from .conftest import bearer, register_user


class TestRegister:
    def test_register_returns_user_and_token(self, client, db):
        data = register_user(client, email="Alice@Mail.com")

        assert data["success"] is True
        assert data["token"]
        user = data["user"]
        assert user["name"] == "Alice"
        assert user["email"] == "alice@mail.com"
        assert user["role"] == "user"
        assert "password" not in user
        assert "passwordHash" not in user

        stored = db[USERS].find_one({"email": "alice@mail.com"})
        assert stored["password_hash"] != "secret123"
        assert auth.verify_password("secret123", stored["password_hash"])

    def test_duplicate_email_is_rejected_case_insensitively(self, client):
        register_user(client, email="alice@mail.com")
        response = client.post(
            "/api/auth/register",
            json={"name": "Other", "email": "ALICE@mail.com", "password": "secret123"},
        )
        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Email already registered"}

    def test_invalid_payload(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Alice", "email": "not-an-email", "password": "secret123"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"].startswith("email")

    def test_short_password(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Alice", "email": "alice@mail.com", "password": "123"},
        )
        assert response.status_code == 400


class TestLogin:
    def test_login_success(self, client):
        register_user(client)
        response = client.post(
            "/api/auth/login", json={"email": "alice@mail.com", "password": "secret123"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "alice@mail.com"
        assert data["token"]

    def test_unknown_email_and_wrong_password_look_identical(self, client):
        register_user(client)
        unknown = client.post(
            "/api/auth/login", json={"email": "nobody@mail.com", "password": "secret123"}
        )
        wrong = client.post(
            "/api/auth/login", json={"email": "alice@mail.com", "password": "wrong-pass"}
        )
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {
            "success": False,
            "message": "Invalid credentials",
        }


class TestMe:
    def test_me_returns_current_user(self, client, user_headers):
        response = client.get("/api/auth/me", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "alice@mail.com"

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_garbage_token(self, client):
        response = client.get("/api/auth/me", headers=bearer("not.a.token"))
        assert response.status_code == 401

    def test_expired_token(self, client, db):
        user = register_user(client)["user"]
        token = auth.create_access_token(user["id"], expires_delta=timedelta(seconds=-5))
        response = client.get("/api/auth/me", headers=bearer(token))
        assert response.status_code == 401

    def test_token_for_deleted_user(self, client, db):
        token = auth.create_access_token(ObjectId())
        response = client.get("/api/auth/me", headers=bearer(token))
        assert response.status_code == 401


class TestTokens:
    def test_token_expires_after_seven_days(self):
        from jose import jwt

        user_id = ObjectId()
        before = time.time()
        token = auth.create_access_token(user_id)
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])

        assert claims["sub"] == str(user_id)
        assert abs(claims["exp"] - before - 7 * 24 * 3600) < 60

    def test_authenticate_rejects_token_signed_with_other_secret(self, db):
        from jose import jwt

        token = jwt.encode({"sub": str(ObjectId())}, "other-secret", algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            auth.authenticate(db, token)


class TestBootstrapAdmin:
    def test_ensure_admin_is_idempotent(self, db, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_EMAIL", "Boss@Shop.io")
        assert auth.ensure_admin(db) is True
        assert auth.ensure_admin(db) is False

        admins = list(db[USERS].find({"role": "admin"}))
        assert len(admins) == 1
        assert admins[0]["email"] == "boss@shop.io"

    def test_admin_can_log_in(self, client, admin_headers):
        response = client.get("/api/auth/me", headers=admin_headers)
        assert response.json()["user"]["role"] == "admin"


class TestRequireRole:
    def test_matching_role_passes_through(self):
        gate = auth.require_role(Role.admin)
        admin = {"_id": ObjectId(), "role": "admin"}
        assert gate(user=admin) is admin

    def test_other_role_is_forbidden(self):
        gate = auth.require_role(Role.admin)
        with pytest.raises(ForbiddenError, match="Admin role required"):
            gate(user={"_id": ObjectId(), "role": "user"})
