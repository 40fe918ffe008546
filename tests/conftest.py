"""Pytest fixtures for the storefront API tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import config
from database import ensure_indexes, get_db
from main import app


@pytest.fixture
def db():
    """An in-memory database with the production indexes."""
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    """Test client bound to the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


ADMIN_EMAIL = "admin@shop.io"


@pytest.fixture
def admin_headers(client, db, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAIL", ADMIN_EMAIL)
    auth.ensure_admin(db)
    response = client.post(
        "/api/auth/login",
        json={"email": ADMIN_EMAIL, "password": config.ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    return bearer(response.json()["token"])


def register_user(client, name="Alice", email="alice@mail.com", password="secret123"):
    response = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def user_headers(client):
    return bearer(register_user(client)["token"])


@pytest.fixture
def other_user_headers(client):
    return bearer(register_user(client, name="Bob", email="bob@mail.com")["token"])


def make_product(client, headers, **overrides):
    data = {
        "name": "Desk Lamp",
        "description": "Warm LED lamp for late nights",
        "price": 25.0,
        "category": "Home",
        "stock": 5,
    }
    data.update(overrides)
    response = client.post("/api/products", json=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["product"]


SHIPPING = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701"}
