import sys
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from movie_api.api import API_PREFIX, create_app
from movie_api.config import Settings
from movie_api.database import Database
from movie_api.security import TokenService

SECRET = "tests-secret-key"
EMAIL = "alice@example.com"
PASSWORD = "super-secret-password"


def _settings(**overrides) -> Settings:
    values = {"environment": "test", "jwt_secret": SECRET, "password_hash_rounds": 1000}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def client():
    database = Database(AsyncMongoMockClient(), "movie_api_auth_tests")
    app = create_app(settings=_settings(), database=database)
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, **overrides):
    body = {"username": "alice", "email": EMAIL, "password": PASSWORD}
    body.update(overrides)
    return client.post(f"{API_PREFIX}/auth/register", json=body)


def test_register_returns_user_and_token(client: TestClient) -> None:
    response = _register(client)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    assert body["message"] == "User registered successfully"

    user = body["data"]["user"]
    assert user["username"] == "alice"
    assert user["email"] == EMAIL
    assert user["role"] == "user"
    assert "password" not in user
    assert user["createdAt"] and user["updatedAt"]

    token = body["data"]["token"]
    assert TokenService(SECRET, timedelta(days=30)).verify(token) == user["id"]


def test_register_can_request_admin_role(client: TestClient) -> None:
    response = _register(client, role="admin")

    assert response.status_code == 201
    assert response.json()["data"]["user"]["role"] == "admin"


def test_register_rejects_duplicate_email(client: TestClient) -> None:
    assert _register(client).status_code == 201

    response = _register(client, username="alice2", email="ALICE@example.com")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "User with this email or username already exists"
    assert body["data"] is None


def test_register_rejects_duplicate_username(client: TestClient) -> None:
    assert _register(client).status_code == 201

    response = _register(client, email="other@example.com")

    assert response.status_code == 400
    assert "already exists" in response.json()["message"]


def test_register_validates_input(client: TestClient) -> None:
    response = _register(client, email="nope", password="123")

    assert response.status_code == 400
    body = response.json()
    fields = {item["field"] for item in body["errors"]}
    assert fields == {"email", "password"}
    assert "email" in body["message"]
    assert "password" in body["message"]


def test_login_returns_token(client: TestClient) -> None:
    registered = _register(client).json()["data"]["user"]

    response = client.post(f"{API_PREFIX}/auth/login", json={"email": "Alice@Example.com", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User logged in successfully"
    assert body["data"]["user"]["id"] == registered["id"]
    assert TokenService(SECRET, timedelta(days=30)).verify(body["data"]["token"]) == registered["id"]


@pytest.mark.parametrize(
    "credentials",
    [
        {"email": EMAIL, "password": "wrong-password"},
        {"email": "nobody@example.com", "password": PASSWORD},
    ],
)
def test_login_failures_are_indistinguishable(client: TestClient, credentials) -> None:
    _register(client)

    response = client.post(f"{API_PREFIX}/auth/login", json=credentials)

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


@pytest.mark.parametrize("body", [{"email": EMAIL}, {"password": PASSWORD}, {"email": "", "password": ""}, None])
def test_login_requires_email_and_password(client: TestClient, body) -> None:
    if body is None:
        response = client.post(f"{API_PREFIX}/auth/login")
    else:
        response = client.post(f"{API_PREFIX}/auth/login", json=body)

    assert response.status_code == 400
    assert response.json()["message"] == "Please provide an email and password"


def test_register_without_signing_secret_is_a_server_error() -> None:
    database = Database(AsyncMongoMockClient(), "movie_api_auth_tests")
    app = create_app(settings=_settings(jwt_secret=""), database=database)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = _register(client)

    assert response.status_code == 500
    body = response.json()
    assert body["statusCode"] == 500
    assert body["message"] == "JWT signing secret is not configured"


def test_register_ignores_extra_fields(client: TestClient) -> None:
    response = _register(client, confirmPassword=PASSWORD)

    assert response.status_code == 201
    assert "confirmPassword" not in response.json()["data"]["user"]
