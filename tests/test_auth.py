from datetime import timedelta

from sqlalchemy import select

from models import User
from security import create_access_token, get_password_hash, verify_password
from tests.conftest import ADMIN_EMAIL, auth_headers, register


def test_register_returns_user_and_token(client):
    response = client.post(
        "/auth/register",
        json={"name": "Jane Doe", "email": "Jane@Example.com", "password": "secret123", "address": "12 Main Street"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "jane@example.com"
    assert body["data"]["user"]["role"] == "customer"
    assert body["data"]["token"]


def test_register_stores_hash_not_plaintext(client, db_scalar):
    register(client, password="secret123")
    user = db_scalar(select(User).where(User.email == "jane@example.com"))
    assert user.password_hash != "secret123"
    assert "secret123" not in user.password_hash
    assert verify_password("secret123", user.password_hash)


def test_register_duplicate_email_conflicts(client):
    register(client)
    response = client.post("/auth/register", json={"name": "Jane Again", "email": "jane@example.com", "password": "other123"})
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_register_validation_errors(client):
    response = client.post("/auth/register", json={"name": "J", "email": "not-an-email", "password": "123"})
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"name", "email", "password"} <= fields


def test_register_admin_email_gets_admin_role(client):
    data = register(client, email=ADMIN_EMAIL)
    assert data["user"]["role"] == "admin"


def test_login_with_original_password(client):
    register(client, password="secret123")
    response = client.post("/auth/login", json={"email": "jane@example.com", "password": "secret123"})
    assert response.status_code == 200
    assert response.json()["data"]["token"]


def test_login_with_wrong_password_fails(client):
    register(client, password="secret123")
    response = client.post("/auth/login", json={"email": "jane@example.com", "password": "secret124"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_login_unknown_email_fails(client):
    response = client.post("/auth/login", json={"email": "nobody@example.com", "password": "secret123"})
    assert response.status_code == 401


def test_logout_is_acknowledged(client):
    response = client.post("/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_profile_requires_token(client):
    response = client.get("/auth/profile")
    assert response.status_code == 401
    assert response.json()["message"] == "Access token required"


def test_profile_with_token(client):
    token = register(client)["token"]
    response = client.get("/auth/profile", headers=auth_headers(token))
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "jane@example.com"


def test_tampered_token_is_forbidden(client):
    token = register(client)["token"]
    response = client.get("/cart", headers=auth_headers(token[:-2] + "xx"))
    assert response.status_code == 403
    assert response.json()["message"] == "Invalid or expired token"


def test_expired_token_is_forbidden(client, settings):
    user_id = register(client)["user"]["id"]
    token = create_access_token(user_id, "jane@example.com", settings, expires_delta=timedelta(seconds=-1))
    response = client.get("/cart", headers=auth_headers(token))
    assert response.status_code == 403


def test_token_signed_with_other_key_is_forbidden(client, settings):
    user_id = register(client)["user"]["id"]
    settings_other = type(settings)(secret_key="someone-else")
    token = create_access_token(user_id, "jane@example.com", settings_other)
    response = client.get("/cart", headers=auth_headers(token))
    assert response.status_code == 403


def test_non_bearer_scheme_is_unauthenticated(client):
    response = client.get("/cart", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_password_hash_is_salted():
    first = get_password_hash("secret123", rounds=4)
    second = get_password_hash("secret123", rounds=4)
    assert first != second
    assert verify_password("secret123", first)
    assert verify_password("secret123", second)


def test_verify_password_with_malformed_hash_returns_false():
    assert verify_password("secret123", "not-a-hash") is False
