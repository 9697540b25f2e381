import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'storefront-test.db'}",
        secret_key="test-secret",
        bcrypt_rounds=4,
        admin_emails=[ADMIN_EMAIL],
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_scalar(client, app):
    """Run one query in its own short session so no lock outlives it."""

    def _scalar(stmt):
        with app.state.database.SessionLocal() as session:
            return session.scalar(stmt)

    return _scalar


def register(client, email="jane@example.com", password="secret123", name="Jane Doe"):
    response = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()["data"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(client):
    return auth_headers(register(client)["token"])


@pytest.fixture
def other_headers(client):
    return auth_headers(register(client, email="john@example.com", name="John Roe")["token"])


@pytest.fixture
def admin_headers(client):
    return auth_headers(register(client, email=ADMIN_EMAIL, name="Store Admin")["token"])


@pytest.fixture
def make_product(client, admin_headers):
    def _make(**overrides):
        body = {
            "name": "Cotton Shirt",
            "description": "A comfortable everyday cotton shirt.",
            "price": 19.99,
            "category": "men",
            "image": "https://example.com/shirt.png",
            "stock": 10,
        }
        body.update(overrides)
        response = client.post("/products", json=body, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]["product"]

    return _make
