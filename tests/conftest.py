import os

# Point the app at an isolated in-memory database with every upstream disabled
# before anything under profield is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DB_SLOW_QUERY_SECONDS"] = "0"
for _var in (
    "REDIS_URL",
    "GOOGLE_MAPS_API_KEY",
    "RESEND_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
):
    os.environ[_var] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from profield import rate_limiter  # noqa: E402
from profield.database import Base, engine  # noqa: E402
from profield.main import app  # noqa: E402
from profield.services.directions import get_directions_client  # noqa: E402
from profield.services.websocket_manager import manager  # noqa: E402

DEFAULT_PASSWORD = "s3cure-passw0rd"


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.create_all(bind=engine)
    rate_limiter.memory_cache.clear()
    manager.organizations.clear()
    yield
    app.dependency_overrides.pop(get_directions_client, None)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


def register(client, organization_name="Acme Field Services", username="owner", email=None):
    resp = client.post(
        "/auth/register",
        json={
            "organization_name": organization_name,
            "username": username,
            "email": email or f"{username}@example.com",
            "password": DEFAULT_PASSWORD,
            "first_name": username.title(),
        },
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]


def add_user(client, admin_headers, username, role="technician", **extra):
    """Create a user through the admin API and log in as them"""
    payload = {
        "username": username,
        "email": f"{username}@example.com",
        "password": DEFAULT_PASSWORD,
        "role": role,
        **extra,
    }
    resp = client.post("/users", json=payload, headers=admin_headers)
    assert resp.status_code == 201, resp.text

    login = client.post("/auth/login", json={"username": username, "password": DEFAULT_PASSWORD})
    assert login.status_code == 200, login.text
    return {"Authorization": f"Bearer {login.json()['access_token']}"}, resp.json()


@pytest.fixture
def admin(client):
    """(headers, user) for the admin of a freshly registered organization"""
    return register(client)


@pytest.fixture
def admin_headers(admin):
    return admin[0]


@pytest.fixture
def customer(client, admin_headers):
    resp = client.post(
        "/customers",
        json={
            "name": "Jane Homeowner",
            "email": "Jane@Example.com",
            "phone": "(555) 201-3344",
            "address": "12 Elm St",
            "city": "Springfield",
            "state": "IL",
            "zip_code": "62701",
            "latitude": 39.7817,
            "longitude": -89.6501,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
