"""
Pytest configuration and shared fixtures.

Required environment variables are set before the package is imported; each
test gets its own file-backed SQLite database built through `connect()`, so
the full open -> ping -> migrate -> seed path runs for every test.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./zapmanejo-unused.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")

import pytest
from fastapi.testclient import TestClient

from zapmanejo.db import connect
from zapmanejo.main import create_app

TEST_ORIGIN = "http://localhost:3000"


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'zapmanejo.db'}"


@pytest.fixture
def database(db_url):
    database = connect(db_url)
    yield database
    database.dispose()


@pytest.fixture
def session(database):
    with database.session() as s:
        yield s


@pytest.fixture
def client(database):
    app = create_app(database, allowed_origins=[TEST_ORIGIN])
    with TestClient(app) as c:
        yield c


def register(client, email="farmer@example.com", password="s3cret-pass", **extra):
    response = client.post("/api/auth/register", json={"email": email, "password": password, **extra})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    return register(client, phone="+55 (11) 98765-4321")
