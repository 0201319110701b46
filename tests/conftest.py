"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any app import, so the
cached settings and the process-wide store point at a throwaway database.
"""

import os
import tempfile

import pytest

_TEST_DIR = tempfile.mkdtemp(prefix="portfolio-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'app.db')}"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "correct-horse"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["STATIC_DIR"] = os.path.join(_TEST_DIR, "frontend")
os.environ["RESUME_PATH"] = os.path.join(_TEST_DIR, "frontend", "resume.pdf")

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from app.main import app
from app.storage import Base, Store, get_store


ADMIN_USERNAME = os.environ["ADMIN_USERNAME"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest.fixture
def store(tmp_path):
    """Fresh, initialized store on a temporary SQLite file."""
    db = Store(f"sqlite:///{tmp_path / 'store.db'}")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    with TestClient(app) as test_client:
        yield test_client

    # Cleanup - drop all tables after test
    app_store = get_store()
    app_store.connect()
    Base.metadata.drop_all(bind=app_store.engine)
    app_store.close()


@pytest.fixture
def admin_client(client):
    """Client holding a valid admin session cookie."""
    response = client.post(
        "/api/admin/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    return client


def submit_contact(client, name="Ada", email="ada@example.com", message="hi"):
    """Helper to submit the public contact form."""
    response = client.post(
        "/api/contact",
        json={"name": name, "email": email, "message": message},
    )
    assert response.status_code == 200
    return response.json()["id"]
