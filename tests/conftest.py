"""
Test configuration and fixtures.

Provides:
- a fresh in-memory SQLite database per test (tables recreated, admin bootstrapped)
- a TestClient entered as a context manager so startup runs
- a bearer token for the bootstrap admin
- captured outbound mail
"""
import os

# Must be set before the app modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_USERNAME"] = "Admin"
os.environ["ADMIN_PASSWORD"] = "test-password"
os.environ["SMTP_HOST"] = ""
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENV"] = "dev"

import pytest
from fastapi.testclient import TestClient

import notifications
from DB_Link.database import Store, drop_tables
from main import app
from models.session import Session_local

ADMIN_USERNAME = "Admin"
ADMIN_PASSWORD = "test-password"


@pytest.fixture(scope="function")
def client():
    drop_tables()
    with TestClient(app) as test_client:
        yield test_client
    drop_tables()


@pytest.fixture(scope="function")
def store(client):
    db = Session_local()
    try:
        yield Store(db)
    finally:
        db.close()


@pytest.fixture(scope="function")
def token(client) -> str:
    response = client.post("/api/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    # bearer only; tests that need the session cookie log in themselves
    client.cookies.clear()
    return response.json()["token"]


@pytest.fixture(scope="function")
def auth_headers(token) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def sent_mail(monkeypatch):
    """Enable SMTP in settings and capture messages instead of sending them."""
    sent = []
    monkeypatch.setattr(notifications.settings, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(notifications, "deliver", lambda msg: sent.append(msg))
    return sent


CONTACT_FORM = {
    "title": "Contact",
    "fields": [
        {"id": "f1", "type": "text", "label": "Name", "required": True},
    ],
}


@pytest.fixture(scope="function")
def contact_form(client, auth_headers) -> dict:
    response = client.post("/api/forms", json=CONTACT_FORM, headers=auth_headers)
    assert response.status_code == 201
    return response.json()
