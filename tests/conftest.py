"""Pytest configuration and fixtures for testing"""

import os

# Set environment variables BEFORE importing the app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CREDENTIAL_SECRET", "test-credential-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test.db")

import pytest
from fastapi.testclient import TestClient

from backend.app.config import settings
from backend.app.db import borrow_connection, connect, init_db, transaction
from backend.app.main import app
from backend.perception.identity import ClientInfo, IntakeFields


# ========== Catalog fixtures ==========
IMAGES = [
    (1, "Amsterdam", "https://img.example/1.jpg", 1),
    (2, "Rotterdam", "https://img.example/2.jpg", 1),
    (3, "Utrecht", "https://img.example/3.jpg", 1),
    (4, "Hidden", "https://img.example/4.jpg", 0),
]

TRANSLATIONS = [
    (1, "en", "Safety"),
    (2, "en", "How safe does this place look?"),
    (3, "en", "Beauty"),
    (4, "en", "How beautiful does this place look?"),
    (1, "nl", "Veiligheid"),
    (2, "nl", "Hoe veilig ziet deze plek eruit?"),
]

CATEGORIES = [
    (1, 1, 2),
    (2, 3, 4),
]


def seed_catalog(conn):
    with transaction(conn):
        conn.executemany("INSERT INTO image(image_id, cityname, url, enabled) VALUES(?,?,?,?)", IMAGES)
        conn.executemany("INSERT INTO translation(string_id, langabbr, v) VALUES(?,?,?)", TRANSLATIONS)
        conn.executemany(
            "INSERT INTO category(category_id, shortname_sid, description_sid) VALUES(?,?,?)",
            CATEGORIES,
        )


# ========== Test Database Setup ==========
@pytest.fixture(scope="function")
def db_path(tmp_path):
    return str(tmp_path / "survey.db")


@pytest.fixture(scope="function")
def conn(db_path):
    """A fresh database with the schema and a small catalog"""
    c = connect(db_path)
    init_db(c)
    seed_catalog(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def client_info():
    return ClientInfo(ip="203.0.113.7", user_agent="Mozilla/5.0 (pytest)")


@pytest.fixture
def intake():
    return IntakeFields(age=30, consent=True, gender="f", country="NL", postcode="3584")


# ========== Test Client Setup ==========
@pytest.fixture(scope="function")
def client(tmp_path, monkeypatch):
    """FastAPI test client backed by its own database file"""
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{tmp_path}/api.db")
    with TestClient(app) as test_client:
        with borrow_connection() as c:
            seed_catalog(c)
        yield test_client


@pytest.fixture
def participant(client):
    """A person created through the intake endpoint"""
    resp = client.post("/api/v1/newperson", json={"age": 30, "consent": True})
    assert resp.status_code == 200
    return resp.json()
