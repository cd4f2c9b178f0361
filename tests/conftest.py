"""
Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database. The environment is set here,
before any chat_viewer import, and the settings cache is cleared so the test
values are used.
"""

import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CREATE_SCHEMA"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import literal_column, select

# Clear settings cache before any app imports to ensure test env vars are used
from chat_viewer.config import get_settings
get_settings.cache_clear()

from chat_viewer import models
from chat_viewer.main import app
from chat_viewer.storage import SessionLocal, Base, engine


USERS = [
    (1, "alice"),
    (2, "bob"),
    (3, "carol"),
]


def audit_rows() -> list:
    """All audit_logs rows in insertion order."""
    with SessionLocal() as db:
        stmt = select(models.audit_logs).order_by(literal_column("rowid"))
        return db.execute(stmt).all()


def message_rows() -> list:
    """All messages rows ordered by id."""
    with SessionLocal() as db:
        return db.execute(select(models.Message).order_by(models.Message.id)).scalars().all()


@pytest.fixture(scope="function")
def client():
    """Create test client with a fresh, user-seeded database for each test."""
    with TestClient(app) as test_client:
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            db.add_all([models.User(id=user_id, username=name) for user_id, name in USERS])
            db.commit()

        yield test_client

        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(client):
    """Session on the test database for direct setup and inspection."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
