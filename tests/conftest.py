"""Shared pytest fixtures for PolicyLens tests.

Uses a file-based SQLite temp database so that the app's module-level
engine, the lifespan ``init_db()``, and the test fixtures all share
the same database.
"""

import datetime
import os
import tempfile

import pytest
from fastapi.testclient import TestClient

# Override settings BEFORE importing the app
_tmp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp_db.close()
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp_db.name}"
os.environ["STORAGE_BACKEND"] = "database"
os.environ["AI_PROVIDER"] = "mock"
os.environ["AI_API_KEY"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""  # Disable Google OAuth for tests
os.environ["GOOGLE_CLIENT_SECRET"] = ""
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["SESSION_CLEANUP_INTERVAL_MINUTES"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "1000"

from app.config import get_settings
from app.database import Base, engine, SessionLocal
from app.main import app
from app.middleware.auth import current_user
from app.middleware.rate_limit import limiter
from app.services import db_storage as db_storage_module
from app.services import storage as storage_module
from app.services.db_storage import DbStorage
from app.services.storage import memory_storage


@pytest.fixture(autouse=True)
def _reset_state():
    """Fresh tables, empty in-memory store and no auth overrides for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    memory_storage.reset()
    limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture(scope="function")
def db_session():
    """Provide a DB session for direct data manipulation in tests."""
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(params=["memory", "database"])
def storage(request, db_session):
    """Each storage test runs once per backend."""
    if request.param == "memory":
        return memory_storage
    return DbStorage(db_session)


@pytest.fixture
def clock(monkeypatch):
    """Deterministic, strictly increasing timestamps for the storage backends."""
    state = {"now": datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)}

    def _tick():
        state["now"] += datetime.timedelta(seconds=1)
        return state["now"]

    monkeypatch.setattr(storage_module, "utcnow", _tick)
    monkeypatch.setattr(db_storage_module, "utcnow", _tick)
    return state


@pytest.fixture(scope="function")
def client():
    """FastAPI TestClient, uses the app's own engine and SessionLocal."""
    with TestClient(app) as c:
        yield c


# ---- Factory Helpers ----

@pytest.fixture
def make_user(db_session):
    """Factory fixture to create a User in the database backend."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        defaults = {
            "username": f"user{counter['n']}",
            "google_id": f"google-{counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "name": f"User {counter['n']}",
        }
        defaults.update(kwargs)
        return DbStorage(db_session).create_user(defaults)
    return _make


@pytest.fixture
def login_as():
    """Sign a user in for API requests by overriding the session lookup."""
    def _login(user):
        app.dependency_overrides[current_user] = lambda: user
    return _login


def analysis_payload(**overrides):
    payload = {
        "policyTitle": "Family Health Shield",
        "policyType": "Health",
        "insuranceProvider": "Acme Insurance",
        "plainLanguageSummary": "Covers hospital stays after a 30-day waiting period.",
        "extractedExclusions": ["Cosmetic surgery", "Self-inflicted injury"],
        "extractedConditions": ["Notify within 48 hours"],
        "riskLevel": "Medium",
        "waitingPeriodDays": 30,
    }
    payload.update(overrides)
    return payload


POLICY_TEXT = (
    "Section 4. Exclusions. The insurer shall not be liable for any claim arising from "
    "pre-existing diseases during the first 36 months of continuous coverage."
)
