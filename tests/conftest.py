"""
Shared pytest fixtures for the Ticketing API test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - memory_store: fresh in-process KeyValueStore
    - epic / slice_ / make_ticket: records created through the API
"""

import pytest

from app import create_app
from app.models import db as _db
from app.store import MemoryStore


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def memory_store():
    """Empty thread-safe in-memory store, independent of the app's store."""
    return MemoryStore()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def epic(client):
    """Create and return a test Epic via the API."""
    res = client.post("/api/epics", json={"epic_id": "e1", "title": "Checkout revamp"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def slice_(client, epic):
    """Create and return a Slice inside ``epic``."""
    res = client.post(f"/api/epics/{epic['epic_id']}/slices", json={"slice_id": "s1", "title": "API"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def make_ticket(client, slice_):
    """Factory: create a ticket in ``slice_`` (or another slice) and return its JSON."""

    def _make(title="Ticket", epic_id=None, slice_id=None, **extra):
        e = epic_id or slice_["epic_id"]
        s = slice_id or slice_["slice_id"]
        res = client.post(
            f"/api/epics/{e}/slices/{s}/tickets",
            json={"title": title, "intent": f"Deliver {title}", **extra},
        )
        assert res.status_code == 201, res.get_json()
        return res.get_json()

    return _make
