"""
Shared pytest fixtures for the SaaS Operations Dashboard test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user / other_user: Pre-created User entities
    - headers / other_headers: X-User-Id request headers for those users
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.user import User


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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


# ── Convenience fixtures ─────────────────────────────────────────────────


def _make_user(email, name):
    u = User(email=email, name=name, role="user")
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def user():
    return _make_user("owner@example.com", "Owner")


@pytest.fixture()
def other_user():
    return _make_user("intruder@example.com", "Intruder")


@pytest.fixture()
def headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def other_headers(other_user):
    return {"X-User-Id": str(other_user.id)}
