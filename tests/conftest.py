"""
Shared pytest fixtures for the Clearance Workflow test suite.

Provides:
    - app: Flask application (session-scoped, sqlite in-memory)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - workflow: the ClearanceWorkflow bundle built by create_app()
    - users: one active user per Role
    - doc_type: a three-stage document type (library → cashier → registrar)
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import Role, User
from app.models.clearance import DocumentType

STAGES = ["library", "cashier", "registrar"]


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


@pytest.fixture()
def workflow(app):
    return app.extensions["clearance"]


def _make_user(role: Role, email: str | None = None, *, is_active: bool = True) -> User:
    user = User(
        email=email or f"{role.value}@test.local",
        full_name=role.value.replace("_", " ").title(),
        role=role,
        is_active=is_active,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


def _make_document_type(name: str = "Graduation Clearance", stages=None, *, is_active: bool = True) -> DocumentType:
    dt = DocumentType(name=name, required_stages=list(stages or STAGES), is_active=is_active)
    _db.session.add(dt)
    _db.session.flush()
    return dt


@pytest.fixture()
def users():
    """One committed user per role, keyed by Role."""
    created = {role: _make_user(role) for role in Role}
    _db.session.commit()
    return created


@pytest.fixture()
def doc_type():
    dt = _make_document_type()
    _db.session.commit()
    return dt
