"""
Shared pytest fixtures for the lab report workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_report / make_template: committed factories
    - headers(): identity headers for the header-based test identity
    - RecordingSession: session wrapper for checking which session a service uses

Services roll back the session on any error, so factories commit rather
than flush; otherwise a failing call in a test would erase its fixtures.
"""

import pytest

from labflow import create_app
from labflow.core.actor import Actor
from labflow.models import db as _db
from labflow.models.auth import User
from labflow.models.report import Report
from labflow.models.template import FormTemplate
from labflow.models.workflow import Role
from labflow.utils.crypto import hash_password

PASSWORD = "correct horse battery"


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
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identity helpers ─────────────────────────────────────────────────────


def headers(user_id, role, client_code=None, **extra):
    """Header identity accepted while API_AUTH_ENABLED is false."""
    h = {"X-User-Id": user_id, "X-User-Role": role}
    if client_code:
        h["X-Client-Code"] = client_code
    h.update(extra)
    return h


def actor(user_id, role, client_code=None) -> Actor:
    return Actor(user_id=user_id, role=Role(role), client_code=client_code)


class RecordingSession:
    """Wraps a session and records what services add and write through it."""

    def __init__(self, inner):
        self.inner = inner
        self.added = []
        self.tables_written = set()

    def add(self, obj):
        self.added.append(obj)
        self.inner.add(obj)

    def execute(self, stmt, *args, **kwargs):
        table = getattr(stmt, "table", None)
        if table is not None:
            self.tables_written.add(table.name)
        return self.inner.execute(stmt, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self.inner, name)


# ── Factories ────────────────────────────────────────────────────────────


def _make_user(user_id="qa-1", role="QA", client_code=None, password=PASSWORD):
    user = User(
        id=user_id,
        role=role,
        client_code=client_code,
        password_hash=hash_password(password, rounds=4) if password else None,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def _make_report(form_type="CHEMISTRY_MIX", status="DRAFT", client_code="ACME", data=None, version=0, **kw):
    report = Report(
        form_type=form_type,
        status=status,
        client_code=client_code,
        data=data or {},
        version=version,
        created_by=kw.get("created_by", "client-1"),
        updated_by=kw.get("created_by", "client-1"),
        form_number=kw.get("form_number"),
        report_number=kw.get("report_number"),
    )
    _db.session.add(report)
    _db.session.commit()
    return report


def _make_template(name="Weekly", form_type="CHEMISTRY_MIX", client_code="ACME", data=None, version=1):
    tpl = FormTemplate(
        name=name,
        form_type=form_type,
        client_code=client_code,
        data=data or {},
        version=version,
        created_by="seed",
        updated_by="seed",
    )
    _db.session.add(tpl)
    _db.session.commit()
    return tpl


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_report():
    return _make_report


@pytest.fixture()
def make_template():
    return _make_template


def reload(model, pk):
    """Fresh copy of a row, bypassing the identity map."""
    _db.session.expire_all()
    return _db.session.get(model, pk)
