"""
Shared pytest fixtures for the VSAQ questionnaire service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin: Pre-created Admin row
    - template: Stored template built from SIMPLE_CONTENT
    - instance: Open instance of ``template``
"""

import copy

import pytest

from vsaq import create_app
from vsaq.models import db as _db

# The yes branch mounts only once has_sec is answered "yes".
SIMPLE_CONTENT = {
    "version": 1,
    "items": [
        {
            "type": "yesno",
            "id": "has_sec",
            "text": "Do you run a security program?",
            "yes": [{"type": "line", "id": "detail", "text": "Describe it"}],
        },
    ],
}


def simple_content() -> dict:
    return copy.deepcopy(SIMPLE_CONTENT)


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
def session(app, _setup_db, monkeypatch):
    """Per-test: open app context, rollback after test, recreate tables."""
    monkeypatch.delenv("API_AUTH_ENABLED", raising=False)
    monkeypatch.delenv("API_KEYS", raising=False)
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
def admin():
    from vsaq.models.questionnaire import Admin

    a = Admin(username="alice")
    _db.session.add(a)
    _db.session.commit()
    return a


@pytest.fixture()
def template(admin):
    """Stored template dict (see SIMPLE_CONTENT)."""
    from vsaq.services import template_service

    return template_service.create_template(
        name="Vendor Review", content=simple_content(), admin_id=admin.id,
        description="Yearly vendor review",
    )


@pytest.fixture()
def instance(template, admin):
    """Open instance dict with ``unique_link`` and ``url``."""
    from vsaq.services import instance_service

    return instance_service.create_instance(
        template_id=template["id"], admin_id=admin.id,
        target_name="Acme Corp", target_email="security@acme.test",
    )
