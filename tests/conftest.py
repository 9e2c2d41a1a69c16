"""Shared pytest fixtures for the OTJ portal test suite."""

import pytest

from otj_portal.app import create_app
from otj_portal.models import User, db


@pytest.fixture()
def app():
    """Create an application configured for testing with an in-memory SQLite DB."""
    application = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SECRET_KEY": "test-secret-key",
            "WTF_CSRF_ENABLED": False,
            "DEV_AUTO_LOGIN_EMAIL": "test@example.com",
            "OTJ_DEFAULT_STANDARD": "ST0763",
        }
    )
    yield application


@pytest.fixture()
def client(app):
    """A test client for the application."""
    return app.test_client()


@pytest.fixture()
def learner_id(client, app):
    """Id of the auto-login learner (created by the first request)."""
    resp = client.get("/auth/me")
    assert resp.status_code == 200, f"learner_id fixture failed: HTTP {resp.status_code}"
    return resp.get_json()["id"]


def make_user(app, email, role="learner", user_id=None, standard=None):
    """Insert a user directly and return its id."""
    with app.app_context():
        user = User(id=user_id, email=email, name=email.split("@")[0], role=role, selected_standard=standard)
        db.session.add(user)
        db.session.commit()
        return user.id


def login_as(client, user_id):
    """Point the test client's session at *user_id*."""
    with client.session_transaction() as sess:
        sess["user_id"] = user_id


@pytest.fixture()
def tutor_id(app):
    return make_user(app, "tutor@example.com", role="assessor")
