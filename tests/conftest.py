"""
Shared fixtures.

Every ``app`` gets its own in-memory SQLite database (StaticPool, one shared
connection) and cheap argon2 parameters from TestingConfig. Tests that need
real concurrent transactions use ``file_app`` instead, which points at a
SQLite file under tmp_path so each thread gets its own connection.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from api import create_app
from utils.security import PasswordService, TokenIssuer

PASSWORD = "s3cret!"


class RecordingNotifier:
    """Collects reset tokens instead of emailing them."""

    def __init__(self):
        self.sent = []

    def send_reset(self, user, token):
        self.sent.append((user.id, token))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app("testing", notifier=notifier)
    yield app
    app.extensions["auth"].storage.dispose()


@pytest.fixture
def file_app(tmp_path, notifier):
    app = create_app(
        "testing",
        overrides={"DATABASE_URL": f"sqlite:///{tmp_path / 'auth.db'}"},
        notifier=notifier,
    )
    yield app
    app.extensions["auth"].storage.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def components(app):
    with app.app_context():
        yield app.extensions["auth"]


@pytest.fixture
def passwords():
    return PasswordService(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def issuer():
    return TokenIssuer("unit-test-secret-unit-test-secret-0000")


def expired_issuer(secret: str, key_id: str = "primary") -> TokenIssuer:
    """An issuer whose clock is two hours behind, so even refresh tokens can be made stale."""
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    return TokenIssuer(secret, key_id=key_id, refresh_expires=timedelta(hours=1), clock=lambda: past)


def cookie_value(client, name):
    cookie = client.get_cookie(name)
    return cookie.value if cookie is not None else None
