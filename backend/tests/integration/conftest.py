"""
tests/integration/conftest.py: Fixtures for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TEST_DATABASE_URL selects the database; the default is in-memory SQLite,
    which Flask-SQLAlchemy pins to a single connection so every request and
    fixture sees the same data.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - The email notifier is replaced by RecordingNotifier for every test, so
    tests can assert on what would have been sent and can make delivery fail.

Helper functions for seeding rows and minting tokens live in helpers.py.
"""

from __future__ import annotations

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.services.notification_service import NotificationResult
from backend.tests.integration.helpers import empty_tables


# ═══════════════════════════════════════════════════════════════════════════
# Fake email collaborator
# ═══════════════════════════════════════════════════════════════════════════

class RecordingNotifier:
    """
    Stands in for EmailNotifier. Records every send() call.

    Set `fail = True` to make every delivery report failure, or
    `raise_error` to an exception instance to make send() raise it.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []
        self.fail = False
        self.raise_error: Exception | None = None

    def send(self, to: str, context: dict) -> NotificationResult:
        self.sent.append((to, dict(context)))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail:
            return NotificationResult(success=False, error="SMTP unavailable")
        return NotificationResult(success=True, message_id=f"test-{len(self.sent)}")

    def sent_to(self, email: str) -> list[dict]:
        return [context for to, context in self.sent if to == email]


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows between tests."""
    yield  # run the test
    empty_tables(app)


@pytest.fixture(autouse=True)
def notifier(app):
    """Installs a fresh RecordingNotifier for each test and restores the real one after."""
    original = app.extensions["notifier"]
    fake = RecordingNotifier()
    app.extensions["notifier"] = fake
    yield fake
    app.extensions["notifier"] = original


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()
