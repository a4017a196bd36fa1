"""Shared test fixtures and configuration.

Sets up fake environment variables so supermom.config doesn't sys.exit(),
and provides common fixtures like a temp store and an assistant wired to
fakes.
"""

import os

# Patch env vars BEFORE any supermom imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store(tmp_path):
    """Return a LocalStore backed by a temp file."""
    from supermom.data.db import LocalStore
    return LocalStore(db_path=str(tmp_path / "test_supermom.db"))


@pytest.fixture
def fake_classifier():
    from supermom.core.classifier import QueryIntent
    return AsyncMock(return_value=QueryIntent(text_response="Here you go!"))


@pytest.fixture
def fake_calendar():
    cal = AsyncMock()
    cal.create_event = AsyncMock(return_value={"id": "gcal-1"})
    return cal


@pytest.fixture
def assistant(store, fake_classifier, fake_calendar):
    """Return a loaded Assistant wired to a temp store and fakes."""
    from supermom.core.assistant import Assistant
    from supermom.core.client_config import FixedClientIdSource

    a = Assistant(
        store,
        classifier=fake_classifier,
        calendar_factory=lambda account: fake_calendar,
        client_id_source=FixedClientIdSource("client-123.apps.googleusercontent.com"),
        tz=timezone.utc,
        incomplete_only=True,
        clock=lambda: NOW,
    )
    a.load()
    return a
