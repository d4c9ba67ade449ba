"""Shared test fixtures and configuration.

Sets up fake environment variables so ufree.config doesn't sys.exit(),
and provides common fixtures like a temp availability DB.
"""

import os

# Patch env vars BEFORE any ufree imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("FIREBASE_PROJECT_ID", "ufree-test")
os.environ.setdefault("FIREBASE_API_KEY", "fake-api-key-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_ufree.db")


@pytest.fixture
def availability_db(tmp_db_path):
    """Return an AvailabilityDB instance backed by a temp file."""
    from ufree.data.db import AvailabilityDB
    return AvailabilityDB(db_path=tmp_db_path, user_id="me", display_name="Me")
