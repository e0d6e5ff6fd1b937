"""Pytest configuration: set test env before any app imports so DB and storage use test paths."""

import asyncio
import os
import tempfile

import pytest

# Set before app.db.session or app.config are used so engine and settings use test paths
_tmp = tempfile.mkdtemp(prefix="mediahash_test_")
os.environ.setdefault("MEDIAHASH_DB_PATH", os.path.join(_tmp, "test.db"))
os.environ.setdefault("MEDIAHASH_STORAGE_BASE_PATH", os.path.join(_tmp, "uploads"))
os.environ.setdefault("MEDIAHASH_JWT_SECRET", "test-jwt-secret-at-least-32-characters-long")
os.environ.setdefault("MEDIAHASH_RATE_LIMIT_ENABLED", "false")
# Bootstrap admin for API tests (login as test@example.com / testpass123)
os.environ.setdefault("MEDIAHASH_ADMIN_EMAIL", "test@example.com")
os.environ.setdefault("MEDIAHASH_ADMIN_INITIAL_PASSWORD", "testpass123")


@pytest.fixture(scope="session")
def init_test_db():
    """Create tables once per test session."""
    from app.db.session import init_db
    from app.media.models import MediaFile, MediaMeta  # noqa: F401 - register with Base
    from app.users.models import User  # noqa: F401 - register with Base

    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(init_db())
    finally:
        loop.close()


@pytest.fixture
def session_factory(init_test_db):
    """Yield get_session so tests can use async with session_factory() as session."""
    from app.db.session import get_session
    return get_session
