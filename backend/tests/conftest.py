"""Shared test fixtures.

Environment variables are set before any contentsync import so the
cached settings and the module-level engine point at a throwaway
SQLite database.
"""

import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="contentsync-tests-")

os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["STATUS_MONITOR_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from contentsync.database import (  # noqa: E402
    create_engine_for_url,
    create_session_maker,
    create_tables,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test."""
    test_engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_maker):
    """Session for arranging and asserting; tests commit explicitly."""
    async with session_maker() as session:
        yield session
