"""
pytest configuration – point the service at a throwaway SQLite database
before anything imports it, create/drop tables around the session, and
share a controllable clock for the guard tests.
"""
import os

os.environ.setdefault("BACKOFFICE_DATABASE_URL", "sqlite:///./test_backoffice.db")
os.environ.setdefault("BACKOFFICE_LOG_FORMAT", "text")
os.environ.setdefault("BACKOFFICE_API_RATE_LIMIT", "1000/minute")

import pytest  # noqa: E402

from backoffice.database import drop_db, init_db  # noqa: E402


class FakeClock:
    """Stands in for ``time.time``; only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True, scope="session")
def create_tables():
    init_db()
    yield
    drop_db()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
