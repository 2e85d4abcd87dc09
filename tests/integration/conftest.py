"""
Shared fixtures for integration tests.

Provides:
- Temporary SQLite database for isolated testing
- Request record factory
- Detection engine with a fixed clock
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from request_bot_detection.config import BotDetectionSettings
from request_bot_detection.detection import BotDetectionEngine
from request_bot_detection.storage import get_backend

# Fixed "now" shared by the engine clock and the generated records
NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = (
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)


def make_record(
    ip_address: str = "203.0.113.10",
    created_at: datetime = NOW,
    user_agent: str = CHROME_UA,
    url: str = "https://example.com/blog",
    **overrides,
) -> dict:
    """Build one request record as handed over by the logging collaborator."""
    record = {
        "ip_address": ip_address,
        "created_at": created_at,
        "user_agent": user_agent,
        "url": url,
        "referer_url": None,
        "method": "GET",
        "status_code": 200,
        "user_id": None,
    }
    record.update(overrides)
    return record


def make_series(
    count: int,
    interval_seconds: float,
    end: datetime = NOW,
    **kwargs,
) -> list[dict]:
    """Build ``count`` records from one source, evenly spaced, ending at ``end``."""
    start = end - timedelta(seconds=interval_seconds * (count - 1))
    return [
        make_record(created_at=start + timedelta(seconds=interval_seconds * i), **kwargs)
        for i in range(count)
    ]


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Path to a temporary SQLite database."""
    return tmp_path / "test_requests.db"


@pytest.fixture
def sqlite_backend(temp_db_path):
    """Initialized SQLite backend on a temporary database."""
    backend = get_backend("sqlite", db_path=temp_db_path)
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def insert_requests(sqlite_backend):
    """Insert request records and return their IDs."""

    def _insert(records: list[dict]) -> list[int]:
        return sqlite_backend.insert_logged_requests(records)

    return _insert


@pytest.fixture
def detection_settings():
    """Default detection settings."""
    return BotDetectionSettings()


@pytest.fixture
def engine(sqlite_backend, detection_settings):
    """Detection engine on the temporary database with a fixed clock."""
    return BotDetectionEngine(
        sqlite_backend,
        settings=detection_settings,
        clock=lambda: NOW,
    )


@pytest.fixture
def now() -> datetime:
    """The engine clock's fixed time."""
    return NOW


@pytest.fixture
def record_factory():
    """Factory building one request record (see make_record)."""
    return make_record


@pytest.fixture
def series_factory():
    """Factory building evenly spaced records from one source (see make_series)."""
    return make_series


@pytest.fixture
def chrome_ua() -> str:
    return CHROME_UA


@pytest.fixture
def googlebot_ua() -> str:
    return GOOGLEBOT_UA
