"""
Pytest configuration and shared fixtures for unit tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from request_bot_detection.config import BotDetectionSettings, clear_settings_cache
from request_bot_detection.detection import LoggedRequest, ParsedUserAgent

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class StubUserAgentParser:
    """UserAgentParser returning canned results keyed by UA string."""

    def __init__(self, results: dict[str, ParsedUserAgent] | None = None):
        self.results = results or {}
        self.calls: list[str] = []

    def parse(self, user_agent: str) -> ParsedUserAgent:
        self.calls.append(user_agent)
        if user_agent == "raise":
            raise ValueError("unparseable")
        return self.results.get(user_agent, ParsedUserAgent())


@pytest.fixture
def settings():
    """Default detection settings."""
    return BotDetectionSettings()


@pytest.fixture
def stub_parser_factory():
    """Build a stub UA parser from a {ua: ParsedUserAgent} mapping."""
    return StubUserAgentParser


@pytest.fixture
def request_window():
    """Build a window of requests from one IP at the given second offsets."""

    def _build(offsets: list[float], ip_address: str = "192.168.1.1") -> list[LoggedRequest]:
        return [
            LoggedRequest(
                id=i + 1,
                ip_address=ip_address,
                created_at=BASE_TIME + timedelta(seconds=offset),
            )
            for i, offset in enumerate(offsets)
        ]

    return _build


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Keep cached settings from leaking between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()
