"""
Unit tests for user-agent analysis.
"""

import pytest

from request_bot_detection.config import BotDetectionSettings
from request_bot_detection.detection import ParsedUserAgent, UserAgentAnalyzer
from request_bot_detection.detection.user_agent import UserAgentsParser

OLD_GALAXY = ParsedUserAgent(
    browser_name="Android",
    os_name="Android",
    os_version="4.4.2",
    device_name="Samsung SM-N910F",
)


@pytest.fixture
def stub_analyzer(settings, stub_parser_factory):
    parser = stub_parser_factory(
        {
            "old-galaxy": OLD_GALAXY,
            "new-galaxy": ParsedUserAgent(
                browser_name="Chrome Mobile",
                os_name="Android",
                os_version="13",
                device_name="Samsung SM-S911B",
            ),
            "crawler": ParsedUserAgent(bot_name="ExampleBot"),
            "firefox": ParsedUserAgent(browser_name="Firefox", os_name="Linux"),
        }
    )
    return UserAgentAnalyzer(settings, parser=parser)


class TestKnownBots:
    """Tests for the known-bot rule."""

    def test_known_bot_always_flags(self, stub_analyzer):
        """A recognized bot is suspicious at any rate."""
        result = stub_analyzer.analyze("crawler", 0.0)

        assert result.is_suspicious is True
        assert result.reason == "Known bot detected: ExampleBot"

    def test_googlebot_with_real_parser(self):
        """The user-agents library recognizes Googlebot."""
        analyzer = UserAgentAnalyzer()
        ua = (
            "Mozilla/5.0 (compatible; Googlebot/2.1; "
            "+http://www.google.com/bot.html)"
        )

        result = analyzer.analyze(ua, 0.0)

        assert result.is_suspicious is True
        assert result.reason.startswith("Known bot detected:")


class TestDevicePatterns:
    """Tests for the old-device rule."""

    def test_old_device_above_limit(self, stub_analyzer):
        """Android 4.4 on a Note 4 at 15 req/min is suspicious."""
        result = stub_analyzer.analyze("old-galaxy", 15.0)

        assert result.is_suspicious is True
        assert result.reason == (
            "Suspicious pattern: Old Android 4.4.2 device (Samsung SM-N910F) "
            "with high request rate (15.00 req/min)"
        )

    def test_old_device_at_limit(self, stub_analyzer):
        """The pattern limit itself is not exceeded."""
        assert stub_analyzer.analyze("old-galaxy", 10.0).is_suspicious is False

    def test_modern_device_is_ignored(self, stub_analyzer):
        """A current Android version never matches the pattern."""
        assert stub_analyzer.analyze("new-galaxy", 15.0).is_suspicious is False

    def test_patterns_come_from_settings(self, stub_parser_factory):
        """An empty pattern table disables the rule."""
        analyzer = UserAgentAnalyzer(
            BotDetectionSettings(suspicious_device_patterns={}),
            parser=stub_parser_factory({"old-galaxy": OLD_GALAXY}),
        )

        assert analyzer.analyze("old-galaxy", 15.0).is_suspicious is False


class TestNoBrowser:
    """Tests for the unidentified-browser rule."""

    def test_empty_user_agent_under_load(self, stub_analyzer):
        """No browser and more than 20 req/min is suspicious."""
        result = stub_analyzer.analyze("", 25.0)

        assert result.is_suspicious is True
        assert result.reason == "No browser identified with high request rate"

    def test_empty_user_agent_at_low_rate(self, stub_analyzer):
        """No browser at a low rate is fine."""
        assert stub_analyzer.analyze("", 5.0).is_suspicious is False

    def test_identified_browser_under_load(self, stub_analyzer):
        """A real browser is not flagged by this rule."""
        assert stub_analyzer.analyze("firefox", 25.0).is_suspicious is False

    def test_parser_errors_are_contained(self, stub_analyzer):
        """A parser failure is treated as an unidentified browser."""
        result = stub_analyzer.analyze("raise", 25.0)

        assert result.is_suspicious is True
        assert result.details["parsed"]["browser_name"] == ""


class TestUserAgentsParser:
    """Tests for the user-agents backed parser."""

    def test_empty_string(self):
        """Empty input yields empty fields."""
        assert UserAgentsParser().parse("") == ParsedUserAgent()

    def test_desktop_browser(self):
        """A desktop Chrome UA has a browser and no bot name."""
        parsed = UserAgentsParser().parse(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )

        assert parsed.browser_name == "Chrome"
        assert parsed.os_name == "Windows"
        assert parsed.bot_name == ""
