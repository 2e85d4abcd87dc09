"""
Unit tests for referer analysis and request records.
"""

from datetime import datetime, timezone

from request_bot_detection.config import BotDetectionSettings
from request_bot_detection.detection import LoggedRequest, RefererAnalyzer


class TestRefererAnalyzer:
    """Tests for RefererAnalyzer."""

    def test_disabled_without_terms(self, settings):
        analyzer = RefererAnalyzer(settings)

        assert analyzer.enabled is False
        assert analyzer.analyze("https://indeed.com/jobs").is_suspicious is False

    def test_case_insensitive_match(self):
        analyzer = RefererAnalyzer(BotDetectionSettings(suspicious_referers=["Indeed"]))

        result = analyzer.analyze("https://fr.INDEED.com/viewjob?jk=1")

        assert result.is_suspicious is True
        assert result.reason == 'Suspicious referer detected: contains "Indeed"'
        assert result.details["matched_term"] == "Indeed"

    def test_no_match(self):
        analyzer = RefererAnalyzer(BotDetectionSettings(suspicious_referers=["indeed"]))

        assert analyzer.analyze("https://www.google.com/").is_suspicious is False


class TestLoggedRequest:
    """Tests for LoggedRequest."""

    def test_from_dict_aliases(self):
        request = LoggedRequest.from_dict(
            {
                "id": 1,
                "source_ip": "192.0.2.1",
                "created_at": "2024-06-01T12:00:00",
                "user_agent_string": "curl/8.0",
            }
        )

        assert request.ip_address == "192.0.2.1"
        assert request.user_agent == "curl/8.0"
        assert request.created_at == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)

    def test_empty_user_agent_is_kept(self):
        """An empty UA is still a UA, distinct from a missing one."""
        request = LoggedRequest.from_dict(
            {"id": 1, "ip_address": "192.0.2.1", "created_at": None, "user_agent": ""}
        )

        assert request.user_agent == ""

    def test_flags(self):
        request = LoggedRequest(
            id=1,
            ip_address="192.0.2.1",
            created_at=None,
            user_id=3,
            bot_detection_metadata={"manually_flagged": True},
        )

        assert request.is_authenticated is True
        assert request.is_manually_flagged is True
