"""
Unit tests for request-frequency analysis.
"""

from datetime import timedelta

import pytest

from request_bot_detection.config import BotDetectionSettings
from request_bot_detection.detection import FrequencyAnalyzer, SourceMetadata
from request_bot_detection.detection.frequency import positive_intervals
from request_bot_detection.detection.models import FrequencyAnalysis


@pytest.fixture
def analyzer(settings):
    return FrequencyAnalyzer(settings)


def source_with_baseline(window, avg_interval):
    first = window[0]
    return SourceMetadata(
        ip_address=first.ip_address,
        first_seen_at=first.created_at - timedelta(days=1),
        last_seen_at=first.created_at - timedelta(hours=2),
        total_requests=10,
        avg_request_interval=avg_interval,
    )


class TestPositiveIntervals:
    """Tests for interval extraction."""

    def test_zero_intervals_are_dropped(self, request_window):
        """Simultaneous requests contribute no interval."""
        window = request_window([0, 0, 2, 5])
        intervals = positive_intervals([r.created_at for r in window])
        assert list(intervals) == [2.0, 3.0]

    def test_single_timestamp(self, request_window):
        """One request has no intervals."""
        window = request_window([0])
        assert positive_intervals([r.created_at for r in window]).size == 0


class TestInsufficientData:
    """Tests for the minimum sample size."""

    @pytest.mark.parametrize("count", [1, 2, 3, 4])
    def test_small_windows_are_never_suspicious(self, analyzer, request_window, count):
        """Fewer than five requests never flag, however fast."""
        window = request_window([i * 0.01 for i in range(count)])

        result = analyzer.analyze(window[-1], window)

        assert result.is_suspicious is False
        assert result.requests_per_minute == 0.0
        assert result.requests_count == count
        assert result.debug.startswith("Insufficient data")

    def test_all_simultaneous_requests(self, analyzer, request_window):
        """A window with only zero-length intervals has nothing to analyze."""
        window = request_window([0, 0, 0, 0, 0, 0])

        result = analyzer.analyze(window[-1], window)

        assert result.is_suspicious is False
        assert result.debug == "No intervals to analyze"
        assert result.requests_count == 6


class TestSuspicionRules:
    """Tests for the three suspicion rules."""

    def test_high_rate_rule(self, analyzer, request_window):
        """One request per second is ~60 req/min and suspicious."""
        window = request_window(list(range(50)))

        result = analyzer.analyze(window[-1], window)

        assert result.is_suspicious is True
        assert result.requests_per_minute == pytest.approx(60.0)
        assert result.avg_interval == pytest.approx(1.0)
        assert result.reason == (
            "High request frequency: 60.00 requests/minute (avg interval: 1.00s)"
        )

    def test_burst_rule_at_boundary(self, analyzer, request_window):
        """An average of exactly 1.5s is a burst."""
        window = request_window([i * 1.5 for i in range(6)])

        result = analyzer.analyze(window[-1], window)

        assert result.is_suspicious is True
        assert "40.00 requests/minute" in result.reason

    def test_moderate_rate_with_default_baseline(self, analyzer, request_window):
        """2.5s intervals without a stored baseline are not suspicious."""
        window = request_window([i * 2.5 for i in range(6)])

        result = analyzer.analyze(window[-1], window)

        assert result.is_suspicious is False
        assert result.baseline_interval == 5.0

    def test_relative_to_baseline_rule(self, analyzer, request_window):
        """A rate well above a slow stored baseline is suspicious."""
        window = request_window([i * 2.5 for i in range(6)])
        source = source_with_baseline(window, 60.0)

        result = analyzer.analyze(window[-1], window, source)

        assert result.is_suspicious is True
        assert result.reason.startswith("High request frequency relative to baseline")
        assert "24.00 requests/minute" in result.reason
        assert result.baseline_interval == 60.0

    def test_baseline_rule_needs_rate_above_twenty(self, analyzer, request_window):
        """Slow traffic is not flagged even when far below the baseline."""
        window = request_window([i * 4.0 for i in range(6)])
        source = source_with_baseline(window, 60.0)

        result = analyzer.analyze(window[-1], window, source)

        assert result.is_suspicious is False

    def test_thresholds_come_from_settings(self, request_window):
        """Custom thresholds change the outcome."""
        analyzer = FrequencyAnalyzer(BotDetectionSettings(min_requests_for_analysis=10))
        window = request_window(list(range(6)))

        assert analyzer.analyze(window[-1], window).is_suspicious is False


class TestUpdatedSource:
    """Tests for the source metadata computed after an analysis."""

    def test_new_source_starts_at_one(self, request_window):
        """A first-seen IP gets total_requests = 1."""
        window = request_window([0])
        analysis = FrequencyAnalysis(is_suspicious=False)

        source = FrequencyAnalyzer.updated_source(window[0], analysis, None)

        assert source.total_requests == 1
        assert source.first_seen_at == window[0].created_at
        assert source.avg_request_interval is None

    def test_existing_source_increments_and_recomputes(self, request_window):
        """The average is replaced by the window's value, not smoothed."""
        window = request_window([0, 10, 20, 30, 40])
        existing = source_with_baseline(window, 60.0)
        analysis = FrequencyAnalysis(is_suspicious=False, avg_interval=10.0)

        source = FrequencyAnalyzer.updated_source(window[-1], analysis, existing)

        assert source.total_requests == 11
        assert source.avg_request_interval == 10.0
        assert source.last_seen_at == window[-1].created_at
        assert source.first_seen_at == existing.first_seen_at

    def test_existing_source_without_intervals_is_unchanged(self, request_window):
        """No average means nothing to persist."""
        window = request_window([0])
        existing = source_with_baseline(window, 60.0)
        analysis = FrequencyAnalysis(is_suspicious=False)

        assert FrequencyAnalyzer.updated_source(window[0], analysis, existing) is None
