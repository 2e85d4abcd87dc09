"""
Request-frequency analysis.

Computes the request rate of a source IP over the trailing window and
decides whether it is anomalous, both in absolute terms and relative to
the source's stored baseline interval.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from ..config.settings import BotDetectionSettings
from .models import FrequencyAnalysis, LoggedRequest, SourceMetadata

logger = logging.getLogger(__name__)


def positive_intervals(timestamps: Sequence[datetime]) -> np.ndarray:
    """
    Absolute gaps in seconds between consecutive timestamps, zeros removed.

    Args:
        timestamps: Ascending request timestamps

    Returns:
        Array of positive intervals (may be empty)
    """
    if len(timestamps) < 2:
        return np.array([], dtype=float)

    seconds = np.array([ts.timestamp() for ts in timestamps], dtype=float)
    intervals = np.abs(np.diff(seconds))
    return intervals[intervals > 0]


class FrequencyAnalyzer:
    """
    Flags sources whose request rate is anomalous.

    The analyzer is pure: it receives the window and the source's stored
    baseline and returns the statistics. Persisting the new baseline is the
    engine's job (see ``SourceMetadata`` upsert in the engine).
    """

    def __init__(self, settings: Optional[BotDetectionSettings] = None):
        self.settings = settings or BotDetectionSettings()

    def analyze(
        self,
        request: LoggedRequest,
        history_window: Sequence[LoggedRequest],
        source: Optional[SourceMetadata] = None,
    ) -> FrequencyAnalysis:
        """
        Analyze the request rate of the request's source.

        Args:
            request: The request under analysis
            history_window: Requests from the same IP with created_at in
                [request.created_at - window, request.created_at], ascending,
                including the request itself
            source: Stored metadata for the IP before this analysis, if any

        Returns:
            FrequencyAnalysis with the computed statistics
        """
        s = self.settings
        count = len(history_window)

        if count < s.min_requests_for_analysis:
            return FrequencyAnalysis(
                is_suspicious=False,
                requests_per_minute=0.0,
                requests_count=count,
                debug=(
                    f"Insufficient data: {count} requests, "
                    f"{s.min_requests_for_analysis} required"
                ),
            )

        timestamps = [r.created_at for r in history_window if r.created_at is not None]
        intervals = positive_intervals(timestamps)

        if intervals.size == 0:
            return FrequencyAnalysis(
                is_suspicious=False,
                requests_per_minute=0.0,
                requests_count=count,
                debug="No intervals to analyze",
            )

        avg_interval = float(np.mean(intervals))
        requests_per_minute = 60.0 / avg_interval if avg_interval > 0 else 0.0

        baseline_interval = (
            source.avg_request_interval
            if source is not None and source.avg_request_interval is not None
            else s.default_avg_request_interval
        )
        suspicious_threshold = baseline_interval * s.suspicious_frequency_multiplier

        high_rate = (
            requests_per_minute > s.high_rate_requests_per_minute
            and avg_interval < s.high_rate_max_interval
        )
        burst = avg_interval <= s.burst_max_interval
        below_baseline = (
            avg_interval < suspicious_threshold
            and requests_per_minute > s.baseline_min_requests_per_minute
        )

        result = FrequencyAnalysis(
            is_suspicious=False,
            requests_per_minute=requests_per_minute,
            requests_count=count,
            avg_interval=avg_interval,
            baseline_interval=baseline_interval,
        )

        if high_rate or burst:
            result.is_suspicious = True
            result.reason = (
                f"High request frequency: {requests_per_minute:.2f} requests/minute "
                f"(avg interval: {avg_interval:.2f}s)"
            )
        elif below_baseline:
            result.is_suspicious = True
            result.reason = (
                f"High request frequency relative to baseline: "
                f"{requests_per_minute:.2f} requests/minute "
                f"(avg interval: {avg_interval:.2f}s, "
                f"baseline: {baseline_interval:.2f}s)"
            )

        if result.is_suspicious:
            logger.debug(
                f"Frequency anomaly for {request.ip_address}: {result.reason}"
            )

        return result

    @staticmethod
    def updated_source(
        request: LoggedRequest,
        analysis: FrequencyAnalysis,
        source: Optional[SourceMetadata],
    ) -> Optional[SourceMetadata]:
        """
        Compute the source metadata after this analysis.

        A source seen for the first time is created with total_requests = 1.
        An existing source is only updated when the window produced an
        average interval: the counter is incremented, last_seen_at moves to
        the request time and the average is replaced by the fresh window's
        value (recomputed, not smoothed).

        Returns:
            The metadata to persist, or None if nothing changes
        """
        if request.ip_address is None or request.created_at is None:
            return None

        if source is None:
            return SourceMetadata(
                ip_address=request.ip_address,
                first_seen_at=request.created_at,
                last_seen_at=request.created_at,
                total_requests=1,
                avg_request_interval=analysis.avg_interval,
            )

        if analysis.avg_interval is None:
            return None

        return SourceMetadata(
            ip_address=source.ip_address,
            first_seen_at=source.first_seen_at,
            last_seen_at=request.created_at,
            total_requests=source.total_requests + 1,
            avg_request_interval=analysis.avg_interval,
            last_bot_analysis_at=source.last_bot_analysis_at,
            country_code=source.country_code,
        )
