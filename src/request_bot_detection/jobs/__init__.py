"""Scheduled bot analysis jobs."""

from .analyze_bot_requests import AnalyzeBotRequestsJob, JobResult
from .retry_handler import (
    ErrorCategory,
    ErrorClassifier,
    RetryConfig,
    RetryManager,
    RetryResult,
    with_retry,
)

__all__ = [
    "AnalyzeBotRequestsJob",
    "JobResult",
    "ErrorCategory",
    "ErrorClassifier",
    "RetryConfig",
    "RetryManager",
    "RetryResult",
    "with_retry",
]
