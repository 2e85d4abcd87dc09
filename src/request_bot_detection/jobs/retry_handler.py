"""
Retry handling with exponential backoff for bot analysis jobs.

A job run is retried a bounded number of times when it fails for a
transient reason (a locked database, a connection that went away).
Permanent failures such as a missing request or a broken schema are
re-raised on the first attempt.
"""

import logging
import random
import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ErrorCategory(Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


@dataclass
class RetryConfig:
    """
    Backoff policy for a job run.

    The delay after failed attempt n (0-indexed) is
    base_delay_seconds * exponential_base**n, capped at max_delay_seconds,
    then spread by +/- jitter_factor when jitter is on.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def calculate_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay_seconds * self.exponential_base**attempt,
            self.max_delay_seconds,
        )
        if self.jitter:
            spread = delay * self.jitter_factor
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


@dataclass
class RetryResult:
    """What happened across all attempts of one run."""

    success: bool
    result: Any = None
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[Exception] = None
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "attempts": self.attempts,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "last_error": str(self.last_error) if self.last_error else None,
            "error_count": len(self.errors),
        }


class ErrorClassifier:
    """
    Maps a job failure to a retry category.

    Message patterns are checked first since storage errors wrap the
    underlying sqlite3 message; exception types decide the rest.
    """

    PERMANENT_PATTERNS = (
        "no such table",
        "no such column",
        "syntax error",
        "readonly database",
        "constraint failed",
        "not found",
        "invalid",
    )

    TRANSIENT_PATTERNS = (
        "database is locked",
        "database table is locked",
        "database is busy",
        "unable to open database",
        "disk i/o error",
        "timeout",
        "timed out",
    )

    @classmethod
    def classify(cls, error: Exception) -> ErrorCategory:
        message = str(error).lower()

        if any(pattern in message for pattern in cls.PERMANENT_PATTERNS):
            return ErrorCategory.PERMANENT
        if any(pattern in message for pattern in cls.TRANSIENT_PATTERNS):
            return ErrorCategory.TRANSIENT

        if isinstance(error, (TimeoutError, ConnectionError, sqlite3.OperationalError)):
            return ErrorCategory.TRANSIENT
        if getattr(error, "retryable", False):
            return ErrorCategory.TRANSIENT
        if isinstance(error, (ValueError, TypeError, KeyError, sqlite3.IntegrityError)):
            return ErrorCategory.PERMANENT

        return ErrorCategory.UNKNOWN


class RetryManager:
    """Runs a callable until it succeeds, fails permanently or runs out of attempts."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def execute_with_retry(
        self,
        func: Callable[..., Any],
        *args,
        retry_on: Optional[list[ErrorCategory]] = None,
        **kwargs,
    ) -> RetryResult:
        """
        Call ``func(*args, **kwargs)`` with backoff between failed attempts.

        Args:
            func: Operation to run
            retry_on: Categories worth another attempt
                (default: transient and unknown)

        Returns:
            RetryResult; exceptions are captured in it, never raised
        """
        retryable = set(retry_on or (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN))
        max_attempts = max(1, self.config.max_attempts)
        result = RetryResult(success=False)

        for attempt in range(1, max_attempts + 1):
            result.attempts = attempt
            try:
                result.result = func(*args, **kwargs)
            except Exception as e:
                category = ErrorClassifier.classify(e)
                result.last_error = e
                result.errors.append(
                    {
                        "attempt": attempt,
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "category": category.value,
                    }
                )
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed "
                    f"({category.value}): {e}"
                )

                if category not in retryable:
                    logger.info(f"Giving up: {category.value} error")
                    return result
                if attempt == max_attempts:
                    logger.error(f"Giving up after {max_attempts} attempts")
                    return result

                delay = self.config.calculate_delay(attempt - 1)
                result.total_delay_seconds += delay
                logger.info(f"Retrying in {delay:.2f}s")
                self._sleep(delay)
                continue

            result.success = True
            if attempt > 1:
                logger.info(f"Succeeded on attempt {attempt}")
            return result

        return result


def with_retry(config: Optional[RetryConfig] = None) -> Callable[[F], F]:
    """
    Decorator form of RetryManager; re-raises the last error on failure.

        @with_retry(RetryConfig(max_attempts=5))
        def drain_backlog():
            return engine.analyze_backlog(100)
    """
    manager = RetryManager(config=config)

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            outcome = manager.execute_with_retry(func, *args, **kwargs)
            if not outcome.success:
                raise outcome.last_error
            return outcome.result

        return wrapper  # type: ignore

    return decorator
