"""
Application settings and configuration management.

Supports loading from:
1. YAML configuration files (config.yaml)
2. Environment variables (fallback)
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from .constants import (
    ANALYSIS_WINDOW_SECONDS,
    BASELINE_MIN_REQUESTS_PER_MINUTE,
    BURST_MAX_INTERVAL,
    CLAIM_TIMEOUT_SECONDS,
    DEFAULT_AVG_REQUEST_INTERVAL,
    ENTROPY_MIN_LENGTH,
    ENTROPY_THRESHOLD,
    HIGH_RATE_MAX_INTERVAL,
    HIGH_RATE_REQUESTS_PER_MINUTE,
    MIN_REQUESTS_FOR_ANALYSIS,
    NO_BROWSER_REQUESTS_PER_MINUTE,
    ROUTE_PARAMETER_OVERRIDES,
    SUSPICIOUS_DEVICE_PATTERNS,
    SUSPICIOUS_FREQUENCY_MULTIPLIER,
)

logger = logging.getLogger(__name__)


def _safe_int(key: str, default: int) -> int:
    """Safely parse int from env var, using default on error."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _safe_float(key: str, default: float) -> float:
    """Safely parse float from env var, using default on error."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _safe_list(key: str, default: list[str]) -> list[str]:
    """Parse a comma-separated env var into a list."""
    raw = os.environ.get(key)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# =============================================================================
# Bot Detection Settings
# =============================================================================


@dataclass
class BotDetectionSettings:
    """
    Thresholds and tables used by the bot detection analyzers.

    Defaults reproduce the production heuristics; every value can be tuned
    through the YAML config or BOT_DETECTION_* environment variables.
    """

    # Frequency analysis
    window_seconds: int = ANALYSIS_WINDOW_SECONDS
    min_requests_for_analysis: int = MIN_REQUESTS_FOR_ANALYSIS
    default_avg_request_interval: float = DEFAULT_AVG_REQUEST_INTERVAL
    suspicious_frequency_multiplier: float = SUSPICIOUS_FREQUENCY_MULTIPLIER
    high_rate_requests_per_minute: float = HIGH_RATE_REQUESTS_PER_MINUTE
    high_rate_max_interval: float = HIGH_RATE_MAX_INTERVAL
    burst_max_interval: float = BURST_MAX_INTERVAL
    baseline_min_requests_per_minute: float = BASELINE_MIN_REQUESTS_PER_MINUTE

    # User-agent analysis
    no_browser_requests_per_minute: float = NO_BROWSER_REQUESTS_PER_MINUTE
    suspicious_device_patterns: dict[str, dict[str, Any]] = field(
        default_factory=lambda: copy.deepcopy(SUSPICIOUS_DEVICE_PATTERNS)
    )

    # Referer analysis (disabled while empty)
    suspicious_referers: list[str] = field(default_factory=list)

    # Parameter analysis
    entropy_threshold: float = ENTROPY_THRESHOLD
    entropy_min_length: int = ENTROPY_MIN_LENGTH
    route_overrides: dict[str, list[str]] = field(
        default_factory=lambda: copy.deepcopy(ROUTE_PARAMETER_OVERRIDES)
    )

    # Batch processing
    claim_timeout_seconds: int = CLAIM_TIMEOUT_SECONDS

    def validate(self) -> list[str]:
        """Validate settings values. Returns list of errors."""
        errors = []

        if self.window_seconds <= 0:
            errors.append(f"window_seconds must be > 0, got {self.window_seconds}")
        if self.min_requests_for_analysis < 2:
            errors.append(
                f"min_requests_for_analysis must be >= 2, "
                f"got {self.min_requests_for_analysis}"
            )
        if self.default_avg_request_interval <= 0:
            errors.append(
                f"default_avg_request_interval must be > 0, "
                f"got {self.default_avg_request_interval}"
            )
        if not 0.0 < self.suspicious_frequency_multiplier <= 1.0:
            errors.append(
                f"suspicious_frequency_multiplier must be in (0, 1], "
                f"got {self.suspicious_frequency_multiplier}"
            )
        if self.entropy_threshold <= 0:
            errors.append(
                f"entropy_threshold must be > 0, got {self.entropy_threshold}"
            )
        if self.entropy_min_length < 0:
            errors.append(
                f"entropy_min_length must be >= 0, got {self.entropy_min_length}"
            )
        if self.claim_timeout_seconds <= 0:
            errors.append(
                f"claim_timeout_seconds must be > 0, got {self.claim_timeout_seconds}"
            )
        for os_name, pattern in self.suspicious_device_patterns.items():
            for key in ("versions", "devices", "max_requests_per_minute"):
                if key not in pattern:
                    errors.append(
                        f"suspicious_device_patterns.{os_name} is missing '{key}'"
                    )

        return errors

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "window_seconds": self.window_seconds,
            "min_requests_for_analysis": self.min_requests_for_analysis,
            "default_avg_request_interval": self.default_avg_request_interval,
            "suspicious_frequency_multiplier": self.suspicious_frequency_multiplier,
            "high_rate_requests_per_minute": self.high_rate_requests_per_minute,
            "high_rate_max_interval": self.high_rate_max_interval,
            "burst_max_interval": self.burst_max_interval,
            "baseline_min_requests_per_minute": self.baseline_min_requests_per_minute,
            "no_browser_requests_per_minute": self.no_browser_requests_per_minute,
            "suspicious_device_patterns": copy.deepcopy(
                self.suspicious_device_patterns
            ),
            "suspicious_referers": list(self.suspicious_referers),
            "entropy_threshold": self.entropy_threshold,
            "entropy_min_length": self.entropy_min_length,
            "route_overrides": copy.deepcopy(self.route_overrides),
            "claim_timeout_seconds": self.claim_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "BotDetectionSettings":
        """Create from configuration dictionary."""
        defaults = cls()
        return cls(
            window_seconds=int(config.get("window_seconds", defaults.window_seconds)),
            min_requests_for_analysis=int(
                config.get(
                    "min_requests_for_analysis", defaults.min_requests_for_analysis
                )
            ),
            default_avg_request_interval=float(
                config.get(
                    "default_avg_request_interval",
                    defaults.default_avg_request_interval,
                )
            ),
            suspicious_frequency_multiplier=float(
                config.get(
                    "suspicious_frequency_multiplier",
                    defaults.suspicious_frequency_multiplier,
                )
            ),
            high_rate_requests_per_minute=float(
                config.get(
                    "high_rate_requests_per_minute",
                    defaults.high_rate_requests_per_minute,
                )
            ),
            high_rate_max_interval=float(
                config.get("high_rate_max_interval", defaults.high_rate_max_interval)
            ),
            burst_max_interval=float(
                config.get("burst_max_interval", defaults.burst_max_interval)
            ),
            baseline_min_requests_per_minute=float(
                config.get(
                    "baseline_min_requests_per_minute",
                    defaults.baseline_min_requests_per_minute,
                )
            ),
            no_browser_requests_per_minute=float(
                config.get(
                    "no_browser_requests_per_minute",
                    defaults.no_browser_requests_per_minute,
                )
            ),
            suspicious_device_patterns={
                str(os_name).lower(): pattern
                for os_name, pattern in (
                    config.get(
                        "suspicious_device_patterns",
                        defaults.suspicious_device_patterns,
                    )
                    or {}
                ).items()
            },
            suspicious_referers=list(config.get("suspicious_referers") or []),
            entropy_threshold=float(
                config.get("entropy_threshold", defaults.entropy_threshold)
            ),
            entropy_min_length=int(
                config.get("entropy_min_length", defaults.entropy_min_length)
            ),
            route_overrides=config.get("route_overrides", defaults.route_overrides),
            claim_timeout_seconds=int(
                config.get("claim_timeout_seconds", defaults.claim_timeout_seconds)
            ),
        )

    @classmethod
    def from_env(cls) -> "BotDetectionSettings":
        """Create from environment variables."""
        return cls(
            window_seconds=_safe_int(
                "BOT_DETECTION_WINDOW_SECONDS", ANALYSIS_WINDOW_SECONDS
            ),
            min_requests_for_analysis=_safe_int(
                "BOT_DETECTION_MIN_REQUESTS", MIN_REQUESTS_FOR_ANALYSIS
            ),
            default_avg_request_interval=_safe_float(
                "BOT_DETECTION_DEFAULT_INTERVAL", DEFAULT_AVG_REQUEST_INTERVAL
            ),
            suspicious_frequency_multiplier=_safe_float(
                "BOT_DETECTION_FREQUENCY_MULTIPLIER", SUSPICIOUS_FREQUENCY_MULTIPLIER
            ),
            high_rate_requests_per_minute=_safe_float(
                "BOT_DETECTION_HIGH_RATE_RPM", HIGH_RATE_REQUESTS_PER_MINUTE
            ),
            high_rate_max_interval=_safe_float(
                "BOT_DETECTION_HIGH_RATE_MAX_INTERVAL", HIGH_RATE_MAX_INTERVAL
            ),
            burst_max_interval=_safe_float(
                "BOT_DETECTION_BURST_MAX_INTERVAL", BURST_MAX_INTERVAL
            ),
            baseline_min_requests_per_minute=_safe_float(
                "BOT_DETECTION_BASELINE_MIN_RPM", BASELINE_MIN_REQUESTS_PER_MINUTE
            ),
            no_browser_requests_per_minute=_safe_float(
                "BOT_DETECTION_NO_BROWSER_RPM", NO_BROWSER_REQUESTS_PER_MINUTE
            ),
            suspicious_referers=_safe_list("BOT_DETECTION_SUSPICIOUS_REFERERS", []),
            entropy_threshold=_safe_float(
                "BOT_DETECTION_ENTROPY_THRESHOLD", ENTROPY_THRESHOLD
            ),
            entropy_min_length=_safe_int(
                "BOT_DETECTION_ENTROPY_MIN_LENGTH", ENTROPY_MIN_LENGTH
            ),
            claim_timeout_seconds=_safe_int(
                "BOT_DETECTION_CLAIM_TIMEOUT", CLAIM_TIMEOUT_SECONDS
            ),
        )


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """Application settings for the SQLite backend and bot detection."""

    # Storage Backend Settings
    storage_backend: str = "sqlite"
    sqlite_db_path: str = "data/request-logs.db"

    # Static route manifest (path pattern -> declared validation fields)
    route_manifest_path: Optional[str] = None

    bot_detection: BotDetectionSettings = field(default_factory=BotDetectionSettings)

    def validate(self) -> list[str]:
        """Validate required settings are present. Returns list of errors."""
        errors = []

        if self.storage_backend != "sqlite":
            errors.append("Only SQLite backend is supported in this version")

        if not self.sqlite_db_path:
            errors.append("storage.sqlite_db_path is required")

        errors.extend(self.bot_detection.validate())

        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Settings":
        """Create Settings from configuration dictionary (e.g., from YAML)."""
        storage = config.get("storage", {})
        routes = config.get("routes", {})
        bd = config.get("bot_detection", {})

        return cls(
            storage_backend=storage.get("backend", "sqlite"),
            sqlite_db_path=storage.get("sqlite_db_path", "data/request-logs.db"),
            route_manifest_path=routes.get("manifest_path"),
            bot_detection=BotDetectionSettings.from_dict(bd),
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        return cls(
            storage_backend="sqlite",
            sqlite_db_path=os.environ.get("SQLITE_DB_PATH", "data/request-logs.db"),
            route_manifest_path=os.environ.get("BOT_DETECTION_ROUTE_MANIFEST"),
            bot_detection=BotDetectionSettings.from_env(),
        )


# Default config file path
DEFAULT_CONFIG_PATH = Path(os.environ.get("BOT_DETECTION_CONFIG", "config.yaml"))


@lru_cache
def get_settings(config_path: Optional[str] = None) -> Settings:
    """
    Get cached settings instance.

    Loads from a YAML config file if available, otherwise from env vars.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Settings instance
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if path.exists():
        try:
            from .config_loader import load_yaml_file

            config = load_yaml_file(path)
            return Settings.from_dict(config)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Falling back to environment variables")

    return Settings.from_env()


def clear_settings_cache() -> None:
    """Clear the cached settings (useful for testing)."""
    get_settings.cache_clear()
