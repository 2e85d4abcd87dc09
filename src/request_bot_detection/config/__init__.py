"""Configuration module."""

from .config_loader import load_route_manifest, load_yaml_file
from .constants import (
    ANALYSIS_WINDOW_SECONDS,
    COMMON_PARAMETERS,
    MIN_REQUESTS_FOR_ANALYSIS,
    ROUTE_PARAMETER_OVERRIDES,
    SUSPICIOUS_DEVICE_PATTERNS,
)
from .settings import (
    BotDetectionSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Detection defaults
    "ANALYSIS_WINDOW_SECONDS",
    "MIN_REQUESTS_FOR_ANALYSIS",
    "COMMON_PARAMETERS",
    "ROUTE_PARAMETER_OVERRIDES",
    "SUSPICIOUS_DEVICE_PATTERNS",
    # Settings
    "Settings",
    "BotDetectionSettings",
    "get_settings",
    "clear_settings_cache",
    # Config loading
    "load_yaml_file",
    "load_route_manifest",
]
