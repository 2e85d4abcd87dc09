"""Utility functions for request bot detection."""

from .time_utils import ensure_utc, parse_timestamp, utc_now
from .url_utils import normalize_route_path, split_request_url

__all__ = [
    # Time utilities
    "utc_now",
    "ensure_utc",
    "parse_timestamp",
    # URL utilities
    "normalize_route_path",
    "split_request_url",
]
