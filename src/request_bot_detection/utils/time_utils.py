"""
Timestamp helpers.

All timestamps handled by the detector are timezone-aware UTC datetimes;
naive values coming from collaborators are interpreted as UTC.
"""

import re
from datetime import datetime, timezone
from typing import Optional

# Epoch seconds, milliseconds or nanoseconds written as text. Eight-digit
# strings are left to the ISO parser (compact dates such as 20240601).
_EPOCH_STRING = re.compile(r"\d{9,}(\.\d+)?")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Examples:
        >>> ensure_utc(datetime(2024, 1, 1, 12, 0))
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse an ISO8601 string, epoch number (or numeric string) or datetime
    into aware UTC.

    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str) and _EPOCH_STRING.fullmatch(value.strip()):
        value = float(value)
    if isinstance(value, (int, float)):
        if value > 1e15:  # Nanoseconds since epoch
            value = value / 1e9
        elif value > 1e12:  # Milliseconds since epoch
            value = value / 1e3
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None
