"""
Request record loading.

Reads request records exported by the logging collaborator from CSV,
JSON array or NDJSON files (optionally gzip-compressed) with pandas, and
normalizes them into the input records accepted by
``StorageBackend.insert_logged_requests``.
"""

import logging
import math
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from ..utils.time_utils import parse_timestamp
from .exceptions import ParseError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "json", "ndjson")

_FORMAT_BY_SUFFIX = {
    ".csv": "csv",
    ".json": "json",
    ".ndjson": "ndjson",
    ".jsonl": "ndjson",
}

# Input aliases -> stored column names
_COLUMN_ALIASES = {
    "source_ip": "ip_address",
    "user_agent_string": "user_agent",
    "referer": "referer_url",
}

REQUIRED_FIELDS = ("ip_address", "created_at")
OPTIONAL_FIELDS = ("user_agent", "url", "referer_url", "method", "status_code", "user_id")


def detect_format(file_path: Union[str, Path]) -> str:
    """
    Detect the file format from the file name.

    Examples:
        >>> detect_format("requests.csv.gz")
        'csv'
        >>> detect_format("requests.jsonl")
        'ndjson'

    Raises:
        ParseError: If the suffix is not recognized
    """
    path = Path(file_path)
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]

    if suffixes and suffixes[-1] in _FORMAT_BY_SUFFIX:
        return _FORMAT_BY_SUFFIX[suffixes[-1]]

    raise ParseError(
        f"Cannot detect format; use one of {', '.join(SUPPORTED_FORMATS)}",
        file_path=str(file_path),
    )


def read_request_frame(
    file_path: Union[str, Path],
    file_format: Optional[str] = None,
) -> pd.DataFrame:
    """
    Read a request file into a DataFrame without type coercion.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ParseError: If the file cannot be parsed
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    file_format = file_format or detect_format(path)
    if file_format not in SUPPORTED_FORMATS:
        raise ParseError(f"Unsupported format: {file_format}", file_path=str(path))

    try:
        if file_format == "csv":
            df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
        else:
            df = pd.read_json(
                path,
                orient="records",
                lines=file_format == "ndjson",
                dtype=False,
                convert_dates=False,
            )
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise ParseError(f"Failed to parse {file_format} file: {e}", str(path)) from e

    logger.debug(f"Read {len(df)} rows from {path} ({file_format})")
    return df


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _optional_int(value: Any, field: str, row: int) -> Optional[int]:
    if _is_missing(value) or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Expected an integer", field=field, value=value, row=row)
    if not number.is_integer():
        raise ValidationError("Expected an integer", field=field, value=value, row=row)
    return int(number)


def _optional_str(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    return str(value)


def normalize_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """
    Convert a request DataFrame to insertable records.

    Raises:
        ValidationError: If a required field is missing or a value is invalid
    """
    df = df.rename(columns={k: v for k, v in _COLUMN_ALIASES.items() if k in df.columns})

    missing = [name for name in REQUIRED_FIELDS if name not in df.columns]
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(missing)}")

    records = []
    for row, raw in enumerate(df.to_dict(orient="records")):
        ip_address = _optional_str(raw.get("ip_address"))
        if not ip_address:
            raise ValidationError("Missing source IP", field="ip_address", row=row)

        created_raw = raw.get("created_at")
        created_at = None if _is_missing(created_raw) else parse_timestamp(created_raw)
        if created_at is None:
            raise ValidationError(
                "Invalid timestamp", field="created_at", value=created_raw, row=row
            )

        records.append(
            {
                "ip_address": ip_address,
                "created_at": created_at,
                "user_agent": _optional_str(raw.get("user_agent")),
                "url": _optional_str(raw.get("url")),
                "referer_url": _optional_str(raw.get("referer_url")),
                "method": (_optional_str(raw.get("method")) or "GET").upper(),
                "status_code": _optional_int(raw.get("status_code"), "status_code", row),
                "user_id": _optional_int(raw.get("user_id"), "user_id", row),
            }
        )

    return records


def load_request_records(
    file_path: Union[str, Path],
    file_format: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Load and normalize request records from a file.

    Args:
        file_path: CSV, JSON array or NDJSON file (may be .gz)
        file_format: Force a format instead of detecting it

    Returns:
        Records ready for StorageBackend.insert_logged_requests
    """
    df = read_request_frame(file_path, file_format)
    records = normalize_records(df)
    logger.info(f"Loaded {len(records)} request records from {file_path}")
    return records
