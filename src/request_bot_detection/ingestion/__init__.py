"""Loading of logged request records from exported files."""

from .exceptions import IngestionError, ParseError, ValidationError
from .request_loader import (
    SUPPORTED_FORMATS,
    detect_format,
    load_request_records,
    normalize_records,
    read_request_frame,
)

__all__ = [
    "SUPPORTED_FORMATS",
    "detect_format",
    "read_request_frame",
    "normalize_records",
    "load_request_records",
    "IngestionError",
    "ParseError",
    "ValidationError",
]
