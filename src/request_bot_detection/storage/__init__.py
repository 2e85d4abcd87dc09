"""
Persistence for logged requests and per-IP source metadata.

    from request_bot_detection.storage import get_backend

    with get_backend("sqlite", db_path="data/request-logs.db") as backend:
        backend.initialize()
        row = backend.get_logged_request(42)
"""

from .base import (
    QueryError,
    SchemaError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
)
from .factory import SUPPORTED_BACKENDS, get_backend

__all__ = [
    "StorageBackend",
    "StorageError",
    "StorageConnectionError",
    "QueryError",
    "SchemaError",
    "SUPPORTED_BACKENDS",
    "get_backend",
]
