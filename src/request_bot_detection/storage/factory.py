"""
Backend selection for the request log store.
"""

import logging
from pathlib import Path
from typing import Optional

from ..config.settings import Settings, get_settings
from .base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("sqlite",)


def get_backend(
    backend_type: Optional[str] = None,
    settings: Optional[Settings] = None,
    **options,
) -> StorageBackend:
    """
    Create the request log store.

    Missing arguments are filled from ``settings`` (or the cached
    application settings): the backend type from ``storage_backend`` and,
    for SQLite, ``db_path`` from ``sqlite_db_path``.

    Args:
        backend_type: 'sqlite'
        settings: Settings to read defaults from
        **options: Constructor options (SQLite: db_path, timeout)

    Returns:
        An uninitialized backend; call initialize() before use

    Raises:
        StorageError: If the type is unknown or the backend cannot be created
    """
    if backend_type is None:
        settings = settings or get_settings()
        backend_type = settings.storage_backend
    backend_type = backend_type.lower()

    if backend_type not in SUPPORTED_BACKENDS:
        raise StorageError(
            f"Unknown storage backend: '{backend_type}'. "
            f"Available backends: {', '.join(SUPPORTED_BACKENDS)}"
        )

    from .sqlite_backend import SQLiteBackend

    if "db_path" not in options:
        settings = settings or get_settings()
        options["db_path"] = Path(settings.sqlite_db_path)

    try:
        backend = SQLiteBackend(**options)
    except (OSError, TypeError, ValueError) as e:
        raise StorageError(f"Failed to create {backend_type} backend: {e}") from e

    logger.info(f"Created {backend_type} request log store at {backend.db_path}")
    return backend
