"""
Storage interface used by the bot detection engine.

A backend holds two tables: the logged requests (with their detection
outputs) and one metadata row per source IP.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Optional


class StorageError(Exception):
    """Base exception for storage backend errors."""


class StorageConnectionError(StorageError):
    """The database could not be opened."""


class QueryError(StorageError):
    """A statement failed to execute."""


class SchemaError(StorageError):
    """A table is missing or does not have the expected shape."""


class StorageBackend(ABC):
    """Request log store: logged requests plus per-IP source metadata."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Identifier such as 'sqlite'."""

    @abstractmethod
    def initialize(self) -> None:
        """Create tables and indexes. Idempotent."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Open a write transaction.

        Statements issued inside the block commit together or not at all.
        Writers are serialized for the duration of the block. Nested blocks
        join the outer transaction.

        Raises:
            StorageError: If the transaction cannot be started or committed.
        """

    @abstractmethod
    def query(self, sql: str, params: Optional[dict] = None) -> list[dict]:
        """Run a SELECT with :name placeholders; one dict per row."""

    @abstractmethod
    def execute(self, sql: str, params: Optional[dict] = None) -> int:
        """Run a write statement; returns the affected row count."""

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        ...

    @abstractmethod
    def get_table_row_count(self, table_name: str) -> int:
        """
        Raises:
            ValueError: If the table is not one of the request log tables
            SchemaError: If the table has not been created yet
        """

    # =========================================================================
    # Logged requests
    # =========================================================================

    @abstractmethod
    def insert_logged_requests(self, records: list[dict]) -> list[int]:
        """
        Insert request records from the logging collaborator.

        Args:
            records: Dicts with ip_address (or source_ip), created_at,
                user_agent, url, referer_url, method, status_code, user_id

        Returns:
            IDs of the inserted rows, in input order.
        """

    @abstractmethod
    def get_logged_request(self, request_id: int) -> Optional[dict]:
        """Fetch one request row, or None if it doesn't exist."""

    @abstractmethod
    def get_requests_in_window(
        self,
        ip_address: str,
        start: datetime,
        end: datetime,
    ) -> list[dict]:
        """
        Requests from one IP with start <= created_at <= end, oldest first.
        """

    @abstractmethod
    def save_analysis(
        self,
        request_id: int,
        flags: dict[str, bool],
        metadata: dict[str, Any],
        analyzed_at: datetime,
    ) -> int:
        """
        Write the detection outputs of one request in a single statement.

        Also releases any batch claim held on the row.

        Returns:
            Number of rows updated (0 if the request no longer exists).
        """

    @abstractmethod
    def flag_requests(
        self,
        request_ids: list[int],
        metadata: dict[str, Any],
        flagged_at: datetime,
    ) -> int:
        """
        Mark requests as bots by hand.

        The rows are stamped analyzed at ``flagged_at`` so they leave the
        backlog. Returns number of rows updated.
        """

    @abstractmethod
    def claim_unanalyzed_requests(
        self,
        limit: int,
        claim_token: str,
        now: datetime,
        claim_timeout_seconds: int,
    ) -> list[dict]:
        """
        Claim up to ``limit`` unanalyzed requests, newest first.

        Rows claimed by another run less than claim_timeout_seconds ago
        are skipped.
        """

    @abstractmethod
    def claim_requests_from_stale_sources(
        self,
        cutoff: datetime,
        limit: int,
        claim_token: str,
        now: datetime,
        claim_timeout_seconds: int,
    ) -> list[dict]:
        """
        Claim up to ``limit`` requests with created_at >= cutoff whose
        source IP was never bot-analyzed or last analyzed before cutoff,
        newest first.
        """

    @abstractmethod
    def release_claims(self, claim_token: str) -> int:
        """Release rows still claimed under ``claim_token``."""

    # =========================================================================
    # Source metadata
    # =========================================================================

    @abstractmethod
    def get_source_metadata(self, ip_address: str) -> Optional[dict]:
        """Fetch the metadata row for an IP, or None."""

    @abstractmethod
    def save_source_metadata(self, metadata: dict[str, Any]) -> None:
        """Insert or update the metadata row keyed by ip_address."""

    @abstractmethod
    def mark_sources_analyzed(
        self,
        ip_addresses: list[str],
        analyzed_at: datetime,
    ) -> int:
        """Set last_bot_analysis_at on the given IPs. Returns rows updated."""

    def count_unanalyzed_requests(self) -> int:
        """Size of the backlog (requests never analyzed)."""
        rows = self.query(
            "SELECT COUNT(*) AS backlog FROM logged_requests "
            "WHERE bot_analyzed_at IS NULL"
        )
        return rows[0]["backlog"] if rows else 0

    def health_check(self) -> dict:
        """
        Probe the store with a trivial query.

        Returns:
            {"healthy": bool, "backend_type": str, "message": str, "details": dict}
        """
        status = {"backend_type": self.backend_type, "details": {}}
        try:
            self.query("SELECT 1 AS ok")
        except StorageError as e:
            status.update(
                healthy=False,
                message=f"Health check failed: {e}",
                details={"error": str(e)},
            )
            return status

        status.update(healthy=True, message="Backend is operational")
        return status

    def __enter__(self) -> "StorageBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
