"""
SQLite request log store.

Stores logged requests with their detection outputs and per-IP source
metadata. Write paths that must be atomic run inside explicit
``BEGIN IMMEDIATE`` transactions, which also serialize concurrent writers
across processes sharing the database file.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator, Optional

from ..config.constants import (
    TABLE_IP_ADDRESS_METADATA,
    TABLE_LOGGED_REQUESTS,
    UNKNOWN_COUNTRY_CODE,
)
from ..utils.time_utils import parse_timestamp
from .base import QueryError, SchemaError, StorageBackend, StorageConnectionError

logger = logging.getLogger(__name__)


# =============================================================================
# SQLite Schema Definitions
# =============================================================================

LOGGED_REQUESTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS logged_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ip_address TEXT,
    user_agent TEXT,
    url TEXT,
    referer_url TEXT,
    method TEXT NOT NULL DEFAULT 'GET',
    status_code INTEGER,
    created_at TEXT NOT NULL,
    user_id INTEGER,
    is_bot_by_frequency INTEGER NOT NULL DEFAULT 0,
    is_bot_by_user_agent INTEGER NOT NULL DEFAULT 0,
    is_bot_by_parameters INTEGER NOT NULL DEFAULT 0,
    bot_detection_metadata TEXT,  -- JSON object stored as string
    bot_analyzed_at TEXT,
    bot_claim_token TEXT,  -- Batch run currently processing the row
    bot_claimed_at TEXT
)
"""

IP_ADDRESS_METADATA_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS ip_address_metadata (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ip_address TEXT NOT NULL UNIQUE,
    country_code TEXT NOT NULL DEFAULT '{UNKNOWN_COUNTRY_CODE}',
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL,
    total_requests INTEGER NOT NULL DEFAULT 1,
    avg_request_interval REAL,
    last_bot_analysis_at TEXT
)
"""

INDEX_DEFINITIONS = [
    "CREATE INDEX IF NOT EXISTS idx_requests_ip_created "
    "ON logged_requests(ip_address, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_requests_analyzed_created "
    "ON logged_requests(bot_analyzed_at, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_requests_created ON logged_requests(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_requests_claim ON logged_requests(bot_claim_token)",
    "CREATE INDEX IF NOT EXISTS idx_ip_metadata_analysis "
    "ON ip_address_metadata(last_bot_analysis_at)",
]

# Valid table names in our schema
VALID_TABLES = frozenset([TABLE_LOGGED_REQUESTS, TABLE_IP_ADDRESS_METADATA])

_REQUEST_BOOL_COLUMNS = (
    "is_bot_by_frequency",
    "is_bot_by_user_agent",
    "is_bot_by_parameters",
)


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _to_sqlite_timestamp(value: Any) -> Optional[str]:
    """
    Convert a datetime/ISO string/epoch number to a UTC ISO8601 string.

    Microseconds are always written so text comparison matches time order.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.isoformat(timespec="microseconds")


def _to_sqlite_bool(value: Any) -> int:
    """Convert boolean to INTEGER (0/1) for SQLite."""
    return 1 if value else 0


def _to_sqlite_json(value: Any) -> Optional[str]:
    """Convert list/dict to JSON string for SQLite."""
    if value is None:
        return None
    if isinstance(value, str):
        return value  # Assume already JSON
    return json.dumps(value, default=str)


def from_sqlite_json(value: Any) -> Optional[list | dict]:
    """Convert JSON string to Python list/dict."""
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None


def _request_from_row(row: dict) -> dict:
    """Convert a logged_requests row to Python types."""
    for column in _REQUEST_BOOL_COLUMNS:
        row[column] = bool(row.get(column))
    row["bot_detection_metadata"] = from_sqlite_json(row.get("bot_detection_metadata"))
    return row


def _validate_table(table_name: str) -> str:
    """Validate a table name against the schema to prevent SQL injection."""
    if table_name not in VALID_TABLES:
        raise ValueError(
            f"Invalid table: '{table_name}'. Must be one of: {sorted(VALID_TABLES)}"
        )
    return table_name


# =============================================================================
# SQLite Backend Implementation
# =============================================================================


class SQLiteBackend(StorageBackend):
    """
    SQLite storage backend.

    A single connection is shared by all threads of the process; access to
    it is serialized with a re-entrant lock so a transaction opened by one
    thread is never interleaved with statements from another.
    """

    def __init__(
        self,
        db_path: Path | str = "data/request-logs.db",
        *,
        timeout: float = 30.0,
    ):
        """
        Initialize SQLite backend.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a database lock held by another process
        """
        self.db_path = Path(db_path)
        self._timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._tx_depth = 0

        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        """Return backend type identifier."""
        return "sqlite"

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                # Autocommit mode: transactions are opened explicitly
                self._connection = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=self._timeout,
                    isolation_level=None,
                )
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA foreign_keys = ON")
                logger.debug(f"Connected to SQLite database: {self.db_path}")
            except sqlite3.Error as e:
                raise StorageConnectionError(
                    f"Failed to connect to SQLite database: {e}"
                ) from e
        return self._connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for a database cursor; errors become QueryError."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
            except sqlite3.Error as e:
                raise QueryError(f"SQLite query failed: {e}") from e
            finally:
                cursor.close()

    @contextmanager
    def transaction(self) -> Iterator["SQLiteBackend"]:
        """
        Run the block in one write transaction.

        Nested calls join the outermost transaction.
        """
        with self._lock:
            conn = self._get_connection()
            outermost = self._tx_depth == 0

            if outermost:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as e:
                    raise QueryError(f"Failed to begin transaction: {e}") from e

            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self._tx_depth -= 1
                if outermost:
                    try:
                        conn.execute("ROLLBACK")
                    except sqlite3.Error as e:
                        logger.error(f"Rollback failed: {e}")
                raise
            else:
                self._tx_depth -= 1
                if outermost:
                    try:
                        conn.execute("COMMIT")
                    except sqlite3.Error as e:
                        try:
                            conn.execute("ROLLBACK")
                        except sqlite3.Error as rollback_error:
                            logger.error(f"Rollback failed: {rollback_error}")
                        raise QueryError(f"Failed to commit transaction: {e}") from e

    def initialize(self) -> None:
        """Create both tables and their indexes (IF NOT EXISTS)."""
        logger.info(f"Initializing request log store: {self.db_path}")

        with self.transaction():
            with self._cursor() as cursor:
                cursor.execute(LOGGED_REQUESTS_SCHEMA)
                cursor.execute(IP_ADDRESS_METADATA_SCHEMA)
                for index_sql in INDEX_DEFINITIONS:
                    cursor.execute(index_sql)

        logger.info("Request log store ready")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.debug("SQLite connection closed")

    def query(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> list[dict]:
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            return [dict(row) for row in cursor.fetchall()]

    def execute(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> int:
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            return cursor.rowcount

    def table_exists(self, table_name: str) -> bool:
        rows = self.query(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name",
            {"name": table_name},
        )
        return bool(rows)

    def get_table_row_count(self, table_name: str) -> int:
        _validate_table(table_name)
        if not self.table_exists(table_name):
            raise SchemaError(f"Table '{table_name}' has not been created")

        rows = self.query(f"SELECT COUNT(*) AS row_count FROM {table_name}")
        return rows[0]["row_count"]

    # =========================================================================
    # Logged requests
    # =========================================================================

    def insert_logged_requests(self, records: list[dict]) -> list[int]:
        """
        Insert request records into logged_requests.

        Args:
            records: Request records from the logging collaborator

        Returns:
            IDs of inserted rows, in input order
        """
        if not records:
            return []

        sql = """
            INSERT INTO logged_requests (
                ip_address, user_agent, url, referer_url, method,
                status_code, created_at, user_id
            ) VALUES (
                :ip_address, :user_agent, :url, :referer_url, :method,
                :status_code, :created_at, :user_id
            )
        """

        ids = []
        with self.transaction():
            with self._cursor() as cursor:
                for record in records:
                    created_at = _to_sqlite_timestamp(record.get("created_at"))
                    if created_at is None:
                        raise ValueError(f"Record has no valid created_at: {record!r}")

                    cursor.execute(
                        sql,
                        {
                            "ip_address": record.get("ip_address")
                            or record.get("source_ip"),
                            "user_agent": record.get("user_agent")
                            if record.get("user_agent") is not None
                            else record.get("user_agent_string"),
                            "url": record.get("url"),
                            "referer_url": record.get("referer_url"),
                            "method": record.get("method") or "GET",
                            "status_code": record.get("status_code"),
                            "created_at": created_at,
                            "user_id": record.get("user_id"),
                        },
                    )
                    ids.append(cursor.lastrowid)

        return ids

    def get_logged_request(self, request_id: int) -> Optional[dict]:
        rows = self.query(
            "SELECT * FROM logged_requests WHERE id = :id", {"id": request_id}
        )
        return _request_from_row(rows[0]) if rows else None

    def get_requests_in_window(
        self,
        ip_address: str,
        start: datetime,
        end: datetime,
    ) -> list[dict]:
        rows = self.query(
            """
            SELECT * FROM logged_requests
            WHERE ip_address = :ip_address
              AND created_at >= :start
              AND created_at <= :end
            ORDER BY created_at ASC, id ASC
            """,
            {
                "ip_address": ip_address,
                "start": _to_sqlite_timestamp(start),
                "end": _to_sqlite_timestamp(end),
            },
        )
        return [_request_from_row(row) for row in rows]

    def save_analysis(
        self,
        request_id: int,
        flags: dict[str, bool],
        metadata: dict[str, Any],
        analyzed_at: datetime,
    ) -> int:
        return self.execute(
            """
            UPDATE logged_requests SET
                is_bot_by_frequency = :is_bot_by_frequency,
                is_bot_by_user_agent = :is_bot_by_user_agent,
                is_bot_by_parameters = :is_bot_by_parameters,
                bot_detection_metadata = :metadata,
                bot_analyzed_at = :analyzed_at,
                bot_claim_token = NULL,
                bot_claimed_at = NULL
            WHERE id = :id
            """,
            {
                "id": request_id,
                "is_bot_by_frequency": _to_sqlite_bool(flags.get("is_bot_by_frequency")),
                "is_bot_by_user_agent": _to_sqlite_bool(
                    flags.get("is_bot_by_user_agent")
                ),
                "is_bot_by_parameters": _to_sqlite_bool(
                    flags.get("is_bot_by_parameters")
                ),
                "metadata": _to_sqlite_json(metadata),
                "analyzed_at": _to_sqlite_timestamp(analyzed_at),
            },
        )

    def flag_requests(
        self,
        request_ids: list[int],
        metadata: dict[str, Any],
        flagged_at: datetime,
    ) -> int:
        if not request_ids:
            return 0

        placeholders, params = _in_clause("id", request_ids)
        params["metadata"] = _to_sqlite_json(metadata)
        params["flagged_at"] = _to_sqlite_timestamp(flagged_at)
        return self.execute(
            f"""
            UPDATE logged_requests SET
                is_bot_by_user_agent = 1,
                bot_detection_metadata = :metadata,
                bot_analyzed_at = COALESCE(bot_analyzed_at, :flagged_at)
            WHERE id IN ({placeholders})
            """,
            params,
        )

    def claim_unanalyzed_requests(
        self,
        limit: int,
        claim_token: str,
        now: datetime,
        claim_timeout_seconds: int,
    ) -> list[dict]:
        if limit <= 0:
            return []

        candidates = """
            SELECT id FROM logged_requests
            WHERE bot_analyzed_at IS NULL
              AND (bot_claim_token IS NULL OR bot_claimed_at < :expired_before)
            ORDER BY created_at DESC, id DESC
            LIMIT :limit
        """
        return self._claim(candidates, {"limit": limit}, claim_token, now, claim_timeout_seconds)

    def claim_requests_from_stale_sources(
        self,
        cutoff: datetime,
        limit: int,
        claim_token: str,
        now: datetime,
        claim_timeout_seconds: int,
    ) -> list[dict]:
        if limit <= 0:
            return []

        candidates = """
            SELECT r.id FROM logged_requests r
            WHERE r.ip_address IN (
                SELECT m.ip_address FROM ip_address_metadata m
                WHERE m.last_bot_analysis_at IS NULL
                   OR m.last_bot_analysis_at < :cutoff
            )
              AND r.created_at >= :cutoff
              AND (r.bot_claim_token IS NULL OR r.bot_claimed_at < :expired_before)
            ORDER BY r.created_at DESC, r.id DESC
            LIMIT :limit
        """
        return self._claim(
            candidates,
            {"limit": limit, "cutoff": _to_sqlite_timestamp(cutoff)},
            claim_token,
            now,
            claim_timeout_seconds,
        )

    def _claim(
        self,
        candidates_sql: str,
        params: dict,
        claim_token: str,
        now: datetime,
        claim_timeout_seconds: int,
    ) -> list[dict]:
        """Claim the candidate rows under claim_token and return them, newest first."""
        params = {
            **params,
            "token": claim_token,
            "now": _to_sqlite_timestamp(now),
            "expired_before": _to_sqlite_timestamp(
                now - timedelta(seconds=claim_timeout_seconds)
            ),
        }

        with self.transaction():
            claimed = self.execute(
                f"""
                UPDATE logged_requests
                SET bot_claim_token = :token, bot_claimed_at = :now
                WHERE id IN ({candidates_sql})
                """,
                params,
            )
            rows = self.query(
                """
                SELECT * FROM logged_requests
                WHERE bot_claim_token = :token
                ORDER BY created_at DESC, id DESC
                """,
                {"token": claim_token},
            )

        logger.debug(f"Claimed {claimed} requests under {claim_token}")
        return [_request_from_row(row) for row in rows]

    def release_claims(self, claim_token: str) -> int:
        return self.execute(
            """
            UPDATE logged_requests
            SET bot_claim_token = NULL, bot_claimed_at = NULL
            WHERE bot_claim_token = :token
            """,
            {"token": claim_token},
        )

    # =========================================================================
    # Source metadata
    # =========================================================================

    def get_source_metadata(self, ip_address: str) -> Optional[dict]:
        rows = self.query(
            "SELECT * FROM ip_address_metadata WHERE ip_address = :ip_address",
            {"ip_address": ip_address},
        )
        return rows[0] if rows else None

    def save_source_metadata(self, metadata: dict[str, Any]) -> None:
        self.execute(
            """
            INSERT INTO ip_address_metadata (
                ip_address, country_code, first_seen_at, last_seen_at,
                total_requests, avg_request_interval, last_bot_analysis_at
            ) VALUES (
                :ip_address, :country_code, :first_seen_at, :last_seen_at,
                :total_requests, :avg_request_interval, :last_bot_analysis_at
            )
            ON CONFLICT(ip_address) DO UPDATE SET
                country_code = excluded.country_code,
                first_seen_at = excluded.first_seen_at,
                last_seen_at = excluded.last_seen_at,
                total_requests = excluded.total_requests,
                avg_request_interval = excluded.avg_request_interval,
                last_bot_analysis_at = excluded.last_bot_analysis_at
            """,
            {
                "ip_address": metadata["ip_address"],
                "country_code": metadata.get("country_code") or UNKNOWN_COUNTRY_CODE,
                "first_seen_at": _to_sqlite_timestamp(metadata.get("first_seen_at")),
                "last_seen_at": _to_sqlite_timestamp(metadata.get("last_seen_at")),
                "total_requests": metadata.get("total_requests", 1),
                "avg_request_interval": metadata.get("avg_request_interval"),
                "last_bot_analysis_at": _to_sqlite_timestamp(
                    metadata.get("last_bot_analysis_at")
                ),
            },
        )

    def mark_sources_analyzed(
        self,
        ip_addresses: list[str],
        analyzed_at: datetime,
    ) -> int:
        if not ip_addresses:
            return 0

        placeholders, params = _in_clause("ip", ip_addresses)
        params["analyzed_at"] = _to_sqlite_timestamp(analyzed_at)
        return self.execute(
            f"""
            UPDATE ip_address_metadata
            SET last_bot_analysis_at = :analyzed_at
            WHERE ip_address IN ({placeholders})
            """,
            params,
        )

    def health_check(self) -> dict:
        """Extended health check with SQLite-specific info."""
        base_check = super().health_check()

        if base_check["healthy"]:
            db_size = self.db_path.stat().st_size if self.db_path.exists() else 0
            base_check["details"] = {
                "db_path": str(self.db_path),
                "db_size_bytes": db_size,
                "unanalyzed_requests": self.count_unanalyzed_requests(),
            }

        return base_check


def _in_clause(prefix: str, values: list) -> tuple[str, dict]:
    """
    Build named placeholders for an IN (...) clause.

    Examples:
        >>> _in_clause("id", [4, 7])
        (':id_0, :id_1', {'id_0': 4, 'id_1': 7})
    """
    params = {f"{prefix}_{i}": value for i, value in enumerate(values)}
    placeholders = ", ".join(f":{name}" for name in params)
    return placeholders, params
