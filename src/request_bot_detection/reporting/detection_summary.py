"""
Detection summary report.

Loads logged requests with their detection outputs into a pandas
DataFrame and summarizes them: flag counts, bot ratio, skipped and
manually flagged requests, top bot sources and a per-day breakdown.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from ..storage import StorageBackend, get_backend
from ..storage.sqlite_backend import from_sqlite_json
from ..utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

FLAG_COLUMNS = ["is_bot_by_frequency", "is_bot_by_user_agent", "is_bot_by_parameters"]

_REQUEST_COLUMNS = [
    "id",
    "ip_address",
    "created_at",
    "user_id",
    *FLAG_COLUMNS,
    "bot_detection_metadata",
    "bot_analyzed_at",
]


def _time_bound(name: str, value: Any) -> str:
    """Stored-format timestamp for a query bound."""
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid {name} bound: {value!r}")
    return parsed.isoformat(timespec="microseconds")


@dataclass
class DetectionSummary:
    """Aggregated detection results over a time range."""

    total_requests: int = 0
    analyzed_requests: int = 0
    unanalyzed_requests: int = 0
    bot_requests: int = 0
    by_frequency: int = 0
    by_user_agent: int = 0
    by_parameters: int = 0
    skipped_authenticated: int = 0
    manually_flagged: int = 0
    top_sources: pd.DataFrame = field(default_factory=pd.DataFrame)
    daily: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def bot_ratio(self) -> float:
        """Share of analyzed requests classified as bots."""
        if self.analyzed_requests == 0:
            return 0.0
        return self.bot_requests / self.analyzed_requests

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (DataFrames become lists of records)."""
        return {
            "total_requests": self.total_requests,
            "analyzed_requests": self.analyzed_requests,
            "unanalyzed_requests": self.unanalyzed_requests,
            "bot_requests": self.bot_requests,
            "bot_ratio": round(self.bot_ratio, 4),
            "by_frequency": self.by_frequency,
            "by_user_agent": self.by_user_agent,
            "by_parameters": self.by_parameters,
            "skipped_authenticated": self.skipped_authenticated,
            "manually_flagged": self.manually_flagged,
            "top_sources": self.top_sources.to_dict(orient="records"),
            "daily": self.daily.to_dict(orient="records"),
        }


class DetectionSummaryReport:
    """
    Builds detection summaries from the logged_requests table.

    Works on a caller-provided backend or creates (and owns) its own.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        db_path: Optional[Path] = None,
        top_n: int = 10,
    ):
        """
        Initialize the report.

        Args:
            backend: Pre-initialized StorageBackend (optional)
            db_path: Path to SQLite database, used when backend is None
            top_n: Number of top bot sources to include
        """
        if backend:
            self._backend = backend
            self._owns_backend = False
        else:
            kwargs = {"db_path": db_path} if db_path else {}
            self._backend = get_backend("sqlite", **kwargs)
            self._owns_backend = True

        self.top_n = top_n
        self._initialized = False

    def initialize(self) -> None:
        """Initialize the backend."""
        if not self._initialized:
            self._backend.initialize()
            self._initialized = True

    def close(self) -> None:
        """Close the backend connection."""
        if self._owns_backend:
            self._backend.close()

    def __enter__(self) -> "DetectionSummaryReport":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def load_requests(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """
        Load requests created in [start, end] as a DataFrame.

        Flags are booleans, metadata is decoded, timestamps are UTC.
        """
        self.initialize()

        conditions = []
        params: dict[str, Any] = {}
        if start is not None:
            conditions.append("created_at >= :start")
            params["start"] = _time_bound("start", start)
        if end is not None:
            conditions.append("created_at <= :end")
            params["end"] = _time_bound("end", end)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self._backend.query(
            f"SELECT {', '.join(_REQUEST_COLUMNS)} FROM logged_requests {where}",
            params,
        )

        df = pd.DataFrame(rows, columns=_REQUEST_COLUMNS)
        if df.empty:
            return df

        for column in FLAG_COLUMNS:
            df[column] = df[column].fillna(0).astype(bool)
        df["created_at"] = pd.to_datetime(df["created_at"], utc=True, format="ISO8601")
        df["bot_analyzed_at"] = pd.to_datetime(
            df["bot_analyzed_at"], utc=True, format="ISO8601"
        )
        df["bot_detection_metadata"] = df["bot_detection_metadata"].map(
            from_sqlite_json
        )
        return df

    def summarize(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> DetectionSummary:
        """Summarize detection results for requests created in [start, end]."""
        df = self.load_requests(start, end)
        summary = summarize_frame(df, top_n=self.top_n)

        logger.info(
            f"Detection summary: {summary.total_requests} requests, "
            f"{summary.bot_requests} bots ({summary.bot_ratio:.1%} of analyzed)"
        )
        return summary


def summarize_frame(df: pd.DataFrame, top_n: int = 10) -> DetectionSummary:
    """
    Summarize a DataFrame produced by DetectionSummaryReport.load_requests.

    Args:
        df: Requests with flag, metadata and timestamp columns
        top_n: Number of top bot sources to keep

    Returns:
        DetectionSummary
    """
    if df.empty:
        return DetectionSummary()

    analyzed = df["bot_analyzed_at"].notna()
    is_bot = df[FLAG_COLUMNS].any(axis=1)
    metadata = df["bot_detection_metadata"].map(lambda m: m if isinstance(m, dict) else {})
    skipped = metadata.map(lambda m: m.get("skipped") is True)
    manual = metadata.map(lambda m: m.get("manually_flagged") is True)

    bots = df[is_bot]
    top_sources = (
        bots.groupby("ip_address")
        .size()
        .rename("bot_requests")
        .reset_index()
        .sort_values(["bot_requests", "ip_address"], ascending=[False, True])
        .head(top_n)
        .reset_index(drop=True)
    )

    daily = (
        pd.DataFrame(
            {
                "date": df["created_at"].dt.date,
                "requests": 1,
                "analyzed": analyzed.astype(int),
                "bots": is_bot.astype(int),
            }
        )
        .groupby("date", as_index=False)
        .sum()
        .sort_values("date")
        .reset_index(drop=True)
    )

    return DetectionSummary(
        total_requests=len(df),
        analyzed_requests=int(analyzed.sum()),
        unanalyzed_requests=int((~analyzed).sum()),
        bot_requests=int(is_bot.sum()),
        by_frequency=int(df["is_bot_by_frequency"].sum()),
        by_user_agent=int(df["is_bot_by_user_agent"].sum()),
        by_parameters=int(df["is_bot_by_parameters"].sum()),
        skipped_authenticated=int(skipped.sum()),
        manually_flagged=int(manual.sum()),
        top_sources=top_sources,
        daily=daily,
    )
