"""
Data records exchanged between the detection engine and its collaborators.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..config.constants import UNKNOWN_COUNTRY_CODE
from ..utils.time_utils import ensure_utc, parse_timestamp


@dataclass
class LoggedRequest:
    """
    A logged HTTP request.

    Identity fields come from the logging collaborator; the detection
    outputs (flags, metadata, bot_analyzed_at) are written by the engine only.
    """

    id: Optional[int]
    ip_address: Optional[str]
    created_at: Optional[datetime]
    user_agent: Optional[str] = None
    url: Optional[str] = None
    referer_url: Optional[str] = None
    method: str = "GET"
    status_code: Optional[int] = None
    user_id: Optional[int] = None

    # Detection outputs
    is_bot_by_frequency: bool = False
    is_bot_by_user_agent: bool = False
    is_bot_by_parameters: bool = False
    bot_detection_metadata: Optional[dict[str, Any]] = None
    bot_analyzed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)
        self.bot_analyzed_at = ensure_utc(self.bot_analyzed_at)

    @property
    def is_authenticated(self) -> bool:
        """True when the request was made by a logged-in user."""
        return self.user_id is not None

    @property
    def is_manually_flagged(self) -> bool:
        """True when an operator flagged this request as a bot by hand."""
        metadata = self.bot_detection_metadata or {}
        return metadata.get("manually_flagged") is True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoggedRequest":
        """Create from a storage row or an ingestion record."""
        return cls(
            id=data.get("id"),
            ip_address=data.get("ip_address") or data.get("source_ip"),
            created_at=parse_timestamp(data.get("created_at")),
            user_agent=(
                data["user_agent"]
                if data.get("user_agent") is not None
                else data.get("user_agent_string")
            ),
            url=data.get("url"),
            referer_url=data.get("referer_url"),
            method=data.get("method") or "GET",
            status_code=data.get("status_code"),
            user_id=data.get("user_id"),
            is_bot_by_frequency=bool(data.get("is_bot_by_frequency")),
            is_bot_by_user_agent=bool(data.get("is_bot_by_user_agent")),
            is_bot_by_parameters=bool(data.get("is_bot_by_parameters")),
            bot_detection_metadata=data.get("bot_detection_metadata"),
            bot_analyzed_at=parse_timestamp(data.get("bot_analyzed_at")),
        )


@dataclass
class SourceMetadata:
    """Aggregate counters for one source IP address."""

    ip_address: str
    first_seen_at: datetime
    last_seen_at: datetime
    total_requests: int = 1
    avg_request_interval: Optional[float] = None
    last_bot_analysis_at: Optional[datetime] = None
    country_code: str = UNKNOWN_COUNTRY_CODE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceMetadata":
        """Create from a storage row."""
        return cls(
            ip_address=data["ip_address"],
            first_seen_at=parse_timestamp(data.get("first_seen_at")),
            last_seen_at=parse_timestamp(data.get("last_seen_at")),
            total_requests=int(data.get("total_requests") or 0),
            avg_request_interval=data.get("avg_request_interval"),
            last_bot_analysis_at=parse_timestamp(data.get("last_bot_analysis_at")),
            country_code=data.get("country_code") or UNKNOWN_COUNTRY_CODE,
        )


@dataclass
class DetectionFlags:
    """The three independent heuristic outcomes."""

    by_frequency: bool = False
    by_user_agent: bool = False
    by_parameters: bool = False

    @property
    def is_bot(self) -> bool:
        return self.by_frequency or self.by_user_agent or self.by_parameters

    def to_dict(self) -> dict[str, bool]:
        """Convert to the persisted column names."""
        return {
            "is_bot_by_frequency": self.by_frequency,
            "is_bot_by_user_agent": self.by_user_agent,
            "is_bot_by_parameters": self.by_parameters,
        }


@dataclass
class FrequencyAnalysis:
    """Result of request-frequency analysis."""

    is_suspicious: bool
    requests_per_minute: float = 0.0
    requests_count: int = 0
    avg_interval: Optional[float] = None
    baseline_interval: Optional[float] = None
    reason: Optional[str] = None
    debug: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping unset optional fields."""
        result = {
            "is_suspicious": self.is_suspicious,
            "requests_per_minute": self.requests_per_minute,
            "requests_count": self.requests_count,
        }
        for key in ("avg_interval", "baseline_interval", "reason", "debug"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass
class AnalyzerResult:
    """Result of a single-input analyzer (user agent, parameters, referer)."""

    is_suspicious: bool
    reason: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"is_suspicious": self.is_suspicious}
        if self.reason is not None:
            result["reason"] = self.reason
        result.update(self.details)
        return result


@dataclass
class AnalysisVerdict:
    """Outcome of analyzing one request."""

    is_bot: bool
    reasons: list[str] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None
    flags: DetectionFlags = field(default_factory=DetectionFlags)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "is_bot": self.is_bot,
            "reasons": list(self.reasons),
            **self.flags.to_dict(),
        }
        if self.skipped:
            result["skipped"] = True
            result["skip_reason"] = self.skip_reason
        return result


@dataclass
class AnalysisOutcome:
    """A verdict paired with the request it belongs to (batch results)."""

    request_id: int
    verdict: AnalysisVerdict

    def to_dict(self) -> dict[str, Any]:
        return {"request_id": self.request_id, "analysis": self.verdict.to_dict()}
