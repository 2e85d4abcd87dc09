"""
Bot detection engine.

Orchestrates the frequency, user-agent, referer and parameter analyzers
for one logged request, persists the verdict with a machine-readable audit
trail, and maintains the per-IP source metadata. Also exposes the bounded
batch entry points used by the scheduled job.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from ..config.constants import (
    MANUAL_FLAG_REASON,
    SKIP_REASON_AUTHENTICATED,
    SKIP_REASON_MANUALLY_FLAGGED,
)
from ..config.settings import BotDetectionSettings, Settings
from ..storage.base import StorageBackend, StorageError
from ..utils.time_utils import utc_now
from .exceptions import AnalysisPersistenceError, RequestNotFoundError
from .frequency import FrequencyAnalyzer
from .models import (
    AnalysisOutcome,
    AnalysisVerdict,
    DetectionFlags,
    LoggedRequest,
    SourceMetadata,
)
from .parameters import ParameterAnomalyAnalyzer
from .referer import RefererAnalyzer
from .route_catalog import RouteParameterCatalog
from .user_agent import UserAgentAnalyzer, UserAgentParser

logger = logging.getLogger(__name__)


class BotDetectionEngine:
    """
    Classifies logged requests as human or automated traffic.

    The engine is synchronous and holds no per-request state, so one
    instance can serve any number of callers. Each ``analyze_request`` runs
    in a single storage transaction: the source metadata read-modify-write
    and the request row update commit together.
    """

    def __init__(
        self,
        backend: StorageBackend,
        settings: Optional[BotDetectionSettings] = None,
        catalog: Optional[RouteParameterCatalog] = None,
        user_agent_parser: Optional[UserAgentParser] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the engine.

        Args:
            backend: Initialized storage backend
            settings: Detection thresholds (defaults if None)
            catalog: Shared route parameter catalog; a manifest-less catalog
                with the configured overrides is created if None
            user_agent_parser: UA parser (the user-agents library if None)
            clock: Returns the current aware UTC time
        """
        self.backend = backend
        self.settings = settings or BotDetectionSettings()
        self.catalog = catalog or RouteParameterCatalog(
            overrides=self.settings.route_overrides
        )
        self._clock = clock

        self.frequency_analyzer = FrequencyAnalyzer(self.settings)
        self.user_agent_analyzer = UserAgentAnalyzer(self.settings, user_agent_parser)
        self.referer_analyzer = RefererAnalyzer(self.settings)
        self.parameter_analyzer = ParameterAnomalyAnalyzer(self.settings, self.catalog)

    @classmethod
    def from_settings(
        cls,
        backend: StorageBackend,
        settings: Settings,
        user_agent_parser: Optional[UserAgentParser] = None,
    ) -> "BotDetectionEngine":
        """Create an engine, loading the route manifest if one is configured."""
        bd = settings.bot_detection
        if settings.route_manifest_path:
            catalog = RouteParameterCatalog.from_manifest(
                settings.route_manifest_path, overrides=bd.route_overrides
            )
        else:
            catalog = RouteParameterCatalog(overrides=bd.route_overrides)

        return cls(
            backend,
            settings=bd,
            catalog=catalog,
            user_agent_parser=user_agent_parser,
        )

    # =========================================================================
    # Single request
    # =========================================================================

    def analyze_request(self, request: Union[LoggedRequest, int]) -> AnalysisVerdict:
        """
        Analyze one logged request and persist the verdict.

        The stored row is authoritative: a LoggedRequest argument is only
        used for its ID.

        Args:
            request: LoggedRequest or request ID

        Returns:
            AnalysisVerdict

        Raises:
            RequestNotFoundError: If the request doesn't exist
            AnalysisPersistenceError: If reading or writing storage fails
        """
        request_id = request.id if isinstance(request, LoggedRequest) else request
        if request_id is None:
            raise ValueError("Only stored requests can be analyzed")

        try:
            with self.backend.transaction():
                row = self.backend.get_logged_request(request_id)
                if row is None:
                    raise RequestNotFoundError(request_id)
                verdict = self._analyze_stored(LoggedRequest.from_dict(row))
        except StorageError as e:
            raise AnalysisPersistenceError(
                f"Failed to persist bot analysis: {e}", request_id=request_id
            ) from e

        logger.debug(
            f"Request {request_id}: is_bot={verdict.is_bot} "
            f"skipped={verdict.skipped} reasons={verdict.reasons}"
        )
        return verdict

    def _analyze_stored(self, request: LoggedRequest) -> AnalysisVerdict:
        """Run inside the caller's transaction."""
        if request.is_manually_flagged:
            reason = (request.bot_detection_metadata or {}).get(
                "reason", MANUAL_FLAG_REASON
            )
            return AnalysisVerdict(
                is_bot=True,
                reasons=[reason],
                skipped=True,
                skip_reason=SKIP_REASON_MANUALLY_FLAGGED,
                flags=DetectionFlags(by_user_agent=True),
            )

        now = self._clock()

        if request.is_authenticated:
            flags = DetectionFlags()
            self.backend.save_analysis(
                request.id,
                flags.to_dict(),
                {"skipped": True, "reason": SKIP_REASON_AUTHENTICATED},
                now,
            )
            return AnalysisVerdict(
                is_bot=False,
                skipped=True,
                skip_reason=SKIP_REASON_AUTHENTICATED,
                flags=flags,
            )

        flags = DetectionFlags()
        reasons: list[str] = []

        frequency = self._analyze_frequency(request)
        if frequency.is_suspicious:
            flags.by_frequency = True
            reasons.append(frequency.reason or "Suspicious frequency pattern")

        user_agent_analysis = None
        if request.user_agent is not None:
            result = self.user_agent_analyzer.analyze(
                request.user_agent, frequency.requests_per_minute
            )
            user_agent_analysis = result.to_dict()
            if result.is_suspicious:
                flags.by_user_agent = True
                reasons.append(result.reason or "Suspicious user agent")

        referer_analysis = None
        if request.referer_url:
            result = self.referer_analyzer.analyze(request.referer_url)
            referer_analysis = result.to_dict()
            if result.is_suspicious:
                flags.by_user_agent = True
                reasons.append(result.reason or "Suspicious referer")

        parameter_analysis = None
        if request.url:
            result = self.parameter_analyzer.analyze(request.url)
            parameter_analysis = result.to_dict()
            if result.is_suspicious:
                flags.by_parameters = True
                reasons.append(result.reason or "Suspicious URL parameters")

        metadata: dict[str, Any] = {
            "reasons": reasons,
            "frequency_analysis": frequency.to_dict(),
            "user_agent_analysis": user_agent_analysis,
            "referer_analysis": referer_analysis,
            "parameter_analysis": parameter_analysis,
        }
        self.backend.save_analysis(request.id, flags.to_dict(), metadata, now)

        return AnalysisVerdict(is_bot=flags.is_bot, reasons=reasons, flags=flags)

    def _analyze_frequency(self, request: LoggedRequest):
        """Frequency analysis plus the source metadata upsert."""
        if request.ip_address is None or request.created_at is None:
            return self.frequency_analyzer.analyze(request, [request])

        window_start = request.created_at - timedelta(
            seconds=self.settings.window_seconds
        )
        window = [
            LoggedRequest.from_dict(row)
            for row in self.backend.get_requests_in_window(
                request.ip_address, window_start, request.created_at
            )
        ]

        source_row = self.backend.get_source_metadata(request.ip_address)
        source = SourceMetadata.from_dict(source_row) if source_row else None

        analysis = self.frequency_analyzer.analyze(request, window, source)

        updated = self.frequency_analyzer.updated_source(request, analysis, source)
        if updated is not None:
            self.backend.save_source_metadata(asdict(updated))

        return analysis

    # =========================================================================
    # Batches
    # =========================================================================

    def analyze_backlog(self, limit: int) -> list[AnalysisOutcome]:
        """
        Analyze up to ``limit`` unanalyzed requests, newest first.

        Rows are claimed before processing so an overlapping run skips them.
        Authenticated requests are selected too and go through the bypass.

        Raises:
            AnalysisPersistenceError: If claiming or persisting fails
        """
        if limit <= 0:
            return []

        claim_token = _new_claim_token()
        rows = self._claim(
            lambda: self.backend.claim_unanalyzed_requests(
                limit,
                claim_token,
                self._clock(),
                self.settings.claim_timeout_seconds,
            )
        )

        try:
            outcomes = self._analyze_rows(rows)
        finally:
            self._release(claim_token)

        logger.info(
            f"Analyzed {len(outcomes)} backlog requests "
            f"({sum(1 for o in outcomes if o.verdict.is_bot)} bots)"
        )
        return outcomes

    def reanalyze_stale(
        self, older_than_hours: float, limit: int
    ) -> list[AnalysisOutcome]:
        """
        Re-analyze recent requests from sources not analyzed since the cutoff.

        Selects up to ``limit`` requests with created_at >= cutoff whose IP
        was never bot-analyzed or last analyzed before the cutoff, newest
        first, then stamps last_bot_analysis_at on every IP touched.

        Args:
            older_than_hours: Staleness threshold in hours
            limit: Maximum number of requests to analyze

        Raises:
            AnalysisPersistenceError: If claiming or persisting fails
        """
        if limit <= 0:
            return []

        now = self._clock()
        cutoff = now - timedelta(hours=older_than_hours)
        claim_token = _new_claim_token()
        rows = self._claim(
            lambda: self.backend.claim_requests_from_stale_sources(
                cutoff,
                limit,
                claim_token,
                now,
                self.settings.claim_timeout_seconds,
            )
        )

        try:
            outcomes = self._analyze_rows(rows)
        finally:
            self._release(claim_token)

        touched = sorted({row["ip_address"] for row in rows if row.get("ip_address")})
        if touched:
            try:
                self.backend.mark_sources_analyzed(touched, self._clock())
            except StorageError as e:
                raise AnalysisPersistenceError(
                    f"Failed to stamp re-analyzed sources: {e}"
                ) from e

        logger.info(
            f"Re-analyzed {len(outcomes)} requests from {len(touched)} stale sources "
            f"(cutoff {cutoff.isoformat()})"
        )
        return outcomes

    def _analyze_rows(self, rows: list[dict]) -> list[AnalysisOutcome]:
        outcomes = []
        for row in rows:
            try:
                verdict = self.analyze_request(row["id"])
            except RequestNotFoundError:
                # Deleted between claim and analysis
                logger.warning(f"Request {row['id']} disappeared during batch")
                continue
            outcomes.append(AnalysisOutcome(request_id=row["id"], verdict=verdict))
        return outcomes

    def _claim(self, claim: Callable[[], list[dict]]) -> list[dict]:
        try:
            return claim()
        except StorageError as e:
            raise AnalysisPersistenceError(f"Failed to claim requests: {e}") from e

    def _release(self, claim_token: str) -> None:
        """Release rows still claimed (skipped or failed ones)."""
        try:
            released = self.backend.release_claims(claim_token)
        except StorageError as e:
            # Claims expire after claim_timeout_seconds
            logger.error(f"Failed to release claims {claim_token}: {e}")
            return
        if released:
            logger.debug(f"Released {released} unprocessed claims")

    # =========================================================================
    # Manual flagging
    # =========================================================================

    def flag_as_bot(
        self,
        request_ids: list[int],
        flagged_by: Optional[Union[int, str]] = None,
    ) -> int:
        """
        Flag requests as bots by hand.

        Flagged requests are never overwritten by automatic analysis.

        Args:
            request_ids: IDs of the requests to flag
            flagged_by: Operator identifier recorded in the metadata

        Returns:
            Number of requests updated
        """
        if not request_ids:
            return 0

        now = self._clock()
        metadata = {
            "manually_flagged": True,
            "flagged_at": now.isoformat(),
            "flagged_by": flagged_by,
            "reason": MANUAL_FLAG_REASON,
        }

        try:
            updated = self.backend.flag_requests(list(request_ids), metadata, now)
        except StorageError as e:
            raise AnalysisPersistenceError(f"Failed to flag requests: {e}") from e

        logger.info(f"Manually flagged {updated} requests as bots")
        return updated


def _new_claim_token() -> str:
    return uuid.uuid4().hex
