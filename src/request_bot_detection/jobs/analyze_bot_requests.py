"""
Scheduled bot analysis job.

Runs the detection engine in one of three modes:
- single: analyze one request by ID
- unanalyzed: drain up to batch_size requests from the backlog
- re-analysis: re-analyze recent requests from stale sources
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config.constants import DEFAULT_BATCH_SIZE, DEFAULT_STALE_HOURS
from ..detection.engine import BotDetectionEngine
from ..detection.exceptions import RequestNotFoundError
from ..detection.models import AnalysisOutcome
from .retry_handler import RetryConfig, RetryManager

logger = logging.getLogger(__name__)

MODE_SINGLE = "single"
MODE_UNANALYZED = "unanalyzed"
MODE_REANALYSIS = "re-analysis"


@dataclass
class JobResult:
    """Summary of one job run."""

    mode: str
    total_analyzed: int = 0
    bots_detected: int = 0
    skipped: int = 0
    attempts: int = 1
    outcomes: list[AnalysisOutcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(
        cls, mode: str, outcomes: list[AnalysisOutcome], attempts: int = 1
    ) -> "JobResult":
        return cls(
            mode=mode,
            total_analyzed=len(outcomes),
            bots_detected=sum(1 for o in outcomes if o.verdict.is_bot),
            skipped=sum(1 for o in outcomes if o.verdict.skipped),
            attempts=attempts,
            outcomes=outcomes,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "mode": self.mode,
            "total_analyzed": self.total_analyzed,
            "bots_detected": self.bots_detected,
            "skipped": self.skipped,
            "attempts": self.attempts,
        }


class AnalyzeBotRequestsJob:
    """
    Bot analysis job with bounded retries.

    A failed run is retried up to ``retry_config.max_attempts`` times when
    the failure is transient. Unanalyzed requests stay in the backlog, so a
    retry simply picks them up again.
    """

    def __init__(
        self,
        request_id: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        analyze_unanalyzed: bool = True,
        stale_hours: float = DEFAULT_STALE_HOURS,
        retry_config: Optional[RetryConfig] = None,
        retry_manager: Optional[RetryManager] = None,
    ):
        """
        Create a job.

        Args:
            request_id: Specific request ID to analyze, or None for batch
            batch_size: Number of requests to analyze in batch mode
            analyze_unanalyzed: If True, drain the backlog. If False,
                re-analyze requests from stale sources
            stale_hours: Staleness threshold for re-analysis
            retry_config: Retry settings (3 attempts by default)
            retry_manager: Pre-built manager, overrides retry_config
        """
        if batch_size < 0:
            raise ValueError(f"batch_size must be >= 0, got {batch_size}")
        if stale_hours <= 0:
            raise ValueError(f"stale_hours must be > 0, got {stale_hours}")

        self.request_id = request_id
        self.batch_size = batch_size
        self.analyze_unanalyzed = analyze_unanalyzed
        self.stale_hours = stale_hours
        self.retry_manager = retry_manager or RetryManager(config=retry_config)

    @property
    def mode(self) -> str:
        if self.request_id is not None:
            return MODE_SINGLE
        return MODE_UNANALYZED if self.analyze_unanalyzed else MODE_REANALYSIS

    def handle(self, engine: BotDetectionEngine) -> JobResult:
        """
        Run the job.

        Raises:
            Exception: The last error once retries are exhausted
        """
        run = self.retry_manager.execute_with_retry(self._run_once, engine)

        if not run.success:
            logger.error(
                f"Bot analysis job failed: mode={self.mode} "
                f"request_id={self.request_id} "
                f"attempts={run.attempts} error={run.last_error}"
            )
            raise run.last_error

        result = JobResult.from_outcomes(self.mode, run.result, attempts=run.attempts)
        self._log_result(result)
        return result

    def _run_once(self, engine: BotDetectionEngine) -> list[AnalysisOutcome]:
        if self.request_id is not None:
            try:
                verdict = engine.analyze_request(self.request_id)
            except RequestNotFoundError:
                logger.warning(f"Request {self.request_id} not found, nothing to analyze")
                return []
            return [AnalysisOutcome(request_id=self.request_id, verdict=verdict)]

        if self.analyze_unanalyzed:
            return engine.analyze_backlog(self.batch_size)

        return engine.reanalyze_stale(self.stale_hours, self.batch_size)

    def _log_result(self, result: JobResult) -> None:
        if result.mode == MODE_SINGLE and result.outcomes:
            verdict = result.outcomes[0].verdict
            logger.info(
                f"Bot analysis completed for request {self.request_id}: "
                f"is_bot={verdict.is_bot} reasons={verdict.reasons}"
            )
            return

        logger.info(
            f"Batch bot analysis completed: type={result.mode} "
            f"total_analyzed={result.total_analyzed} "
            f"bots_detected={result.bots_detected} skipped={result.skipped}"
        )
