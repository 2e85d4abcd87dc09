"""
Custom exceptions for the detection module.
"""


class BotDetectionError(Exception):
    """
    Base exception for all bot detection errors.

    Analyzer input problems (bad URL, unparseable user agent) never raise;
    only lookup and persistence failures surface through this hierarchy.
    """

    pass


class AnalysisPersistenceError(BotDetectionError):
    """
    Raised when the outcome of an analysis cannot be stored.

    The request keeps its previous state (unanalyzed requests stay in the
    backlog), so the call can simply be retried.

    Attributes:
        request_id: The request being analyzed
        retryable: Always True; idempotent retry is the recovery path
    """

    def __init__(self, message: str, request_id: int | None = None):
        self.request_id = request_id
        self.retryable = True
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.request_id is not None:
            return f"{self.message} (request_id={self.request_id})"
        return self.message


class RequestNotFoundError(BotDetectionError):
    """Raised when analysis is requested for an ID that doesn't exist."""

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Logged request {request_id} not found")
