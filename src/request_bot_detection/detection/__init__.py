"""
Bot detection over logged HTTP requests.

Usage:
    from request_bot_detection.detection import BotDetectionEngine
    from request_bot_detection.storage import get_backend

    backend = get_backend("sqlite", db_path="data/request-logs.db")
    backend.initialize()

    engine = BotDetectionEngine(backend)
    verdict = engine.analyze_request(42)
    outcomes = engine.analyze_backlog(limit=100)
"""

from .engine import BotDetectionEngine
from .entropy import shannon_entropy
from .exceptions import (
    AnalysisPersistenceError,
    BotDetectionError,
    RequestNotFoundError,
)
from .frequency import FrequencyAnalyzer
from .models import (
    AnalysisOutcome,
    AnalysisVerdict,
    AnalyzerResult,
    DetectionFlags,
    FrequencyAnalysis,
    LoggedRequest,
    SourceMetadata,
)
from .parameters import ParameterAnomalyAnalyzer, parse_query_parameters
from .referer import RefererAnalyzer
from .route_catalog import RouteDeclaration, RouteParameterCatalog
from .user_agent import (
    ParsedUserAgent,
    UserAgentAnalyzer,
    UserAgentParser,
    UserAgentsParser,
)

__all__ = [
    # Engine
    "BotDetectionEngine",
    # Analyzers
    "FrequencyAnalyzer",
    "UserAgentAnalyzer",
    "RefererAnalyzer",
    "ParameterAnomalyAnalyzer",
    "RouteParameterCatalog",
    "RouteDeclaration",
    # User agent parsing
    "ParsedUserAgent",
    "UserAgentParser",
    "UserAgentsParser",
    # Records
    "LoggedRequest",
    "SourceMetadata",
    "DetectionFlags",
    "FrequencyAnalysis",
    "AnalyzerResult",
    "AnalysisVerdict",
    "AnalysisOutcome",
    # Helpers
    "shannon_entropy",
    "parse_query_parameters",
    # Exceptions
    "BotDetectionError",
    "AnalysisPersistenceError",
    "RequestNotFoundError",
]
