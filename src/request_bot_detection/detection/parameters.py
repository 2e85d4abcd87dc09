"""
URL query parameter anomaly analysis.

Flags requests carrying query parameters that the route does not expect
and whose name or value looks bot-generated (long random tokens, long
numeric strings, probing names, high-entropy values).
"""

import json
import logging
import re
from typing import Iterable, Optional, Union
from urllib.parse import parse_qsl

from ..config.constants import SUSPICIOUS_PARAMETER_PATTERNS
from ..config.settings import BotDetectionSettings
from ..utils.url_utils import split_request_url
from .entropy import shannon_entropy
from .models import AnalyzerResult
from .route_catalog import RouteParameterCatalog

logger = logging.getLogger(__name__)

ParameterValue = Union[str, list[str]]

_SUSPICIOUS_PATTERNS: list[re.Pattern] = [
    re.compile(pattern, re.IGNORECASE) for pattern in SUSPICIOUS_PARAMETER_PATTERNS
]


def _base_name(key: str) -> str:
    """
    Strip array notation from a parameter name.

    Examples:
        >>> _base_name("items[0][name]")
        'items'
        >>> _base_name("tags[]")
        'tags'
        >>> _base_name("page")
        'page'
    """
    bracket = key.find("[")
    if bracket > 0:
        return key[:bracket]
    return key


def parse_query_parameters(query: str) -> dict[str, ParameterValue]:
    """
    Parse a query string into logical parameters.

    Array-style keys (``tags[]=a&tags[]=b``, ``items[0][name]=x``) and
    repeated keys merge into a single parameter whose value is the list of
    raw values. Insertion order follows the query string.

    Examples:
        >>> parse_query_parameters("page=2&tags[]=a&tags[]=b")
        {'page': '2', 'tags': ['a', 'b']}
    """
    params: dict[str, ParameterValue] = {}

    for key, value in parse_qsl(query, keep_blank_values=True):
        name = _base_name(key)
        is_array = name != key

        if name not in params:
            params[name] = [value] if is_array else value
            continue

        existing = params[name]
        if isinstance(existing, list):
            existing.append(value)
        else:
            params[name] = [existing, value]

    return params


def stringify_value(value: ParameterValue) -> str:
    """Scalar values as-is, lists JSON-encoded."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


class ParameterAnomalyAnalyzer:
    """Flags unexpected, bot-looking query parameters."""

    def __init__(
        self,
        settings: Optional[BotDetectionSettings] = None,
        catalog: Optional[RouteParameterCatalog] = None,
    ):
        self.settings = settings or BotDetectionSettings()
        self.catalog = catalog or RouteParameterCatalog()

    def is_random_parameter(self, name: str, value: ParameterValue) -> bool:
        """
        Check whether a parameter name or value looks machine-generated.

        Pattern checks apply to both name and value; the entropy check
        applies to values longer than entropy_min_length.
        """
        value_str = stringify_value(value)

        for pattern in _SUSPICIOUS_PATTERNS:
            if pattern.search(name) or pattern.search(value_str):
                return True

        if len(value_str) > self.settings.entropy_min_length:
            if shannon_entropy(value_str) > self.settings.entropy_threshold:
                return True

        return False

    def analyze(
        self, url: str, whitelist: Optional[Iterable[str]] = None
    ) -> AnalyzerResult:
        """
        Analyze a request URL's query parameters.

        Args:
            url: Full request URL
            whitelist: Accepted parameter names for the URL's path; resolved
                from the route catalog when omitted

        Returns:
            AnalyzerResult; malformed URLs are reported as not suspicious
        """
        try:
            path, query = split_request_url(url)
        except ValueError as e:
            logger.warning(f"Could not parse URL {url!r}: {e}")
            return AnalyzerResult(is_suspicious=False, details={"debug": "Malformed URL"})

        if not query:
            return AnalyzerResult(is_suspicious=False)

        params = parse_query_parameters(query)
        accepted = (
            frozenset(whitelist)
            if whitelist is not None
            else self.catalog.whitelist_for(path)
        )

        unexpected = [name for name in params if name not in accepted]
        if not unexpected:
            return AnalyzerResult(is_suspicious=False)

        for name in unexpected:
            if self.is_random_parameter(name, params[name]):
                return AnalyzerResult(
                    is_suspicious=True,
                    reason=(
                        f"Suspicious URL parameters detected: {', '.join(unexpected)}"
                    ),
                    details={
                        "unexpected_parameters": unexpected,
                        "triggered_by": name,
                    },
                )

        return AnalyzerResult(
            is_suspicious=False, details={"unexpected_parameters": unexpected}
        )
