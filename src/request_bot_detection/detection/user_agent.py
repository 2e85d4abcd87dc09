"""
User-agent signature analysis.

Parses user-agent strings into structured fields and flags known bots,
old/budget device signatures combined with high request rates, and
browser-less clients under load.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from user_agents import parse as parse_ua

from ..config.constants import UNIDENTIFIED_BROWSER_FAMILIES
from ..config.settings import BotDetectionSettings
from .models import AnalyzerResult

logger = logging.getLogger(__name__)


@dataclass
class ParsedUserAgent:
    """Structured fields extracted from a user-agent string."""

    browser_name: str = ""
    os_name: str = ""
    os_version: str = ""
    device_name: str = ""
    bot_name: str = ""

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {
            "browser_name": self.browser_name,
            "os_name": self.os_name,
            "os_version": self.os_version,
            "device_name": self.device_name,
            "bot_name": self.bot_name,
        }


class UserAgentParser(Protocol):
    """Anything that can turn a user-agent string into ParsedUserAgent."""

    def parse(self, user_agent: str) -> ParsedUserAgent:
        ...


def _identified(family: Optional[str]) -> str:
    """Return the family name, or "" for the parser's unknown markers."""
    if not family or family.strip().lower() in UNIDENTIFIED_BROWSER_FAMILIES:
        return ""
    return family.strip()


class UserAgentsParser:
    """UserAgentParser backed by the ``user-agents`` (ua-parser) library."""

    def parse(self, user_agent: str) -> ParsedUserAgent:
        """
        Parse a user-agent string.

        Returns an empty ParsedUserAgent for empty strings.

        Raises:
            ValueError: If the underlying parser rejects the input
        """
        if not user_agent:
            return ParsedUserAgent()

        try:
            ua = parse_ua(user_agent)
        except (TypeError, AttributeError) as e:
            raise ValueError(f"Unparseable user agent: {e}") from e

        browser_name = _identified(ua.browser.family)
        bot_name = ""
        if ua.is_bot:
            bot_name = browser_name or _identified(ua.device.family) or "Spider"

        return ParsedUserAgent(
            browser_name=browser_name,
            os_name=_identified(ua.os.family),
            os_version=ua.os.version_string or "",
            device_name=_identified(ua.device.family),
            bot_name=bot_name,
        )


class UserAgentAnalyzer:
    """
    Flags suspicious user-agent signatures.

    Rules, in order:
    1. The parser recognized a known bot signature
    2. Old OS version + old device model + rate above the pattern's limit
    3. No identifiable browser + rate above no_browser_requests_per_minute
    """

    def __init__(
        self,
        settings: Optional[BotDetectionSettings] = None,
        parser: Optional[UserAgentParser] = None,
    ):
        self.settings = settings or BotDetectionSettings()
        self.parser = parser or UserAgentsParser()

    def analyze(self, user_agent: str, requests_per_minute: float) -> AnalyzerResult:
        """
        Analyze a user-agent string.

        Args:
            user_agent: Raw User-Agent header value
            requests_per_minute: Rate estimated by the frequency analyzer

        Returns:
            AnalyzerResult; never raises on bad input
        """
        try:
            parsed = self.parser.parse(user_agent or "")
        except ValueError as e:
            logger.warning(f"Could not parse user agent {user_agent!r}: {e}")
            parsed = ParsedUserAgent()

        if parsed.bot_name:
            return AnalyzerResult(
                is_suspicious=True,
                reason=f"Known bot detected: {parsed.bot_name}",
                details={"parsed": parsed.to_dict()},
            )

        device_reason = self._match_device_pattern(parsed, requests_per_minute)
        if device_reason:
            return AnalyzerResult(
                is_suspicious=True,
                reason=device_reason,
                details={"parsed": parsed.to_dict()},
            )

        if (
            not parsed.browser_name
            and requests_per_minute > self.settings.no_browser_requests_per_minute
        ):
            return AnalyzerResult(
                is_suspicious=True,
                reason="No browser identified with high request rate",
                details={"parsed": parsed.to_dict()},
            )

        return AnalyzerResult(is_suspicious=False, details={"parsed": parsed.to_dict()})

    def _match_device_pattern(
        self, parsed: ParsedUserAgent, requests_per_minute: float
    ) -> Optional[str]:
        """Return a reason if the OS/device/rate combination is suspicious."""
        os_key = parsed.os_name.lower()
        pattern = self.settings.suspicious_device_patterns.get(os_key)
        if not pattern:
            return None

        version_match = any(
            parsed.os_version.startswith(str(version))
            for version in pattern.get("versions", [])
        )
        if not version_match:
            return None

        device_lower = parsed.device_name.lower()
        device_match = any(
            str(device).lower() in device_lower
            for device in pattern.get("devices", [])
        )
        if not device_match:
            return None

        max_rate = float(pattern.get("max_requests_per_minute", 10))
        if requests_per_minute <= max_rate:
            return None

        return (
            f"Suspicious pattern: Old {parsed.os_name} {parsed.os_version} device "
            f"({parsed.device_name}) with high request rate "
            f"({requests_per_minute:.2f} req/min)"
        )
