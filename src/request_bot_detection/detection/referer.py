"""
Referer analysis.

Flags requests whose referer contains one of the configured suspicious
terms (e.g. job-board crawlers hitting the site through a known host).
"""

from typing import Optional

from ..config.settings import BotDetectionSettings
from .models import AnalyzerResult


class RefererAnalyzer:
    """Case-insensitive substring match of the referer against a term list."""

    def __init__(self, settings: Optional[BotDetectionSettings] = None):
        self.settings = settings or BotDetectionSettings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.suspicious_referers)

    def analyze(self, referer: str) -> AnalyzerResult:
        if not self.enabled or not referer:
            return AnalyzerResult(is_suspicious=False)

        referer_lower = referer.lower()
        for term in self.settings.suspicious_referers:
            if term and term.lower() in referer_lower:
                return AnalyzerResult(
                    is_suspicious=True,
                    reason=f'Suspicious referer detected: contains "{term}"',
                    details={"matched_term": term, "referer": referer},
                )

        return AnalyzerResult(is_suspicious=False)
