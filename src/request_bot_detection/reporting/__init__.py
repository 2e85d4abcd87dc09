"""Reporting over bot detection results."""

from .detection_summary import DetectionSummary, DetectionSummaryReport, summarize_frame

__all__ = [
    "DetectionSummary",
    "DetectionSummaryReport",
    "summarize_frame",
]
