#!/usr/bin/env python3
"""
CLI script to print a summary of bot detection results.

Usage:
    # Whole database
    python scripts/bot_detection_report.py

    # Last 7 days, as JSON
    python scripts/bot_detection_report.py --days 7 --json
"""

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from request_bot_detection.config import get_settings
from request_bot_detection.reporting import DetectionSummaryReport
from request_bot_detection.storage import StorageError
from request_bot_detection.utils import utc_now


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Summarize bot detection results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--days",
        type=int,
        help="Only include requests from the last N days",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="Number of top bot sources to show (default: 10)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to SQLite database (default: from config)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML config file (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    settings = get_settings(args.config)
    db_path = args.db_path or Path(settings.sqlite_db_path)
    start = utc_now() - timedelta(days=args.days) if args.days else None

    try:
        with DetectionSummaryReport(db_path=db_path, top_n=args.top) as report:
            summary = report.summarize(start=start)
    except StorageError as e:
        logger.error(f"Failed to build report: {e}")
        return 1

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, default=str))
        return 0

    print()
    print("🤖 Bot Detection Summary")
    print("=" * 50)
    print(f"  Database: {db_path}")
    if start:
        print(f"  Since: {start:%Y-%m-%d %H:%M} UTC")
    print(f"  Requests: {summary.total_requests:,}")
    print(f"  Analyzed: {summary.analyzed_requests:,}")
    print(f"  Backlog: {summary.unanalyzed_requests:,}")
    print(f"  Bots: {summary.bot_requests:,} ({summary.bot_ratio:.1%})")
    print(f"    by frequency:  {summary.by_frequency:,}")
    print(f"    by user agent: {summary.by_user_agent:,}")
    print(f"    by parameters: {summary.by_parameters:,}")
    print(f"  Authenticated (skipped): {summary.skipped_authenticated:,}")
    print(f"  Manually flagged: {summary.manually_flagged:,}")

    if not summary.top_sources.empty:
        print()
        print("🔝 Top Bot Sources")
        print("=" * 50)
        print(summary.top_sources.to_string(index=False))

    if not summary.daily.empty:
        print()
        print("📅 Daily Breakdown")
        print("=" * 50)
        print(summary.daily.to_string(index=False))

    return 0


if __name__ == "__main__":
    sys.exit(main())
