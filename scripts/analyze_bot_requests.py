#!/usr/bin/env python3
"""
CLI script to analyze logged requests for bot behavior.

Usage:
    # Drain up to 100 unanalyzed requests
    python scripts/analyze_bot_requests.py

    # Re-analyze recent requests from sources not analyzed in 24 hours
    python scripts/analyze_bot_requests.py --re-analyze --hours 24

    # Analyze one request
    python scripts/analyze_bot_requests.py --request-id 1234
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from request_bot_detection.config import get_settings
from request_bot_detection.detection import BotDetectionEngine
from request_bot_detection.jobs import AnalyzeBotRequestsJob
from request_bot_detection.storage import StorageError, get_backend


def positive_int(value: str) -> int:
    """Parse a positive integer argument."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0: {value}")
    return number


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Analyze logged requests for bot behavior",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze the 500 newest unanalyzed requests
  python scripts/analyze_bot_requests.py --batch-size 500

  # Re-analyze sources not analyzed in the last 6 hours
  python scripts/analyze_bot_requests.py --re-analyze --hours 6
        """,
    )

    parser.add_argument(
        "--batch-size",
        type=positive_int,
        default=None,
        help="Number of requests to analyze per batch (default: 100)",
    )
    parser.add_argument(
        "--re-analyze",
        action="store_true",
        help="Re-analyze requests from stale sources instead of unanalyzed ones",
    )
    parser.add_argument(
        "--hours",
        type=positive_int,
        default=None,
        help="Staleness threshold in hours for --re-analyze (default: 24)",
    )
    parser.add_argument(
        "--request-id",
        type=positive_int,
        help="Analyze a specific request ID",
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
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    settings = get_settings(args.config)
    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(f"Invalid configuration: {error}")
        return 1

    db_path = args.db_path or Path(settings.sqlite_db_path)
    job_kwargs = {"analyze_unanalyzed": not args.re_analyze}
    if args.batch_size is not None:
        job_kwargs["batch_size"] = args.batch_size
    if args.hours is not None:
        job_kwargs["stale_hours"] = args.hours
    job = AnalyzeBotRequestsJob(request_id=args.request_id, **job_kwargs)

    print()
    print("🤖 Bot Request Analysis")
    print("=" * 50)
    print(f"  Database: {db_path}")
    if args.request_id:
        print(f"  Request ID: {args.request_id}")
    else:
        print(f"  Mode: {job.mode}")
        print(f"  Batch size: {job.batch_size}")
        if args.re_analyze:
            print(f"  Stale after: {job.stale_hours}h")
    print()

    try:
        backend = get_backend("sqlite", db_path=db_path)
        backend.initialize()
    except StorageError as e:
        logger.error(f"Failed to open database: {e}")
        return 1

    try:
        engine = BotDetectionEngine.from_settings(backend, settings)
        result = job.handle(engine)

        print()
        print("📈 Analysis Results")
        print("=" * 50)
        print(f"  Analyzed: {result.total_analyzed:,}")
        print(f"  Bots detected: {result.bots_detected:,}")
        print(f"  Skipped: {result.skipped:,}")
        print(f"  Attempts: {result.attempts}")

        if args.request_id and result.outcomes:
            verdict = result.outcomes[0].verdict
            print(f"  Is bot: {'✅' if verdict.is_bot else '❌'}")
            for reason in verdict.reasons:
                print(f"    - {reason}")

        return 0

    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    finally:
        backend.close()


if __name__ == "__main__":
    sys.exit(main())
