#!/usr/bin/env python3
"""
CLI script to load logged request records into the detection database.

Usage:
    python scripts/ingest_requests.py --input exports/requests.csv
    python scripts/ingest_requests.py --input exports/requests.ndjson.gz --analyze
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from request_bot_detection.config import get_settings
from request_bot_detection.detection import BotDetectionEngine
from request_bot_detection.ingestion import (
    SUPPORTED_FORMATS,
    IngestionError,
    load_request_records,
)
from request_bot_detection.storage import StorageError, get_backend


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Load logged request records into the detection database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Input columns:
  ip_address (or source_ip), created_at   required
  user_agent (or user_agent_string), url, referer_url,
  method, status_code, user_id            optional
        """,
    )

    parser.add_argument(
        "--input",
        "-i",
        type=Path,
        required=True,
        help="CSV, JSON array or NDJSON file (may be gzip-compressed)",
    )
    parser.add_argument(
        "--format",
        choices=SUPPORTED_FORMATS,
        help="Input format (default: detect from file name)",
    )
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Analyze the backlog after loading",
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
    db_path = args.db_path or Path(settings.sqlite_db_path)

    try:
        records = load_request_records(args.input, args.format)
    except (FileNotFoundError, IngestionError) as e:
        logger.error(f"Failed to load {args.input}: {e}")
        return 1

    print()
    print("📥 Ingesting Requests")
    print("=" * 50)
    print(f"  Input: {args.input}")
    print(f"  Database: {db_path}")
    print(f"  Records: {len(records):,}")

    try:
        backend = get_backend("sqlite", db_path=db_path)
        backend.initialize()
    except StorageError as e:
        logger.error(f"Failed to open database: {e}")
        return 1

    try:
        ids = backend.insert_logged_requests(records)
        print(f"  Inserted: {len(ids):,}")

        if args.analyze:
            engine = BotDetectionEngine.from_settings(backend, settings)
            outcomes = engine.analyze_backlog(len(ids))
            bots = sum(1 for o in outcomes if o.verdict.is_bot)
            print(f"  Analyzed: {len(outcomes):,} ({bots:,} bots)")

        return 0

    except Exception as e:
        logger.error(f"Ingestion failed: {e}")
        return 1

    finally:
        backend.close()


if __name__ == "__main__":
    sys.exit(main())
