"""Command-line refresh for the tide forecast cache.

Runs one forecast read for the configured location, which refreshes from
CO-OPS when every stored record is stale. Run from cron to keep the cache
warm ahead of API traffic:

    # Every six hours
    0 */6 * * * python -m tidecast.cache.refresh -q

Usage:
    python -m tidecast.cache.refresh            # Read (and refresh if stale)
    python -m tidecast.cache.refresh --status   # Show cache status
    python -m tidecast.cache.refresh --seed     # Seed sample data if empty
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from tidecast.cache.database import DEFAULT_DB_PATH, TideDatabase
from tidecast.cache.forecast import TideForecastCache
from tidecast.cache.models import CacheStatus, FetchLog, ForecastResult

logger = logging.getLogger(__name__)

# Statuses that mean the cache could not deliver current data
FAILED_STATUSES = {
    CacheStatus.STALE_ON_ERROR,
    CacheStatus.EMPTY_AFTER_READ_FAILURE,
}


def run_refresh(cache: TideForecastCache) -> ForecastResult:
    """Run one forecast read and log the outcome."""
    result = cache.get_forecast_result()
    if result.status in FAILED_STATUSES:
        logger.error(f"{cache.location}: {result}")
    else:
        logger.info(f"{cache.location}: {result}")
    return result


def seed_if_empty(db: TideDatabase, location: str) -> Optional[dict]:
    """Seed sample data when ``location`` has no tide records.

    Returns:
        Seed summary, or None if records already existed
    """
    existing = db.count_by_location(location)
    if existing > 0:
        logger.info(f"Found {existing} existing tide records for {location}")
        return None
    logger.info(f"No tide records for {location}, seeding sample data...")
    return db.seed_sample_data(location)


def print_status(status: dict, stats: dict, fetch_log: Optional[list[FetchLog]] = None) -> None:
    """Print cache status in human-readable format."""
    print()
    print("=" * 60)
    print("Tide Forecast Cache Status")
    print("=" * 60)
    print(f"Database: {stats['db_path']}")
    print(f"Location: {status['location']} (station {status['station_id']})")

    if status.get("state") is None:
        print(f"State: UNKNOWN ({status.get('error')})")
        print("=" * 60)
        return

    print(f"State: {status['state'].upper()}")
    print(f"Records: {status['total']} ({status['fresh']} fresh, {status['stale']} stale)")
    print(f"Predicted records: {status['predicted']}")
    if status["latest_update"] is not None:
        print(f"Last update: {status['latest_update']} ({status['age_hours']:.1f}h ago)")
    print(
        f"Freshness window: {status['freshness_hours']:.0f}h, "
        f"horizon: {status['horizon_hours']}h"
    )
    print(f"Total tide records: {stats['tide_count']}")
    print(f"Total wave records: {stats['wave_count']}")
    print(f"Refresh attempts logged: {stats['fetch_count']}")
    if fetch_log:
        print()
        print("Recent refresh attempts:")
        for entry in fetch_log:
            line = f"  {entry.timestamp} {entry.status:<8} {entry.records_added:>4} records {entry.duration_ms}ms"
            if entry.error_message:
                line += f" ({entry.error_message})"
            print(line)
    print("=" * 60)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for cache refresh."""
    from tidecast.config import TideSettings, build_forecast_cache

    parser = argparse.ArgumentParser(
        description="Refresh the tide forecast cache for the configured location",
        epilog="""
Examples:
  python -m tidecast.cache.refresh           # Refresh if stale
  python -m tidecast.cache.refresh --status  # Show status
  python -m tidecast.cache.refresh --seed    # Seed sample data

Cron setup (every six hours):
  0 */6 * * * cd /path/to/tidecast && python -m tidecast.cache.refresh -q >> /var/log/tidecast-refresh.log 2>&1
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show current cache status without refreshing",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed sample data if the location has no records",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"Database path (default: $TIDECAST_DB_PATH or {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors",
    )

    args = parser.parse_args(argv)

    # Configure logging
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = TideSettings.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    if args.db is not None:
        settings = replace(settings, db_path=args.db)

    db = TideDatabase(settings.db_path)

    try:
        cache = build_forecast_cache(settings, db=db)

        if args.status:
            print_status(cache.cache_status(), db.get_stats(), db.get_fetch_log(limit=5))
            return 0

        if args.seed:
            seed_if_empty(db, settings.location)
            return 0

        result = run_refresh(cache)
        return 1 if result.status in FAILED_STATUSES else 0

    except Exception as e:
        logger.error(f"Refresh failed: {e}")
        return 1

    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
