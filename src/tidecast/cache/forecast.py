"""Tide forecast cache.

Serves stored tide records for one location while they are fresh, refreshes
them from the upstream provider once every stored record has aged past the
freshness window, and falls back to the stale records when a refresh fails.

A location's records are fresh when their ``updated_at`` is within the
freshness window (default 36 hours). A refresh requests ``horizon_hours``
(default 48) of hourly predictions and atomically replaces everything stored
for the location with ``predicted`` records.

Reads never raise: every failure degrades to a return value, and the branch
taken is reported as a ``CacheStatus`` on ``ForecastResult``.
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from tidecast.cache.database import StoreError, TideDatabase
from tidecast.cache.models import (
    CacheState,
    CacheStatus,
    ForecastResult,
    Prediction,
    TideKind,
    TideRecord,
)
from tidecast.pipelines.coops import EmptyUpstreamResult, UpstreamError
from tidecast.utils.io import utcnow

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_HOURS = 36
DEFAULT_HORIZON_HOURS = 48

FETCH_SOURCE = "coops"

# One refresh lock per location key, shared by every cache in the process
_REFRESH_LOCKS: dict[str, threading.Lock] = {}
_REFRESH_LOCKS_LOCK = threading.Lock()


def _refresh_lock(location: str) -> threading.Lock:
    with _REFRESH_LOCKS_LOCK:
        lock = _REFRESH_LOCKS.get(location)
        if lock is None:
            lock = _REFRESH_LOCKS[location] = threading.Lock()
        return lock


class PredictionProvider(Protocol):
    """Anything that can supply hourly predictions for a station."""

    def fetch_predictions(
        self, station_id: str, window_hours: int, now: Optional[datetime] = None
    ) -> list[Prediction]:
        ...


def partition(
    records: list[TideRecord], threshold: datetime
) -> tuple[list[TideRecord], list[TideRecord]]:
    """Split records into (fresh, stale) by ``updated_at`` against ``threshold``.

    Order within each part follows the input order.
    """
    fresh = [r for r in records if r.is_fresh(threshold)]
    stale = [r for r in records if not r.is_fresh(threshold)]
    return fresh, stale


def classify(records: list[TideRecord], threshold: datetime) -> CacheState:
    """Freshness state of a location's records.

    FRESH as soon as one record is fresh; STALE only when all are.
    """
    if not records:
        return CacheState.EMPTY
    fresh, _ = partition(records, threshold)
    return CacheState.FRESH if fresh else CacheState.STALE


class TideForecastCache:
    """Read-through forecast cache for a single location.

    Example:
        >>> db = TideDatabase()
        >>> cache = TideForecastCache(db, CoopsPredictionPipeline(),
        ...                           location="Coyote Point", station_id="9414458")
        >>> records = cache.get_forecast()
        >>> cache.last_result.status
        <CacheStatus.FRESH_HIT: 'fresh_hit'>
    """

    def __init__(
        self,
        store: TideDatabase,
        provider: PredictionProvider,
        location: str,
        station_id: str,
        freshness_hours: float = DEFAULT_FRESHNESS_HOURS,
        horizon_hours: int = DEFAULT_HORIZON_HOURS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the cache.

        Args:
            store: Persistent store of tide records
            provider: Upstream prediction provider
            location: Location key the cache is bound to
            station_id: Upstream station identifier for ``location``
            freshness_hours: Maximum age (by ``updated_at``) served without refresh
            horizon_hours: Hours of predictions requested on refresh
            clock: Source of naive UTC "now"
        """
        if freshness_hours <= 0:
            raise ValueError(f"freshness_hours must be positive, got {freshness_hours}")
        if horizon_hours <= 0:
            raise ValueError(f"horizon_hours must be positive, got {horizon_hours}")

        self.store = store
        self.provider = provider
        self.location = location
        self.station_id = station_id
        self.freshness_window = timedelta(hours=freshness_hours)
        self.horizon_hours = horizon_hours
        self.clock = clock
        self.last_result: Optional[ForecastResult] = None

    def threshold(self, now: Optional[datetime] = None) -> datetime:
        """Oldest ``updated_at`` still considered fresh."""
        return (now or self.clock()) - self.freshness_window

    def get_forecast(self) -> list[TideRecord]:
        """Forecast records for the bound location, ascending by timestamp.

        Never raises; see ``get_forecast_result`` for the branch taken.
        """
        return self.get_forecast_result().records

    def get_forecast_result(self) -> ForecastResult:
        """Forecast records plus the cache branch that produced them."""
        result = self._get_forecast_result()
        self.last_result = result
        logger.debug(f"{self.location}: {result}")
        return result

    def _get_forecast_result(self) -> ForecastResult:
        records = self._read_with_retry()
        if records is None:
            return ForecastResult(
                records=[],
                status=CacheStatus.EMPTY_AFTER_READ_FAILURE,
                error="store read failed twice",
            )

        if not records:
            logger.debug(f"Cache EMPTY for {self.location}")
            return ForecastResult(records=[], status=CacheStatus.EMPTY)

        now = self.clock()
        fresh, stale = partition(records, self.threshold(now))

        if fresh:
            logger.debug(
                f"Cache HIT for {self.location}: {len(fresh)} fresh, "
                f"{len(stale)} stale not served"
            )
            return ForecastResult(records=fresh, status=CacheStatus.FRESH_HIT)

        logger.debug(f"Cache STALE for {self.location}: {len(stale)} records")
        return self._refresh_single_flight(stale)

    def _read_once(self) -> list[TideRecord]:
        return self.store.select_by_location(self.location)

    def _read_with_retry(self) -> Optional[list[TideRecord]]:
        """Read the location's records, retrying once. None if both attempts fail."""
        try:
            return self._read_once()
        except Exception as e:
            logger.warning(f"Store read failed for {self.location}, retrying: {e}")

        try:
            return self._read_once()
        except Exception as e:
            logger.error(f"Store read retry failed for {self.location}: {e}")
            return None

    def _refresh_single_flight(self, stale: list[TideRecord]) -> ForecastResult:
        lock = _refresh_lock(self.location)
        if not lock.acquire(blocking=False):
            logger.info(f"Refresh already in flight for {self.location}, serving stale")
            return ForecastResult(
                records=stale,
                status=CacheStatus.STALE_REFRESH_IN_FLIGHT,
                stale_count=len(stale),
            )

        try:
            # A refresh may have completed between our read and taking the lock
            try:
                current = self._read_once()
            except Exception as e:
                logger.warning(f"Store re-read failed for {self.location}: {e}")
                current = stale

            now = self.clock()
            fresh, current_stale = partition(current, self.threshold(now))
            if fresh:
                logger.debug(f"Cache HIT for {self.location} after concurrent refresh")
                return ForecastResult(records=fresh, status=CacheStatus.FRESH_HIT)

            return self._refresh(current_stale or stale, now)
        finally:
            lock.release()

    def _refresh(self, stale: list[TideRecord], now: datetime) -> ForecastResult:
        """Replace the location's records with fresh predictions.

        On any failure the store is left untouched and ``stale`` is served.
        """
        start_time = time.time()
        logger.info(
            f"Refreshing {self.location} from station {self.station_id} "
            f"({self.horizon_hours}h horizon)"
        )

        try:
            predictions = self.provider.fetch_predictions(
                self.station_id, self.horizon_hours, now=now
            )
            if not predictions:
                raise EmptyUpstreamResult(f"No predictions for station {self.station_id}")

            records = [p.to_record(self.location) for p in predictions]
            inserted = self.store.replace_location(self.location, records)

        except UpstreamError as e:
            return self._serve_stale(stale, start_time, f"upstream: {e}")
        except StoreError as e:
            return self._serve_stale(stale, start_time, f"store: {e}")
        except Exception as e:
            logger.exception(f"Unexpected refresh failure for {self.location}")
            return self._serve_stale(stale, start_time, f"{type(e).__name__}: {e}")

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Refreshed {self.location}: {len(inserted)} predictions ({duration_ms}ms)")
        self._log_fetch("success", len(inserted), duration_ms)
        return ForecastResult(records=inserted, status=CacheStatus.REFRESHED)

    def _serve_stale(
        self, stale: list[TideRecord], start_time: float, error: str
    ) -> ForecastResult:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.warning(
            f"Refresh failed for {self.location}, serving {len(stale)} stale records: {error}"
        )
        self._log_fetch("error", 0, duration_ms, error_message=error[:500])
        return ForecastResult(
            records=stale,
            status=CacheStatus.STALE_ON_ERROR,
            error=error,
            stale_count=len(stale),
        )

    def _log_fetch(
        self,
        status: str,
        records_added: int,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            self.store.log_fetch(
                source=FETCH_SOURCE,
                status=status,
                records_added=records_added,
                duration_ms=duration_ms,
                location=self.location,
                error_message=error_message,
            )
        except Exception as e:
            logger.warning(f"Could not record fetch log for {self.location}: {e}")

    def cache_status(self) -> dict:
        """Current freshness state of the bound location, without refreshing.

        Returns:
            Dict with state, record counts, newest ``updated_at`` and its age
        """
        now = self.clock()
        try:
            records = self._read_once()
        except Exception as e:
            logger.error(f"Store read failed for {self.location}: {e}")
            return {
                "location": self.location,
                "station_id": self.station_id,
                "state": None,
                "error": str(e),
            }

        threshold = self.threshold(now)
        fresh, stale = partition(records, threshold)
        latest = max((r.updated_at for r in records), default=None)

        return {
            "location": self.location,
            "station_id": self.station_id,
            "state": classify(records, threshold).value,
            "total": len(records),
            "fresh": len(fresh),
            "stale": len(stale),
            "predicted": sum(1 for r in records if r.kind == TideKind.PREDICTED),
            "latest_update": latest,
            "age_hours": (now - latest).total_seconds() / 3600 if latest else None,
            "freshness_hours": self.freshness_window.total_seconds() / 3600,
            "horizon_hours": self.horizon_hours,
        }
