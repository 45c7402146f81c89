"""Tide forecast caching layer.

Persists tide records in DuckDB and serves forecasts for one location,
refreshing from NOAA CO-OPS when every stored record is stale.

A one-off refresh can be run via:
    python -m tidecast.cache.refresh

Or scheduled via cron:
    # Every six hours
    0 */6 * * * python -m tidecast.cache.refresh -q
"""

from tidecast.cache.models import (
    CacheState,
    CacheStatus,
    ForecastResult,
    NewTideRecord,
    NewWaveRecord,
    Prediction,
    TideKind,
    TideRecord,
    WaveRecord,
)
from tidecast.cache.database import (
    StoreError,
    StoreReadError,
    StoreWriteError,
    TideDatabase,
)
from tidecast.cache.forecast import (
    DEFAULT_FRESHNESS_HOURS,
    DEFAULT_HORIZON_HOURS,
    TideForecastCache,
    classify,
    partition,
)

__all__ = [
    "CacheState",
    "CacheStatus",
    "DEFAULT_FRESHNESS_HOURS",
    "DEFAULT_HORIZON_HOURS",
    "ForecastResult",
    "NewTideRecord",
    "NewWaveRecord",
    "Prediction",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "TideDatabase",
    "TideForecastCache",
    "TideKind",
    "TideRecord",
    "WaveRecord",
    "classify",
    "partition",
]
