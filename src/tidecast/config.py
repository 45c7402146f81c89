"""Deployment configuration for tidecast.

Settings are fixed per deployment and read from ``TIDECAST_*`` environment
variables; callers of the forecast never supply them.

    TIDECAST_DB_PATH            DuckDB file (default data/cache/tidecast.duckdb)
    TIDECAST_LOCATION           Location key served by the forecast cache
    TIDECAST_STATION_ID         CO-OPS station for that location
    TIDECAST_FRESHNESS_HOURS    Freshness window in hours (default 36)
    TIDECAST_HORIZON_HOURS      Forecast horizon in hours (default 48)
    TIDECAST_COOPS_URL          CO-OPS data getter endpoint
    TIDECAST_REQUEST_TIMEOUT    Upstream request timeout in seconds (default 30)
    TIDECAST_SEED_ON_STARTUP    Seed sample data into an empty store (default 1)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from tidecast.cache.database import DEFAULT_DB_PATH, TideDatabase
from tidecast.cache.forecast import (
    DEFAULT_FRESHNESS_HOURS,
    DEFAULT_HORIZON_HOURS,
    TideForecastCache,
)
from tidecast.pipelines.coops import COOPS_DATA_URL, REQUEST_TIMEOUT, CoopsPredictionPipeline

ENV_PREFIX = "TIDECAST_"

DEFAULT_LOCATION = "Coyote Point"
# San Mateo Bridge (west end), the nearest harmonic station to Coyote Point
DEFAULT_STATION_ID = "9414458"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a whole number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class TideSettings:
    """Per-deployment settings for the forecast cache and API."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    location: str = DEFAULT_LOCATION
    station_id: str = DEFAULT_STATION_ID
    freshness_hours: float = DEFAULT_FRESHNESS_HOURS
    horizon_hours: int = DEFAULT_HORIZON_HOURS
    coops_url: str = COOPS_DATA_URL
    request_timeout: float = REQUEST_TIMEOUT
    seed_on_startup: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "TideSettings":
        """Build settings from ``TIDECAST_*`` environment variables.

        Args:
            env: Mapping to read instead of ``os.environ`` (for tests)

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if env is None else env

        db_path = env.get(ENV_PREFIX + "DB_PATH")
        location = env.get(ENV_PREFIX + "LOCATION", DEFAULT_LOCATION).strip()
        station_id = env.get(ENV_PREFIX + "STATION_ID", DEFAULT_STATION_ID).strip()
        if not location:
            raise ValueError(f"{ENV_PREFIX}LOCATION must not be empty")
        if not station_id:
            raise ValueError(f"{ENV_PREFIX}STATION_ID must not be empty")

        return cls(
            db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
            location=location,
            station_id=station_id,
            freshness_hours=_get_float(env, "FRESHNESS_HOURS", DEFAULT_FRESHNESS_HOURS),
            horizon_hours=_get_int(env, "HORIZON_HOURS", DEFAULT_HORIZON_HOURS),
            coops_url=env.get(ENV_PREFIX + "COOPS_URL", COOPS_DATA_URL),
            request_timeout=_get_float(env, "REQUEST_TIMEOUT", REQUEST_TIMEOUT),
            seed_on_startup=_get_bool(env, "SEED_ON_STARTUP", True),
        )


def build_forecast_cache(
    settings: TideSettings, db: Optional[TideDatabase] = None
) -> TideForecastCache:
    """Wire store, CO-OPS pipeline and cache from settings.

    Args:
        settings: Deployment settings
        db: Existing database to reuse; opened from ``settings.db_path`` if None
    """
    store = db or TideDatabase(settings.db_path)
    provider = CoopsPredictionPipeline(
        base_url=settings.coops_url,
        timeout=settings.request_timeout,
    )
    return TideForecastCache(
        store=store,
        provider=provider,
        location=settings.location,
        station_id=settings.station_id,
        freshness_hours=settings.freshness_hours,
        horizon_hours=settings.horizon_hours,
    )
