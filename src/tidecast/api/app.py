"""FastAPI application for tide and marine data.

Provides REST API endpoints for:
- Cached tide forecast for the configured location
- Manual tide records and wave/wind observations
- Marine conditions per beach
- Sample data seeding and health checks

Example:
    >>> from tidecast.api import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn tidecast.api.app:app --reload
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tidecast.api.schemas import (
    CreateTideRequest,
    CreateWaveRequest,
    CurrentConditions,
    ErrorResponse,
    HealthResponse,
    MarineConditionsResponse,
    SeedResponse,
    TideRecordResponse,
    WaveRecordResponse,
    as_utc,
    to_naive_utc,
)
from tidecast.cache.database import StoreError, StoreReadError, TideDatabase
from tidecast.cache.forecast import TideForecastCache
from tidecast.cache.refresh import seed_if_empty
from tidecast.config import TideSettings, build_forecast_cache
from tidecast.utils.io import utcnow

logger = logging.getLogger(__name__)

# API version
API_VERSION = "1.0.0"

CACHE_STATUS_HEADER = "X-Cache-Status"
CONDITIONS_LIMIT = 24


class AppState:
    """Lazily opened store and forecast cache shared by all requests.

    Nothing touches the database until the first request (or startup),
    so importing the module-level ``app`` has no side effects.
    """

    def __init__(
        self,
        settings: Optional[TideSettings] = None,
        cache: Optional[TideForecastCache] = None,
        db: Optional[TideDatabase] = None,
    ):
        self._settings = settings
        self._cache = cache
        self._db = db if db is not None else (cache.store if cache is not None else None)
        self._lock = threading.Lock()

    @property
    def settings(self) -> TideSettings:
        if self._settings is None:
            self._settings = TideSettings.from_env()
        return self._settings

    @property
    def db(self) -> TideDatabase:
        with self._lock:
            if self._db is None:
                self._db = TideDatabase(self.settings.db_path)
                logger.info(f"Opened tide database at {self._db.db_path}")
            return self._db

    @property
    def cache(self) -> TideForecastCache:
        db = self.db
        with self._lock:
            if self._cache is None:
                self._cache = build_forecast_cache(self.settings, db=db)
            return self._cache

    @property
    def location(self) -> str:
        if self._cache is not None:
            return self._cache.location
        return self.settings.location

    def seed_if_empty(self) -> Optional[dict]:
        """Seed sample data when the configured location has no tide records."""
        return seed_if_empty(self.db, self.location)

    def close(self) -> None:
        with self._lock:
            if self._db is not None:
                self._db.close()


def create_app(
    settings: Optional[TideSettings] = None,
    cache: Optional[TideForecastCache] = None,
    db: Optional[TideDatabase] = None,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        settings: Deployment settings (read from environment if None)
        cache: Forecast cache to serve ``/tides/forecast`` from; built from
            settings if None
        db: Store for plain reads and writes; defaults to the cache's store

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Tidecast API",
        description="Tide forecasts and marine conditions for San Francisco Bay",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state = AppState(settings=settings, cache=cache, db=db)
    app.state.tidecast = state

    @app.on_event("startup")
    async def startup_event():
        """Seed sample data into an empty store."""
        if not state.settings.seed_on_startup:
            return
        try:
            state.seed_if_empty()
        except Exception as e:
            logger.error(f"Failed to seed sample data on startup: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        state.close()

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with custom response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
            ).model_dump(),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Report record validation failures as bad requests."""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="HTTP_400", message=str(exc)).model_dump(),
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        """Report store failures without leaking a traceback."""
        logger.error(f"Store error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="HTTP_500",
                message="Tide store unavailable",
                detail=str(exc),
            ).model_dump(),
        )

    error_responses = {
        400: {"model": ErrorResponse, "description": "Invalid request"},
        500: {"model": ErrorResponse, "description": "Store unavailable"},
    }

    @app.get("/", tags=["info"])
    def root():
        """Root endpoint with API info."""
        return {
            "name": "Tidecast API",
            "version": API_VERSION,
            "location": state.location,
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse, tags=["info"])
    def health_check():
        """Health check endpoint."""
        try:
            state.db.count_by_location(state.location)
            database = True
        except StoreReadError as e:
            logger.warning(f"Health check could not query store: {e}")
            database = False
        return HealthResponse(
            status="healthy" if database else "unhealthy",
            database=database,
            timestamp=as_utc(utcnow()),
            version=API_VERSION,
        )

    @app.get(
        "/tides/forecast",
        response_model=list[TideRecordResponse],
        tags=["tides"],
    )
    def tide_forecast(response: Response):
        """Tide forecast for the configured location.

        Served from the cache, refreshing from NOAA CO-OPS when every stored
        record is stale. The branch taken is reported in ``X-Cache-Status``.
        """
        result = state.cache.get_forecast_result()
        response.headers[CACHE_STATUS_HEADER] = result.status.value
        return [TideRecordResponse.from_record(r) for r in result.records]

    @app.get(
        "/tides",
        response_model=list[TideRecordResponse],
        responses=error_responses,
        tags=["tides"],
    )
    def get_tides(
        location: str = Query(..., min_length=1, description="Location key"),
        start_time: Optional[datetime] = Query(None, description="Inclusive lower bound"),
        end_time: Optional[datetime] = Query(None, description="Inclusive upper bound"),
    ):
        """Stored tide records for a location, ascending by timestamp."""
        records = state.db.select_range(
            location,
            start_time=to_naive_utc(start_time) if start_time else None,
            end_time=to_naive_utc(end_time) if end_time else None,
        )
        return [TideRecordResponse.from_record(r) for r in records]

    @app.post(
        "/tides",
        response_model=TideRecordResponse,
        responses=error_responses,
        tags=["tides"],
    )
    def create_tide(request: CreateTideRequest):
        """Record a manually observed tide (high, low, rising or falling)."""
        record = state.db.insert(request.to_record())
        logger.info(f"Created {record.kind.value} tide record {record.id} for {record.location}")
        return TideRecordResponse.from_record(record)

    @app.get(
        "/waves",
        response_model=list[WaveRecordResponse],
        responses=error_responses,
        tags=["waves"],
    )
    def get_waves(
        location: str = Query(..., min_length=1, description="Beach name"),
        start_time: Optional[datetime] = Query(None, description="Inclusive lower bound"),
        end_time: Optional[datetime] = Query(None, description="Inclusive upper bound"),
    ):
        """Stored wave observations for a beach, ascending by timestamp."""
        records = state.db.select_waves(
            location,
            start_time=to_naive_utc(start_time) if start_time else None,
            end_time=to_naive_utc(end_time) if end_time else None,
        )
        return [WaveRecordResponse.from_record(r) for r in records]

    @app.post(
        "/waves",
        response_model=WaveRecordResponse,
        responses=error_responses,
        tags=["waves"],
    )
    def create_wave(request: CreateWaveRequest):
        """Record a wave/wind observation."""
        record = state.db.insert_wave(request.to_record())
        return WaveRecordResponse.from_record(record)

    @app.get(
        "/conditions/{location}",
        response_model=MarineConditionsResponse,
        responses=error_responses,
        tags=["waves"],
    )
    def marine_conditions(location: str):
        """Latest observation for a beach plus its recent history."""
        recent = state.db.latest_waves(location, limit=CONDITIONS_LIMIT)
        if recent:
            latest = recent[0]
            current = CurrentConditions(
                timestamp=as_utc(latest.timestamp),
                wave_height=latest.wave_height,
                wind_speed=latest.wind_speed,
                wind_direction=latest.wind_direction,
            )
        else:
            current = CurrentConditions()
        return MarineConditionsResponse(
            location=location,
            current_conditions=current,
            forecast=[WaveRecordResponse.from_record(r) for r in recent],
        )

    @app.post(
        "/seed",
        response_model=SeedResponse,
        responses=error_responses,
        tags=["info"],
    )
    def seed():
        """Insert development sample tides and beach observations."""
        return SeedResponse(**state.db.seed_sample_data(state.location))

    return app


# Default app instance for uvicorn
app = create_app()
