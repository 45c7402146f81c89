"""Tide and marine conditions API for tidecast.

This module provides:

- create_app: Factory function to create FastAPI application
- CreateTideRequest / CreateWaveRequest: Request schemas for manual records
- TideRecordResponse / WaveRecordResponse: Stored record schemas
- MarineConditionsResponse: Current conditions plus recent observations

Note: FastAPI-dependent exports (create_app, AppState) are lazy-loaded
to allow importing schemas without FastAPI installed.
"""

# Schemas can be imported directly (only depend on pydantic)
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
)


# Lazy imports for FastAPI-dependent components
def __getattr__(name):
    """Lazy load FastAPI-dependent components."""
    if name in ("create_app", "AppState"):
        from tidecast.api.app import AppState, create_app
        if name == "create_app":
            return create_app
        return AppState
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "create_app",
    "AppState",
    "CreateTideRequest",
    "CreateWaveRequest",
    "CurrentConditions",
    "ErrorResponse",
    "HealthResponse",
    "MarineConditionsResponse",
    "SeedResponse",
    "TideRecordResponse",
    "WaveRecordResponse",
]
