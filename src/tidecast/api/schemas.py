"""Pydantic schemas for API request/response validation.

Defines all data models used by the tide API.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from tidecast.cache.models import (
    MANUAL_KINDS,
    MAX_ABS_HEIGHT,
    NewTideRecord,
    NewWaveRecord,
    TideKind,
    TideRecord,
    WaveRecord,
)


def to_naive_utc(value: datetime) -> datetime:
    """Drop timezone info after converting to UTC; naive input is taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mark a stored naive UTC instant as UTC so it serializes with an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TideRecordResponse(BaseModel):
    """Stored tide record.

    Attributes:
        id: Store-assigned identifier
        location: Location key
        timestamp: Instant the height applies to (UTC)
        height: Water level in feet above datum
        kind: high, low, rising, falling or predicted
        created_at: When the record was first written (UTC)
        updated_at: When the record was last written (UTC)
    """

    id: int
    location: str
    timestamp: datetime
    height: float
    kind: TideKind
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: TideRecord) -> "TideRecordResponse":
        return cls(**record.to_dict())


class CreateTideRequest(BaseModel):
    """Request schema for a manually entered tide record.

    ``predicted`` is reserved for forecast refreshes and rejected here.
    """

    location: str = Field(..., min_length=1, description="Location key")
    timestamp: datetime = Field(..., description="Instant the height applies to")
    height: float = Field(
        ...,
        ge=-MAX_ABS_HEIGHT,
        le=MAX_ABS_HEIGHT,
        description="Water level in feet above datum",
    )
    kind: TideKind = Field(..., description="high, low, rising or falling")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "location": "Coyote Point",
                    "timestamp": "2024-01-15T06:30:00Z",
                    "height": 2.5,
                    "kind": "high",
                }
            ]
        }
    }

    @field_validator("location")
    @classmethod
    def _strip_location(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value

    @field_validator("kind")
    @classmethod
    def _manual_kind(cls, value: TideKind) -> TideKind:
        if value not in MANUAL_KINDS:
            raise ValueError("kind must be one of high, low, rising, falling")
        return value

    def to_record(self) -> NewTideRecord:
        return NewTideRecord(
            location=self.location,
            timestamp=to_naive_utc(self.timestamp),
            height=self.height,
            kind=self.kind,
        )


class WaveRecordResponse(BaseModel):
    """Stored wave/wind observation."""

    id: int
    location: str
    timestamp: datetime
    wave_height: float
    wind_speed: float
    wind_direction: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: WaveRecord) -> "WaveRecordResponse":
        return cls(**record.to_dict())


class CreateWaveRequest(BaseModel):
    """Request schema for a wave/wind observation.

    Attributes:
        location: Beach name
        timestamp: Observation time
        wave_height: Wave height in feet (non-negative)
        wind_speed: Wind speed in mph (non-negative)
        wind_direction: Wind direction in degrees (0-360)
    """

    location: str = Field(..., min_length=1, description="Beach name")
    timestamp: datetime = Field(..., description="Observation time")
    wave_height: float = Field(..., ge=0, le=MAX_ABS_HEIGHT, description="Wave height in feet")
    wind_speed: float = Field(..., ge=0, le=MAX_ABS_HEIGHT, description="Wind speed in mph")
    wind_direction: int = Field(..., ge=0, le=360, description="Wind direction in degrees")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "location": "Ocean Beach",
                    "timestamp": "2024-01-15T08:00:00Z",
                    "wave_height": 4.5,
                    "wind_speed": 12.3,
                    "wind_direction": 225,
                }
            ]
        }
    }

    @field_validator("location")
    @classmethod
    def _strip_location(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value

    def to_record(self) -> NewWaveRecord:
        return NewWaveRecord(
            location=self.location,
            timestamp=to_naive_utc(self.timestamp),
            wave_height=self.wave_height,
            wind_speed=self.wind_speed,
            wind_direction=self.wind_direction,
        )


class CurrentConditions(BaseModel):
    """Latest observation for a beach; all fields null when none exist."""

    timestamp: Optional[datetime] = None
    wave_height: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[int] = None


class MarineConditionsResponse(BaseModel):
    """Current conditions plus recent observations, newest first."""

    location: str
    current_conditions: CurrentConditions
    forecast: list[WaveRecordResponse]


class SeedResponse(BaseModel):
    """Result of seeding sample data."""

    message: str
    tide_count: int
    wave_count: int


class HealthResponse(BaseModel):
    """Health check response.

    Attributes:
        status: Service status ('healthy' or 'unhealthy')
        database: Whether the store answered a query
        timestamp: Server time (UTC)
        version: API version
    """

    status: str = Field(
        default="healthy",
        description="Service status",
    )
    database: bool = Field(
        default=False,
        description="Whether the database is reachable",
    )
    timestamp: datetime = Field(
        ...,
        description="Server time",
    )
    version: str = Field(
        default="1.0.0",
        description="API version",
    )


class ErrorResponse(BaseModel):
    """Error response schema.

    Attributes:
        error: Error type/code
        message: Human-readable error message
        detail: Additional error details
    """

    error: str = Field(
        ...,
        description="Error type",
    )
    message: str = Field(
        ...,
        description="Error message",
    )
    detail: Optional[str] = Field(
        default=None,
        description="Additional details",
    )
