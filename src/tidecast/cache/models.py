"""Data models for the tide cache layer."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional

# DECIMAL(6, 2): four integer digits, two fractional
HEIGHT_PRECISION = 6
HEIGHT_SCALE = 2
MAX_ABS_HEIGHT = 9999.99

_QUANTUM = Decimal("0.01")


class TideKind(str, Enum):
    """Kind of tide record.

    PREDICTED is reserved for records written by a provider refresh.
    """

    HIGH = "high"
    LOW = "low"
    RISING = "rising"
    FALLING = "falling"
    PREDICTED = "predicted"


MANUAL_KINDS = frozenset(
    {TideKind.HIGH, TideKind.LOW, TideKind.RISING, TideKind.FALLING}
)


class CacheState(str, Enum):
    """Freshness state of a location's stored records."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class CacheStatus(str, Enum):
    """Branch taken by a single forecast read."""

    EMPTY = "empty"
    FRESH_HIT = "fresh_hit"
    REFRESHED = "refreshed"
    STALE_ON_ERROR = "stale_on_error"
    STALE_REFRESH_IN_FLIGHT = "stale_refresh_in_flight"
    EMPTY_AFTER_READ_FAILURE = "empty_after_read_failure"


def quantize_decimal(value, name: str = "value") -> float:
    """Round a number to two decimal places (half-up), as DECIMAL(6, 2) stores it.

    Args:
        value: float, int, str or Decimal
        name: What the value is, for the error message

    Raises:
        ValueError: If the value is not a finite number
    """
    try:
        dec = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {name}: {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"Invalid {name}: {value!r}")
    return float(dec.quantize(_QUANTUM, rounding=ROUND_HALF_UP))


def quantize_height(value) -> float:
    """Round a height in feet to two decimal places (half-up)."""
    return quantize_decimal(value, "height")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + "Z" if value.tzinfo is None else value.isoformat()


@dataclass
class TideRecord:
    """Stored tide record.

    All instants are naive UTC. ``updated_at`` is the freshness signal:
    it changes only on insert, never on read.
    """

    id: int
    location: str
    timestamp: datetime
    height: float
    kind: TideKind
    created_at: datetime
    updated_at: datetime

    def is_fresh(self, threshold: datetime) -> bool:
        """Whether this record was written at or after ``threshold``."""
        return self.updated_at >= threshold

    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        return {
            "id": self.id,
            "location": self.location,
            "timestamp": _isoformat(self.timestamp),
            "height": self.height,
            "kind": self.kind.value,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


@dataclass
class NewTideRecord:
    """Tide record that has not been written yet."""

    location: str
    timestamp: datetime
    height: float
    kind: TideKind = TideKind.PREDICTED

    def __post_init__(self):
        self.kind = TideKind(self.kind)

    def validate(self) -> None:
        """Check the record can be persisted.

        Raises:
            ValueError: On blank location, non-finite or out-of-range height
        """
        if not self.location or not self.location.strip():
            raise ValueError("location must not be empty")
        if not isinstance(self.timestamp, datetime):
            raise ValueError(f"timestamp must be a datetime, got {type(self.timestamp).__name__}")
        if not math.isfinite(float(self.height)):
            raise ValueError(f"height must be finite, got {self.height}")
        if abs(quantize_height(self.height)) > MAX_ABS_HEIGHT:
            raise ValueError(f"height {self.height} exceeds DECIMAL({HEIGHT_PRECISION},{HEIGHT_SCALE})")


@dataclass(frozen=True)
class Prediction:
    """Single hourly prediction from the upstream provider."""

    timestamp: datetime
    height: float

    def to_record(self, location: str) -> NewTideRecord:
        """Map to an unsaved ``predicted`` record for ``location``."""
        return NewTideRecord(
            location=location,
            timestamp=self.timestamp,
            height=quantize_height(self.height),
            kind=TideKind.PREDICTED,
        )


@dataclass
class WaveRecord:
    """Stored wave/wind observation for a beach."""

    id: int
    location: str
    timestamp: datetime
    wave_height: float
    wind_speed: float
    wind_direction: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        return {
            "id": self.id,
            "location": self.location,
            "timestamp": _isoformat(self.timestamp),
            "wave_height": self.wave_height,
            "wind_speed": self.wind_speed,
            "wind_direction": self.wind_direction,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


@dataclass
class NewWaveRecord:
    """Wave observation that has not been written yet."""

    location: str
    timestamp: datetime
    wave_height: float
    wind_speed: float
    wind_direction: int

    def validate(self) -> None:
        """Check the observation can be persisted.

        Raises:
            ValueError: On blank location or values outside physical ranges
        """
        if not self.location or not self.location.strip():
            raise ValueError("location must not be empty")
        if self.wave_height < 0:
            raise ValueError(f"wave_height must be non-negative, got {self.wave_height}")
        if self.wind_speed < 0:
            raise ValueError(f"wind_speed must be non-negative, got {self.wind_speed}")
        if not 0 <= self.wind_direction <= 360:
            raise ValueError(f"wind_direction must be within 0-360, got {self.wind_direction}")


@dataclass
class ForecastResult:
    """Outcome of one forecast read: the records served and how."""

    records: list[TideRecord]
    status: CacheStatus
    error: Optional[str] = None
    stale_count: int = 0

    @property
    def served_stale(self) -> bool:
        """Whether the records served are past the freshness window."""
        return self.status in (
            CacheStatus.STALE_ON_ERROR,
            CacheStatus.STALE_REFRESH_IN_FLIGHT,
        )

    def __str__(self) -> str:
        msg = f"ForecastResult({self.status.value}, records={len(self.records)})"
        if self.error:
            msg += f" error={self.error}"
        return msg


@dataclass
class FetchLog:
    """Log entry for an upstream refresh attempt."""

    source: str  # 'coops'
    timestamp: datetime
    status: str  # 'success', 'error'
    records_added: int
    duration_ms: int
    location: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class SampleData:
    """Sample records for development seeding."""

    tides: list[NewTideRecord] = field(default_factory=list)
    waves: list[NewWaveRecord] = field(default_factory=list)


def sample_data(location: str) -> SampleData:
    """Development sample data: tide turns for ``location`` and beach waves."""
    tides = [
        NewTideRecord(location, datetime(2024, 1, 15, 6, 30), 2.5, TideKind.HIGH),
        NewTideRecord(location, datetime(2024, 1, 15, 12, 45), 0.8, TideKind.LOW),
        NewTideRecord(location, datetime(2024, 1, 15, 18, 20), 3.1, TideKind.HIGH),
        NewTideRecord(location, datetime(2024, 1, 16, 1, 15), 0.3, TideKind.LOW),
        NewTideRecord(location, datetime(2024, 1, 16, 7, 0), 2.8, TideKind.HIGH),
    ]
    waves = [
        NewWaveRecord("Ocean Beach", datetime(2024, 1, 15, 8, 0), 4.5, 12.3, 225),
        NewWaveRecord("Ocean Beach", datetime(2024, 1, 15, 14, 0), 5.2, 15.7, 240),
        NewWaveRecord("Pacifica", datetime(2024, 1, 15, 8, 0), 3.8, 10.5, 230),
        NewWaveRecord("Pacifica", datetime(2024, 1, 15, 14, 0), 4.1, 13.2, 245),
        NewWaveRecord("Half Moon Bay", datetime(2024, 1, 15, 8, 0), 6.0, 18.5, 250),
        NewWaveRecord("Half Moon Bay", datetime(2024, 1, 15, 14, 0), 6.8, 20.1, 255),
        NewWaveRecord("Santa Cruz", datetime(2024, 1, 15, 8, 0), 3.2, 8.9, 210),
        NewWaveRecord("Santa Cruz", datetime(2024, 1, 15, 14, 0), 3.7, 11.4, 220),
    ]
    return SampleData(tides=tides, waves=waves)
