"""NOAA CO-OPS tide prediction pipeline.

CO-OPS (Center for Operational Oceanographic Products and Services) publishes
harmonic tide predictions for US stations through its data getter API. This
pipeline requests hourly predictions for one station over a forecast window
and converts them to ``Prediction`` objects.

Data source:
- https://api.tidesandcurrents.noaa.gov/api/prod/datagetter

Request parameters: product=predictions, datum=MLLW, units=english,
time_zone=gmt, interval=h, format=json. Begin/end dates have calendar-day
granularity, so the response covers whole UTC days around the window.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import pandas as pd
import requests

from tidecast.cache.models import Prediction, quantize_height
from tidecast.utils import BasePipeline, ValidationResult, utcnow

logger = logging.getLogger(__name__)

COOPS_DATA_URL = "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter"

COOPS_PARAMS = {
    "product": "predictions",
    "datum": "MLLW",
    "units": "english",
    "time_zone": "gmt",
    "interval": "h",
    "format": "json",
}

# Timestamp format of the "t" field in JSON responses
COOPS_TIME_FORMAT = "%Y-%m-%d %H:%M"

REQUEST_TIMEOUT = 30  # seconds

# Anything beyond this is not a tide (feet, relative to MLLW)
MAX_PLAUSIBLE_HEIGHT_FT = 60.0


class UpstreamError(Exception):
    """The prediction provider could not supply predictions."""


class TransportError(UpstreamError):
    """Upstream unreachable, non-success status, or an unreadable response."""


class EmptyUpstreamResult(UpstreamError):
    """Upstream answered successfully but returned zero predictions."""


class CoopsPredictionPipeline(BasePipeline):
    """Hourly tide predictions from NOAA CO-OPS.

    Performs exactly one HTTP request per ``fetch_predictions`` call; there
    is no internal retry. Every failure surfaces as an ``UpstreamError``.

    Output schema (DataFrame from ``process``):
        - timestamp: datetime64 - UTC instant of the prediction
        - height: float - predicted height in feet above MLLW

    Example:
        >>> pipeline = CoopsPredictionPipeline()
        >>> predictions = pipeline.fetch_predictions("9414458", 48)
        >>> predictions[0]
        Prediction(timestamp=datetime(...), height=3.2)
    """

    def __init__(
        self,
        base_url: str = COOPS_DATA_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the CO-OPS pipeline.

        Args:
            base_url: Data getter endpoint
            timeout: Request timeout in seconds
            session: Optional requests session (connection reuse, testing)
        """
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_params(
        self, station_id: str, window_hours: int, now: Optional[datetime] = None
    ) -> dict[str, str]:
        """Build query parameters for a prediction request.

        Args:
            station_id: CO-OPS station identifier
            window_hours: Length of the forecast window in hours
            now: Window start (naive UTC). Defaults to current time.

        Returns:
            Query parameter dict
        """
        if window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {window_hours}")
        start = now or utcnow()
        end = start + timedelta(hours=window_hours)

        params = dict(COOPS_PARAMS)
        params.update(
            {
                "station": station_id,
                "begin_date": start.strftime("%Y%m%d"),
                "end_date": end.strftime("%Y%m%d"),
            }
        )
        return params

    def download(
        self, station_id: str, window_hours: int, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        """Request raw predictions JSON for a station.

        Raises:
            TransportError: On connection failure, non-2xx status, invalid
                JSON, or an ``error`` object in the response body
        """
        params = self.build_params(station_id, window_hours, now)
        logger.info(
            f"Requesting CO-OPS predictions for station {station_id} "
            f"({params['begin_date']} - {params['end_date']})"
        )

        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise TransportError(f"CO-OPS request failed for station {station_id}: {e}") from e
        except ValueError as e:
            raise TransportError(f"CO-OPS returned invalid JSON for station {station_id}") from e

        if not isinstance(payload, dict):
            raise TransportError(f"CO-OPS returned unexpected payload type {type(payload).__name__}")

        if "error" in payload:
            error = payload["error"]
            if isinstance(error, dict):
                message = error.get("message", "Unknown error from CO-OPS API")
            else:
                message = str(error)
            raise TransportError(f"CO-OPS error for station {station_id}: {message}")

        return payload

    def process(self, payload: dict[str, Any]) -> pd.DataFrame:
        """Convert a CO-OPS response into a DataFrame.

        Args:
            payload: Decoded JSON ``{"predictions": [{"t": ..., "v": ...}, ...]}``

        Returns:
            DataFrame with ``timestamp`` and ``height`` columns, sorted by time.
            Unparseable values become NaT/NaN and are reported by ``validate``.

        Raises:
            EmptyUpstreamResult: If ``predictions`` is missing or empty
            UpstreamError: If ``predictions`` is not a list of objects
        """
        predictions = payload.get("predictions")
        if not predictions:
            raise EmptyUpstreamResult("CO-OPS response contains no predictions")
        if not isinstance(predictions, list) or not all(isinstance(p, dict) for p in predictions):
            raise UpstreamError("CO-OPS predictions must be a list of objects")

        df = pd.DataFrame(predictions)
        for col in ("t", "v"):
            if col not in df.columns:
                df[col] = None

        result = pd.DataFrame(
            {
                "timestamp": pd.to_datetime(df["t"], format=COOPS_TIME_FORMAT, errors="coerce"),
                "height": pd.to_numeric(df["v"], errors="coerce"),
            }
        )
        return result.sort_values("timestamp", kind="stable").reset_index(drop=True)

    def validate(self, df: pd.DataFrame) -> ValidationResult:
        """Validate processed predictions.

        Args:
            df: DataFrame from ``process``

        Returns:
            ValidationResult with quality metrics
        """
        if df.empty:
            return ValidationResult(
                valid=False,
                total_rows=0,
                missing_pct=100.0,
                issues=["No predictions available"],
            )

        total_rows = len(df)
        issues = []

        missing_cells = int(df["timestamp"].isna().sum() + df["height"].isna().sum())
        missing_pct = missing_cells / (total_rows * 2) * 100
        if missing_cells:
            issues.append(f"Unparseable values: {missing_cells}")

        duplicates = int(df["timestamp"].dropna().duplicated().sum())
        if duplicates:
            issues.append(f"Duplicate timestamps: {duplicates}")

        implausible = df["height"].abs() > MAX_PLAUSIBLE_HEIGHT_FT
        outliers_count = int(implausible.sum())
        if outliers_count:
            issues.append(f"Implausible heights: {outliers_count}")

        stats = {}
        heights = df["height"].dropna()
        if not heights.empty:
            stats = {
                "height_min": float(heights.min()),
                "height_max": float(heights.max()),
                "first": df["timestamp"].min(),
                "last": df["timestamp"].max(),
            }

        return ValidationResult(
            valid=not issues,
            total_rows=total_rows,
            missing_pct=missing_pct,
            outliers_count=outliers_count,
            issues=issues,
            stats=stats,
        )

    def fetch_predictions(
        self, station_id: str, window_hours: int, now: Optional[datetime] = None
    ) -> list[Prediction]:
        """Fetch hourly predictions for a station.

        Args:
            station_id: CO-OPS station identifier
            window_hours: Forecast horizon in hours, starting at ``now``
            now: Window start (naive UTC). Defaults to current time.

        Returns:
            Non-empty list of predictions ascending by timestamp

        Raises:
            TransportError: Upstream unreachable or non-success response
            EmptyUpstreamResult: Zero predictions returned
            UpstreamError: Predictions present but malformed
        """
        payload = self.download(station_id, window_hours, now)
        df = self.process(payload)
        validation = self.validate(df)

        if not validation.valid:
            raise UpstreamError(
                f"CO-OPS predictions for station {station_id} failed validation: "
                f"{validation.issues}"
            )

        predictions = [
            Prediction(timestamp=ts.to_pydatetime(), height=quantize_height(height))
            for ts, height in zip(df["timestamp"], df["height"])
        ]
        logger.info(f"Fetched {len(predictions)} predictions for station {station_id}")
        return predictions
