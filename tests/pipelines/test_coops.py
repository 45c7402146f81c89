"""Tests for the NOAA CO-OPS prediction pipeline.

HTTP is mocked through the pipeline's requests session; the live test is
skipped unless --run-live is given.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from tidecast.cache.models import Prediction
from tidecast.pipelines.coops import (
    COOPS_DATA_URL,
    REQUEST_TIMEOUT,
    CoopsPredictionPipeline,
    EmptyUpstreamResult,
    TransportError,
    UpstreamError,
)
from tidecast.utils import BasePipeline

STATION_ID = "9414458"
NOW = datetime(2024, 6, 1, 22, 30)


def _response(payload=None, status_code=200, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


def _pipeline(response=None, error=None) -> tuple[CoopsPredictionPipeline, MagicMock]:
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return CoopsPredictionPipeline(session=session), session


@pytest.fixture
def sample_payload():
    """Three hourly predictions, deliberately out of order."""
    return {
        "predictions": [
            {"t": "2024-06-01 23:00", "v": "3.405"},
            {"t": "2024-06-01 22:00", "v": "3.20"},
            {"t": "2024-06-02 00:00", "v": "-0.12"},
        ]
    }


class TestBuildParams:
    """Tests for request parameters."""

    def test_fixed_parameters(self):
        """Product, datum, units, time zone, interval and format are fixed."""
        params = CoopsPredictionPipeline().build_params(STATION_ID, 48, NOW)

        assert params["product"] == "predictions"
        assert params["datum"] == "MLLW"
        assert params["units"] == "english"
        assert params["time_zone"] == "gmt"
        assert params["interval"] == "h"
        assert params["format"] == "json"
        assert params["station"] == STATION_ID

    def test_dates_span_window_by_calendar_day(self):
        """Begin/end are the calendar days of now and now + window."""
        params = CoopsPredictionPipeline().build_params(STATION_ID, 48, NOW)

        assert params["begin_date"] == "20240601"
        assert params["end_date"] == "20240603"

    def test_short_window_crossing_midnight(self):
        """A window ending after midnight includes the next day."""
        params = CoopsPredictionPipeline().build_params(STATION_ID, 2, NOW)
        assert (params["begin_date"], params["end_date"]) == ("20240601", "20240602")

    def test_rejects_non_positive_window(self):
        """A zero window is a programming error."""
        with pytest.raises(ValueError):
            CoopsPredictionPipeline().build_params(STATION_ID, 0, NOW)


class TestDownload:
    """Tests for the HTTP request and transport error mapping."""

    def test_request_uses_timeout_and_url(self, sample_payload):
        """One GET to the data getter with the configured timeout."""
        pipeline, session = _pipeline(_response(sample_payload))

        assert pipeline.download(STATION_ID, 48, NOW) == sample_payload

        session.get.assert_called_once()
        args, kwargs = session.get.call_args
        assert args[0] == COOPS_DATA_URL
        assert kwargs["timeout"] == REQUEST_TIMEOUT
        assert kwargs["params"]["station"] == STATION_ID

    def test_connection_error(self):
        """Connection failures become TransportError."""
        pipeline, _ = _pipeline(error=requests.ConnectionError("refused"))
        with pytest.raises(TransportError, match="refused"):
            pipeline.download(STATION_ID, 48, NOW)

    def test_timeout(self):
        """Timeouts become TransportError."""
        pipeline, _ = _pipeline(error=requests.Timeout("read timed out"))
        with pytest.raises(TransportError):
            pipeline.download(STATION_ID, 48, NOW)

    def test_non_success_status(self):
        """Non-2xx responses become TransportError."""
        pipeline, _ = _pipeline(_response(status_code=503))
        with pytest.raises(TransportError, match="503"):
            pipeline.download(STATION_ID, 48, NOW)

    def test_invalid_json(self):
        """Unparseable bodies become TransportError."""
        pipeline, _ = _pipeline(_response(json_error=True))
        with pytest.raises(TransportError, match="invalid JSON"):
            pipeline.download(STATION_ID, 48, NOW)

    def test_error_object(self):
        """CO-OPS error objects become TransportError with their message."""
        payload = {"error": {"message": "No Predictions data was found."}}
        pipeline, _ = _pipeline(_response(payload))
        with pytest.raises(TransportError, match="No Predictions data"):
            pipeline.download(STATION_ID, 48, NOW)

    def test_non_object_payload(self):
        """A JSON list is not a CO-OPS response."""
        pipeline, _ = _pipeline(_response([1, 2, 3]))
        with pytest.raises(TransportError):
            pipeline.download(STATION_ID, 48, NOW)

    def test_transport_errors_are_upstream_errors(self):
        """Callers can catch every provider failure as UpstreamError."""
        assert issubclass(TransportError, UpstreamError)
        assert issubclass(EmptyUpstreamResult, UpstreamError)


class TestProcess:
    """Tests for response parsing."""

    def test_pipeline_inherits_from_base(self):
        """CoopsPredictionPipeline is a BasePipeline."""
        assert isinstance(CoopsPredictionPipeline(), BasePipeline)

    def test_process_sorts_and_parses(self, sample_payload):
        """Timestamps parse as UTC wall time and rows sort ascending."""
        df = CoopsPredictionPipeline().process(sample_payload)

        assert list(df.columns) == ["timestamp", "height"]
        assert list(df["timestamp"]) == [
            pd.Timestamp("2024-06-01 22:00"),
            pd.Timestamp("2024-06-01 23:00"),
            pd.Timestamp("2024-06-02 00:00"),
        ]
        assert list(df["height"]) == [3.20, 3.405, -0.12]

    @pytest.mark.parametrize("payload", [{}, {"predictions": []}, {"predictions": None}])
    def test_missing_or_empty_predictions(self, payload):
        """Missing or empty predictions are an empty upstream result."""
        with pytest.raises(EmptyUpstreamResult):
            CoopsPredictionPipeline().process(payload)

    def test_predictions_not_a_list(self):
        """Non-list predictions are malformed."""
        with pytest.raises(UpstreamError):
            CoopsPredictionPipeline().process({"predictions": "3.2"})

    def test_unparseable_values_coerced(self):
        """Bad values become NaT/NaN for validation to report."""
        df = CoopsPredictionPipeline().process(
            {"predictions": [{"t": "not a time", "v": "abc"}, {"t": "2024-06-01 22:00"}]}
        )
        assert df["timestamp"].isna().sum() == 1
        assert df["height"].isna().sum() == 2


class TestValidation:
    """Tests for prediction validation."""

    def test_validate_good_data(self, sample_payload):
        """Clean predictions validate."""
        pipeline = CoopsPredictionPipeline()
        result = pipeline.validate(pipeline.process(sample_payload))

        assert result.valid
        assert result.total_rows == 3
        assert result.missing_pct == 0
        assert result.stats["height_min"] == -0.12
        assert result.stats["height_max"] == 3.405

    def test_validate_empty(self):
        """An empty frame is invalid."""
        result = CoopsPredictionPipeline().validate(pd.DataFrame(columns=["timestamp", "height"]))
        assert not result.valid
        assert result.total_rows == 0

    def test_validate_duplicates(self):
        """Duplicate timestamps are reported."""
        pipeline = CoopsPredictionPipeline()
        df = pipeline.process(
            {"predictions": [{"t": "2024-06-01 22:00", "v": "1"}, {"t": "2024-06-01 22:00", "v": "2"}]}
        )
        result = pipeline.validate(df)
        assert not result.valid
        assert any("Duplicate" in issue for issue in result.issues)

    def test_validate_implausible_heights(self):
        """Heights beyond any real tide are outliers."""
        pipeline = CoopsPredictionPipeline()
        df = pipeline.process({"predictions": [{"t": "2024-06-01 22:00", "v": "250.0"}]})
        result = pipeline.validate(df)
        assert not result.valid
        assert result.outliers_count == 1

    def test_validate_unparseable(self):
        """Unparseable values are reported with their share."""
        pipeline = CoopsPredictionPipeline()
        df = pipeline.process({"predictions": [{"t": "2024-06-01 22:00", "v": "n/a"}]})
        result = pipeline.validate(df)
        assert not result.valid
        assert result.missing_pct == 50.0


class TestFetchPredictions:
    """Tests for the full fetch."""

    def test_fetch_returns_quantized_predictions(self, sample_payload):
        """Predictions come back ascending with two-decimal heights."""
        pipeline, _ = _pipeline(_response(sample_payload))

        predictions = pipeline.fetch_predictions(STATION_ID, 48, now=NOW)

        assert predictions == [
            Prediction(datetime(2024, 6, 1, 22, 0), 3.20),
            Prediction(datetime(2024, 6, 1, 23, 0), 3.41),
            Prediction(datetime(2024, 6, 2, 0, 0), -0.12),
        ]
        assert all(type(p.timestamp) is datetime for p in predictions)

    def test_fetch_malformed_raises_upstream_error(self):
        """Invalid predictions raise UpstreamError instead of storing garbage."""
        pipeline, _ = _pipeline(_response({"predictions": [{"t": "garbage", "v": "1.0"}]}))
        with pytest.raises(UpstreamError, match="failed validation"):
            pipeline.fetch_predictions(STATION_ID, 48, now=NOW)

    def test_fetch_empty_raises(self):
        """Empty predictions raise EmptyUpstreamResult."""
        pipeline, _ = _pipeline(_response({"predictions": []}))
        with pytest.raises(EmptyUpstreamResult):
            pipeline.fetch_predictions(STATION_ID, 48, now=NOW)

    def test_single_request_no_retry(self):
        """A failure is not retried inside the provider."""
        pipeline, session = _pipeline(error=requests.ConnectionError("refused"))
        with pytest.raises(TransportError):
            pipeline.fetch_predictions(STATION_ID, 48, now=NOW)
        assert session.get.call_count == 1


@pytest.mark.live
class TestLiveCoops:
    """Live request against the CO-OPS API."""

    def test_fetch_live_predictions(self):
        """The default station returns hourly predictions."""
        predictions = CoopsPredictionPipeline().fetch_predictions(STATION_ID, 24)
        assert len(predictions) >= 24
        assert all(isinstance(p, Prediction) for p in predictions)
