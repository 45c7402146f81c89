"""Tide-height forecasts for a fixed observation point, cached in DuckDB."""

__version__ = "0.1.0"

# The cache package must load before pipelines: pipelines import cache models.
from tidecast.cache import TideDatabase, TideForecastCache  # noqa: E402
from tidecast.pipelines import CoopsPredictionPipeline  # noqa: E402

__all__ = [
    "CoopsPredictionPipeline",
    "TideDatabase",
    "TideForecastCache",
    "__version__",
]
