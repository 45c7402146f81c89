"""Upstream data pipelines for tidecast."""

from tidecast.pipelines.coops import (
    COOPS_DATA_URL,
    CoopsPredictionPipeline,
    EmptyUpstreamResult,
    TransportError,
    UpstreamError,
)

__all__ = [
    "COOPS_DATA_URL",
    "CoopsPredictionPipeline",
    "EmptyUpstreamResult",
    "TransportError",
    "UpstreamError",
]
