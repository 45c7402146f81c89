"""Shared utilities for tidecast pipelines."""

from .base import BasePipeline, ValidationResult
from .io import get_project_root, utcnow

__all__ = [
    "BasePipeline",
    "ValidationResult",
    "get_project_root",
    "utcnow",
]
