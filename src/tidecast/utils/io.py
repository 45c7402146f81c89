"""I/O utilities for project paths and clocks."""

from datetime import datetime, timezone
from pathlib import Path

# Project root is 4 levels up from this file
_PROJECT_ROOT = Path(__file__).parent.parent.parent.parent


def get_project_root() -> Path:
    """Get the project root directory."""
    return _PROJECT_ROOT


def utcnow() -> datetime:
    """Current time as a naive UTC datetime.

    All instants stored in DuckDB are naive UTC, so comparisons must be
    made against naive UTC values too.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
