"""Tests for I/O utilities."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from tidecast.utils.io import get_project_root, utcnow


class TestGetProjectRoot:
    """Tests for get_project_root function."""

    def test_returns_path(self):
        """Should return a Path object."""
        root = get_project_root()
        assert isinstance(root, Path)


class TestUtcnow:
    """Tests for the naive UTC clock."""

    def test_is_naive(self):
        """Should carry no tzinfo."""
        assert utcnow().tzinfo is None

    def test_matches_utc(self):
        """Should agree with an aware UTC clock."""
        aware = datetime.now(timezone.utc).replace(tzinfo=None)
        assert abs(utcnow() - aware) < timedelta(seconds=5)
