"""Shared pytest fixtures for tidecast tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- live: Real CO-OPS API tests, slow, requires network

Run live tests with: pytest -m live --run-live
"""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from tidecast.cache.database import TideDatabase
from tidecast.cache.models import Prediction
from tidecast.pipelines.coops import UpstreamError

LOCATION = "Coyote Point"
STATION_ID = "9414458"


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live API tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "live: real API tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        # --run-live given: don't skip live tests
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeClock:
    """Settable naive UTC clock shared by store and cache in tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider:
    """Prediction provider that returns canned predictions or raises.

    Attributes:
        calls: (station_id, window_hours, now) for every call made
    """

    def __init__(
        self,
        predictions: Optional[list[Prediction]] = None,
        error: Optional[Exception] = None,
    ):
        self.predictions = predictions or []
        self.error = error
        self.calls: list[tuple] = []

    def fetch_predictions(self, station_id, window_hours, now=None):
        self.calls.append((station_id, window_hours, now))
        if self.error is not None:
            raise self.error
        return list(self.predictions)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def now() -> datetime:
    """Fixed "current" instant used across a test."""
    return datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def clock(now) -> FakeClock:
    """Clock starting at ``now``."""
    return FakeClock(now)


@pytest.fixture
def temp_db_path():
    """Create a temporary database path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.duckdb"


@pytest.fixture
def db(temp_db_path, clock):
    """TideDatabase on a temporary file, stamped by the shared clock."""
    database = TideDatabase(temp_db_path, clock=clock)
    yield database
    database.close()


@pytest.fixture
def failing_provider() -> FakeProvider:
    """Provider whose every call fails."""
    return FakeProvider(error=UpstreamError("upstream down"))


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider
