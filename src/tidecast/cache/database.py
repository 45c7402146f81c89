"""DuckDB store for tide and wave records."""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import duckdb

from tidecast.cache.models import (
    FetchLog,
    NewTideRecord,
    NewWaveRecord,
    TideKind,
    TideRecord,
    WaveRecord,
    quantize_decimal,
    quantize_height,
    sample_data,
)
from tidecast.utils.io import get_project_root, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = get_project_root() / "data" / "cache" / "tidecast.duckdb"

# SQL schema - DuckDB uses sequences for auto-increment.
# No uniqueness on (location, timestamp): a location's predicted set is
# kept consistent by replace_location, not by the schema.
SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS seq_tide_records_id START 1;
CREATE SEQUENCE IF NOT EXISTS seq_wave_records_id START 1;
CREATE SEQUENCE IF NOT EXISTS seq_fetch_log_id START 1;

CREATE TABLE IF NOT EXISTS tide_records (
    id INTEGER DEFAULT nextval('seq_tide_records_id') PRIMARY KEY,
    location VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    height DECIMAL(6, 2) NOT NULL,
    kind VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tide_location ON tide_records(location, timestamp);

CREATE TABLE IF NOT EXISTS wave_records (
    id INTEGER DEFAULT nextval('seq_wave_records_id') PRIMARY KEY,
    location VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    wave_height DECIMAL(6, 2) NOT NULL,
    wind_speed DECIMAL(6, 2) NOT NULL,
    wind_direction INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_wave_location ON wave_records(location, timestamp);

-- Refresh log for debugging/monitoring
CREATE TABLE IF NOT EXISTS fetch_log (
    id INTEGER DEFAULT nextval('seq_fetch_log_id') PRIMARY KEY,
    source VARCHAR NOT NULL,
    location VARCHAR,
    timestamp TIMESTAMP NOT NULL,
    status VARCHAR NOT NULL,
    records_added INTEGER,
    duration_ms INTEGER,
    error_message VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_fetch_log_time ON fetch_log(timestamp);
"""

_TIDE_COLUMNS = "id, location, timestamp, height, kind, created_at, updated_at"
_WAVE_COLUMNS = (
    "id, location, timestamp, wave_height, wind_speed, wind_direction, created_at, updated_at"
)


class StoreError(Exception):
    """Base class for store failures."""


class StoreReadError(StoreError):
    """A read against the store failed."""


class StoreWriteError(StoreError):
    """A write against the store failed; the write was rolled back."""


def _row_to_tide(row) -> TideRecord:
    return TideRecord(
        id=row[0],
        location=row[1],
        timestamp=row[2],
        height=float(row[3]),
        kind=TideKind(row[4]),
        created_at=row[5],
        updated_at=row[6],
    )


def _row_to_wave(row) -> WaveRecord:
    return WaveRecord(
        id=row[0],
        location=row[1],
        timestamp=row[2],
        wave_height=float(row[3]),
        wind_speed=float(row[4]),
        wind_direction=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


class TideDatabase:
    """DuckDB-backed store of tide predictions/observations and wave data.

    The store owns ``id``, ``created_at`` and ``updated_at``: they are
    assigned on every write from the store's clock and never touched on
    read. A single connection is shared between threads, so every
    statement runs under an internal lock; ``replace_location`` holds
    that lock for its whole transaction, so readers never see the
    location half-replaced.

    Example:
        >>> db = TideDatabase()
        >>> db.select_by_location("Coyote Point")
        [TideRecord(...), ...]
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to DuckDB file. Creates if doesn't exist.
                Use ":memory:" for a throwaway in-process database.
            clock: Source of naive UTC timestamps for audit columns
        """
        if db_path is None:
            db_path = DEFAULT_DB_PATH
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.clock = clock
        self._lock = threading.RLock()
        self._conn = None
        self._init_schema()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get database connection (lazy initialization with retry)."""
        if self._conn is None:
            self._conn = self._connect_with_retry()
        return self._conn

    def _connect_with_retry(self, max_retries: int = 3) -> duckdb.DuckDBPyConnection:
        """Connect to database with retry logic for lock handling."""
        last_error = None
        for attempt in range(max_retries):
            try:
                return duckdb.connect(str(self.db_path))
            except duckdb.IOException as e:
                last_error = e
                if "lock" in str(e).lower() and attempt < max_retries - 1:
                    wait_time = 0.5 * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Database locked, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise
        raise last_error

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            for statement in SCHEMA_SQL.split(";"):
                statement = statement.strip()
                if statement:
                    self.conn.execute(statement)
        logger.info(f"Tide database initialized at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "TideDatabase":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Tide Record Reads
    # -------------------------------------------------------------------------

    def select_by_location(self, location: str) -> list[TideRecord]:
        """Get all tide records for a location, ascending by timestamp.

        Raises:
            StoreReadError: If the query fails
        """
        return self.select_range(location)

    def select_range(
        self,
        location: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> list[TideRecord]:
        """Get tide records for a location within an optional time range.

        Args:
            location: Location key
            start_time: Inclusive lower bound on timestamp
            end_time: Inclusive upper bound on timestamp

        Returns:
            Records ascending by timestamp (ties broken by id)

        Raises:
            StoreReadError: If the query fails
        """
        sql = f"SELECT {_TIDE_COLUMNS} FROM tide_records WHERE location = ?"
        params: list = [location]
        if start_time is not None:
            sql += " AND timestamp >= ?"
            params.append(start_time)
        if end_time is not None:
            sql += " AND timestamp <= ?"
            params.append(end_time)
        sql += " ORDER BY timestamp, id"

        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to read tide records for {location!r}: {e}") from e

        return [_row_to_tide(row) for row in rows]

    def count_by_location(self, location: str) -> int:
        """Number of tide records stored for a location."""
        try:
            with self._lock:
                return self.conn.execute(
                    "SELECT COUNT(*) FROM tide_records WHERE location = ?",
                    [location],
                ).fetchone()[0]
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to count tide records for {location!r}: {e}") from e

    # -------------------------------------------------------------------------
    # Tide Record Writes
    # -------------------------------------------------------------------------

    def _insert_row(self, record: NewTideRecord, now: datetime) -> TideRecord:
        """Insert one validated record. Caller must hold the lock."""
        height = quantize_height(record.height)
        row = self.conn.execute(
            f"""
            INSERT INTO tide_records (location, timestamp, height, kind, created_at, updated_at)
            VALUES (?, ?, CAST(? AS DECIMAL(6, 2)), ?, ?, ?)
            RETURNING {_TIDE_COLUMNS}
            """,
            [record.location, record.timestamp, height, record.kind.value, now, now],
        ).fetchone()
        return _row_to_tide(row)

    def insert(self, record: NewTideRecord) -> TideRecord:
        """Insert a single tide record.

        Returns:
            The stored record with id and audit timestamps

        Raises:
            ValueError: If the record fails validation
            StoreWriteError: If the insert fails
        """
        return self.insert_many([record])[0]

    def insert_many(self, records: list[NewTideRecord]) -> list[TideRecord]:
        """Insert several tide records in one transaction (all or nothing).

        Raises:
            ValueError: If any record fails validation
            StoreWriteError: If the insert fails
        """
        for record in records:
            record.validate()

        with self._lock:
            return self._in_transaction(
                lambda now: [self._insert_row(r, now) for r in records],
                f"insert {len(records)} tide records",
            )

    def delete_by_location(self, location: str) -> int:
        """Delete every tide record for a location.

        Returns:
            Number of rows deleted

        Raises:
            StoreWriteError: If the delete fails
        """
        with self._lock:
            return self._in_transaction(
                lambda now: self._delete_rows(location),
                f"delete tide records for {location!r}",
            )

    def _delete_rows(self, location: str) -> int:
        result = self.conn.execute(
            "DELETE FROM tide_records WHERE location = ?", [location]
        ).fetchone()
        return result[0] if result else 0

    def replace_location(
        self, location: str, records: list[NewTideRecord]
    ) -> list[TideRecord]:
        """Atomically replace every tide record for a location.

        Deletes the location's records and inserts ``records`` in a single
        transaction. On any failure the transaction is rolled back and the
        location keeps its previous contents.

        Args:
            location: Location key
            records: New records, all for ``location``

        Returns:
            The inserted records ascending by timestamp

        Raises:
            ValueError: If a record fails validation or names another location
            StoreWriteError: If the delete or any insert fails
        """
        for record in records:
            record.validate()
            if record.location != location:
                raise ValueError(
                    f"Record for {record.location!r} cannot replace {location!r}"
                )

        def _replace(now: datetime) -> list[TideRecord]:
            deleted = self._delete_rows(location)
            inserted = [self._insert_row(r, now) for r in records]
            logger.debug(
                f"Replaced {deleted} records with {len(inserted)} for {location!r}"
            )
            return inserted

        with self._lock:
            inserted = self._in_transaction(_replace, f"replace tide records for {location!r}")

        return sorted(inserted, key=lambda r: (r.timestamp, r.id))

    def _in_transaction(self, work: Callable[[datetime], object], description: str):
        """Run ``work(now)`` inside a transaction. Caller must hold the lock."""
        now = self.clock()
        try:
            self.conn.begin()
        except duckdb.Error as e:
            raise StoreWriteError(f"Failed to {description}: {e}") from e
        try:
            result = work(now)
            self.conn.commit()
        except duckdb.Error as e:
            self._rollback(description)
            raise StoreWriteError(f"Failed to {description}: {e}") from e
        except Exception:
            self._rollback(description)
            raise
        return result

    def _rollback(self, description: str) -> None:
        try:
            self.conn.rollback()
        except duckdb.Error as e:
            logger.error(f"Rollback failed after {description}: {e}")

    # -------------------------------------------------------------------------
    # Wave Records
    # -------------------------------------------------------------------------

    def insert_wave(self, record: NewWaveRecord) -> WaveRecord:
        """Insert a wave observation.

        Raises:
            ValueError: If the observation fails validation
            StoreWriteError: If the insert fails
        """
        record.validate()

        def _insert(now: datetime) -> WaveRecord:
            row = self.conn.execute(
                f"""
                INSERT INTO wave_records
                (location, timestamp, wave_height, wind_speed, wind_direction, created_at, updated_at)
                VALUES (?, ?, CAST(? AS DECIMAL(6, 2)), CAST(? AS DECIMAL(6, 2)), ?, ?, ?)
                RETURNING {_WAVE_COLUMNS}
                """,
                [
                    record.location,
                    record.timestamp,
                    quantize_height(record.wave_height),
                    quantize_decimal(record.wind_speed, "wind speed"),
                    int(record.wind_direction),
                    now,
                    now,
                ],
            ).fetchone()
            return _row_to_wave(row)

        with self._lock:
            return self._in_transaction(_insert, f"insert wave record for {record.location!r}")

    def select_waves(
        self,
        location: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> list[WaveRecord]:
        """Get wave records for a location, ascending by timestamp.

        Raises:
            StoreReadError: If the query fails
        """
        sql = f"SELECT {_WAVE_COLUMNS} FROM wave_records WHERE location = ?"
        params: list = [location]
        if start_time is not None:
            sql += " AND timestamp >= ?"
            params.append(start_time)
        if end_time is not None:
            sql += " AND timestamp <= ?"
            params.append(end_time)
        sql += " ORDER BY timestamp, id"

        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to read wave records for {location!r}: {e}") from e
        return [_row_to_wave(row) for row in rows]

    def latest_waves(self, location: str, limit: int = 24) -> list[WaveRecord]:
        """Most recent wave records for a location, newest first.

        Raises:
            StoreReadError: If the query fails
        """
        try:
            with self._lock:
                rows = self.conn.execute(
                    f"""
                    SELECT {_WAVE_COLUMNS} FROM wave_records
                    WHERE location = ?
                    ORDER BY timestamp DESC, id DESC
                    LIMIT ?
                    """,
                    [location, limit],
                ).fetchall()
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to read wave records for {location!r}: {e}") from e
        return [_row_to_wave(row) for row in rows]

    # -------------------------------------------------------------------------
    # Sample Data
    # -------------------------------------------------------------------------

    def seed_sample_data(self, location: str) -> dict:
        """Insert development sample tides for ``location`` and beach waves.

        Returns:
            Dict with message, tide_count and wave_count

        Raises:
            StoreWriteError: If an insert fails
        """
        data = sample_data(location)
        tides = self.insert_many(data.tides)
        waves = [self.insert_wave(w) for w in data.waves]
        logger.info(f"Seeded {len(tides)} tide and {len(waves)} wave sample records")
        return {
            "message": "Sample data seeded successfully",
            "tide_count": len(tides),
            "wave_count": len(waves),
        }

    # -------------------------------------------------------------------------
    # Logging Operations
    # -------------------------------------------------------------------------

    def log_fetch(
        self,
        source: str,
        status: str,
        records_added: int,
        duration_ms: int,
        location: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Log an upstream refresh attempt.

        Raises:
            StoreWriteError: If the insert fails
        """
        try:
            with self._lock:
                self.conn.execute(
                    """
                    INSERT INTO fetch_log
                    (source, location, timestamp, status, records_added, duration_ms, error_message)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [source, location, self.clock(), status, records_added, duration_ms, error_message],
                )
        except duckdb.Error as e:
            raise StoreWriteError(f"Failed to log {source} fetch: {e}") from e

    def get_fetch_log(self, limit: int = 20) -> list[FetchLog]:
        """Most recent refresh attempts, newest first.

        Raises:
            StoreReadError: If the query fails
        """
        try:
            with self._lock:
                rows = self.conn.execute(
                    """
                    SELECT source, timestamp, status, records_added, duration_ms, location, error_message
                    FROM fetch_log
                    ORDER BY timestamp DESC, id DESC
                    LIMIT ?
                    """,
                    [limit],
                ).fetchall()
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to read fetch log: {e}") from e

        return [
            FetchLog(
                source=row[0],
                timestamp=row[1],
                status=row[2],
                records_added=row[3],
                duration_ms=row[4],
                location=row[5],
                error_message=row[6],
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Get store statistics.

        Raises:
            StoreReadError: If a query fails
        """
        try:
            with self._lock:
                tide_count = self.conn.execute("SELECT COUNT(*) FROM tide_records").fetchone()[0]
                wave_count = self.conn.execute("SELECT COUNT(*) FROM wave_records").fetchone()[0]
                latest_update = self.conn.execute(
                    "SELECT MAX(updated_at) FROM tide_records"
                ).fetchone()[0]
                fetch_count = self.conn.execute("SELECT COUNT(*) FROM fetch_log").fetchone()[0]
        except duckdb.Error as e:
            raise StoreReadError(f"Failed to read store statistics: {e}") from e

        return {
            "tide_count": tide_count,
            "wave_count": wave_count,
            "latest_update": latest_update,
            "fetch_count": fetch_count,
            "db_path": str(self.db_path),
        }
