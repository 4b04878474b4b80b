"""SQLite Sample Store for What Did I Do.

This module owns the single on-disk database file. It creates and migrates
the schema, appends and deletes screenshot samples, serves paginated reads,
and provides ``count_by_category``, the grouped-count primitive every
aggregator in ``whatdidido.stats`` and ``whatdidido.export`` builds on. Notes
and stored day analyses live in the same file.

Database Schema:
    screenshots table:
        - id: Primary key (autoincrement)
        - timestamp: UTC ISO-8601 instant, e.g. 2025-03-04T08:15:00.000Z
        - category: WORK, LEARN, SOCIAL, ENTERTAINMENT or UNKNOWN
        - activity: Classifier label
        - image_data: Full-resolution image (BLOB)
        - thumbnail_data: Preview image (BLOB)
        - description: Optional text (added by migration on old databases)
        - created_at: Row creation time
    notes table: per-day free-text notes
    day_analyses table: stored analyses of a day

Key Features:
- Explicit lifecycle: ``initialize()`` opens the connection, ``close()`` ends it
- One connection guarded by a re-entrant lock, so statements run one at a
  time in the order callers acquire the lock
- ``snapshot()`` groups several reads into one consistent transaction
- No cache: every query goes back to the indexed table

Example:
    >>> store = SampleStore("/tmp/whatdidido.db")
    >>> store.initialize()
    >>> sample_id = store.insert(Sample(
    ...     timestamp="2025-03-04T08:15:00.000Z",
    ...     category="WORK",
    ...     activity="Writing docs",
    ...     image=png_bytes,
    ...     thumbnail=thumb_bytes,
    ... ))
    >>> store.count_by_category(start, end, group_by="day")
    {'2025-03-04': {'WORK': 1}}
    >>> store.close()
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .errors import StorageError, ValidationError
from .models import DayAnalysis, Note, Sample, is_valid_category
from .timeparser import ensure_ordered, format_instant, parse_date, span_bounds

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# SQL expressions turning the stored UTC instant into a local calendar bucket.
GROUP_BY_EXPRESSIONS = {
    "day": "date(timestamp, 'localtime')",
    "month": "strftime('%Y-%m', timestamp, 'localtime')",
}

_SAMPLE_COLUMNS = "id, timestamp, category, activity, thumbnail_data, description, created_at"


def _now_iso() -> str:
    return format_instant(datetime.now(timezone.utc))


def _row_to_sample(row: sqlite3.Row) -> Sample:
    keys = row.keys()
    return Sample(
        id=row["id"],
        timestamp=row["timestamp"],
        category=row["category"],
        activity=row["activity"],
        image=bytes(row["image_data"]) if "image_data" in keys and row["image_data"] is not None else None,
        thumbnail=bytes(row["thumbnail_data"]) if "thumbnail_data" in keys and row["thumbnail_data"] is not None else None,
        description=row["description"] if "description" in keys else None,
        created_at=row["created_at"] if "created_at" in keys else None,
    )


class SampleStore:
    """SQLite persistence for screenshot samples, notes and day analyses.

    The store is constructed explicitly and passed to the aggregators; there
    is no module-level database handle. Call ``initialize()`` once before use
    (it is idempotent) and ``close()`` on shutdown, or use the store as a
    context manager.

    Attributes:
        db_path (str): Path of the SQLite file, or ":memory:".

    Raises:
        StorageError: From any method when SQLite reports an error.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Set up the store without touching the disk.

        Args:
            db_path: Path to the SQLite file. Defaults to
                ~/whatdidido-data/whatdidido.db.
        """
        if db_path is None:
            db_path = Path.home() / "whatdidido-data" / "whatdidido.db"
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def __enter__(self) -> "SampleStore":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _open(self) -> None:
        if self.db_path != ":memory:":
            try:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create data directory for {self.db_path}: {e}") from e
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        logger.info(f"Opened database {self.db_path}")

    def initialize(self) -> None:
        """Open the connection and make sure the schema exists.

        Safe to call on every startup and against databases written by an
        earlier version: missing tables and indexes are created, and the
        ``description`` column is added when absent. The "duplicate column"
        error from that step is expected and ignored; anything else is fatal.

        Raises:
            StorageError: If the file cannot be opened or migrated.
        """
        with self._lock:
            if self._conn is None:
                self._open()

            with self.get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS screenshots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        timestamp TEXT NOT NULL,
                        category TEXT NOT NULL,
                        activity TEXT NOT NULL,
                        image_data BLOB NOT NULL,
                        thumbnail_data BLOB NOT NULL,
                        description TEXT,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # Databases from before descriptions were captured lack the column
                try:
                    conn.execute("ALTER TABLE screenshots ADD COLUMN description TEXT")
                    logger.info("Added 'description' column to screenshots table")
                except sqlite3.OperationalError as e:
                    if "duplicate column" not in str(e).lower():
                        raise

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_screenshots_timestamp
                    ON screenshots(timestamp)
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_screenshots_timestamp_category
                    ON screenshots(timestamp, category)
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS notes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        content TEXT NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_notes_date ON notes(date)
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS day_analyses (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        content TEXT NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_day_analyses_date ON day_analyses(date)
                """)

                conn.commit()

    def close(self) -> None:
        """Close the connection. Calling it twice is harmless."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info(f"Closed database {self.db_path}")

    @contextmanager
    def get_connection(self):
        """Yield the shared connection while holding the store lock.

        SQLite errors raised inside the block roll back any open transaction
        and are re-raised as StorageError.

        Yields:
            sqlite3.Connection: Connection with Row factory enabled

        Raises:
            StorageError: If the store is not initialized or SQLite fails.
        """
        with self._lock:
            if self._conn is None:
                raise StorageError("Database not initialized. Call initialize() first.")
            conn = self._conn
            try:
                yield conn
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.rollback()
                logger.error(f"Database error for {self.db_path}: {e}")
                raise StorageError(f"Database error for {self.db_path}: {e}") from e

    @contextmanager
    def snapshot(self):
        """Run several reads against one consistent view of the database.

        Holds the store lock and a single read transaction for the duration
        of the block, so no insert or delete from this process can land
        between the reads. Do not write inside a snapshot.

        Example:
            >>> with store.snapshot():
            ...     counts = store.count_by_category(start, end)
            ...     page = store.fetch_range(start, end, limit=100)
        """
        with self.get_connection() as conn:
            outer = not conn.in_transaction
            if outer:
                conn.execute("BEGIN")
            try:
                yield self
            finally:
                if outer and conn.in_transaction:
                    conn.commit()

    # =========================================================================
    # Samples
    # =========================================================================

    def insert(self, sample: Sample) -> int:
        """Append one sample.

        The timestamp is normalized to the stored UTC form before writing.

        Args:
            sample: Sample to store. ``id`` is ignored.

        Returns:
            int: Id assigned by the database.

        Raises:
            ValidationError: Unknown category, missing timestamp, activity
                or binary payloads.
            StorageError: If the write fails (disk full, corruption).
        """
        if not is_valid_category(sample.category):
            raise ValidationError(f"Unknown category: {sample.category!r}")
        if sample.activity is None:
            raise ValidationError("activity is required")
        if sample.image is None or sample.thumbnail is None:
            raise ValidationError("image and thumbnail data are required")
        timestamp = format_instant(sample.timestamp)

        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO screenshots (
                    timestamp, category, activity, image_data, thumbnail_data, description
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    timestamp,
                    sample.category,
                    sample.activity,
                    sqlite3.Binary(sample.image),
                    sqlite3.Binary(sample.thumbnail),
                    sample.description,
                ),
            )
            conn.commit()
            logger.debug(f"Saved sample {cursor.lastrowid} ({sample.category}) at {timestamp}")
            return cursor.lastrowid

    def delete(self, sample_id: int) -> bool:
        """Delete one sample by id.

        Returns:
            bool: True if a row was removed, False if the id did not exist.
        """
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM screenshots WHERE id = ?", (sample_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted sample {sample_id}")
        return deleted

    def get(self, sample_id: int, include_image: bool = False) -> Optional[Sample]:
        """Fetch a single sample, or None if it does not exist."""
        columns = _SAMPLE_COLUMNS + (", image_data" if include_image else "")
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT {columns} FROM screenshots WHERE id = ?",
                (sample_id,),
            ).fetchone()
            return _row_to_sample(row) if row else None

    def fetch_range(
        self,
        start,
        end,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        include_image: bool = False,
    ) -> List[Sample]:
        """Return samples with ``start <= timestamp <= end``, newest first.

        Ordering is ``timestamp DESC, id DESC``, so a call with a larger
        ``limit`` always starts with the rows a smaller ``limit`` returned.

        Args:
            start: Inclusive range start (ISO string or datetime).
            end: Inclusive range end (ISO string or datetime).
            limit: Maximum rows to return; None for no limit.
            offset: Rows to skip.
            include_image: Also load full-resolution image bytes. Off by
                default to keep responses small; thumbnails are always loaded.

        Raises:
            ValidationError: Negative limit/offset or end before start.
        """
        start, end = ensure_ordered(start, end)
        if offset < 0 or (limit is not None and limit < 0):
            raise ValidationError("limit and offset must not be negative")

        columns = _SAMPLE_COLUMNS + (", image_data" if include_image else "")
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {columns}
                FROM screenshots
                WHERE timestamp BETWEEN ? AND ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (start, end, -1 if limit is None else limit, offset),
            )
            return [_row_to_sample(row) for row in cursor.fetchall()]

    def count_by_category(self, start, end, group_by: Optional[str] = None) -> Dict:
        """Count samples per category in an inclusive range.

        This is the primitive all aggregators build on. Only categories that
        actually occur are returned; zero-filling is left to the caller.

        Args:
            start: Inclusive range start.
            end: Inclusive range end.
            group_by: None for range totals, "day" for local calendar days
                (YYYY-MM-DD) or "month" for local calendar months (YYYY-MM).

        Returns:
            ``{category: count}`` when ``group_by`` is None, otherwise
            ``{bucket: {category: count}}`` ordered by bucket.

        Raises:
            ValidationError: Unknown ``group_by`` or end before start.
            StorageError: If the query fails.
        """
        start, end = ensure_ordered(start, end)

        if group_by is None:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    """
                    SELECT category, COUNT(*) AS count
                    FROM screenshots
                    WHERE timestamp BETWEEN ? AND ?
                    GROUP BY category
                    """,
                    (start, end),
                )
                return {row["category"]: row["count"] for row in cursor.fetchall()}

        if group_by not in GROUP_BY_EXPRESSIONS:
            raise ValidationError(f"Unknown grouping: {group_by!r}")

        bucket_expr = GROUP_BY_EXPRESSIONS[group_by]
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {bucket_expr} AS bucket, category, COUNT(*) AS count
                FROM screenshots
                WHERE timestamp BETWEEN ? AND ?
                GROUP BY bucket, category
                ORDER BY bucket
                """,
                (start, end),
            )
            buckets: Dict[str, Dict[str, int]] = {}
            for row in cursor.fetchall():
                buckets.setdefault(row["bucket"], {})[row["category"]] = row["count"]
            return buckets

    def count_in_range(self, start, end) -> int:
        """Number of samples with a timestamp in the inclusive range."""
        start, end = ensure_ordered(start, end)
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM screenshots WHERE timestamp BETWEEN ? AND ?",
                (start, end),
            ).fetchone()
            return row["count"]

    def recent(self, n: int = 10) -> List[Sample]:
        """Metadata (no image payloads) of the ``n`` most recent samples."""
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, timestamp, category, activity, description, created_at
                FROM screenshots
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (n,),
            )
            return [_row_to_sample(row) for row in cursor.fetchall()]

    # =========================================================================
    # Notes
    # =========================================================================

    def save_note(self, day, content: str) -> int:
        """Attach a note to a local calendar day and return its id."""
        date_str = parse_date(day).isoformat()
        now = _now_iso()
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO notes (date, timestamp, content, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (date_str, now, content, now),
            )
            conn.commit()
            return cursor.lastrowid

    def get_notes_for_date(self, day) -> List[Note]:
        """Notes for one day, newest first."""
        date_str = parse_date(day).isoformat()
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, date, timestamp, content, created_at, updated_at
                FROM notes
                WHERE date = ?
                ORDER BY timestamp DESC, id DESC
                """,
                (date_str,),
            )
            return [Note(**dict(row)) for row in cursor.fetchall()]

    def get_notes_in_range(self, first_day, last_day) -> List[Note]:
        """Notes for an inclusive span of days, oldest first."""
        first, last = parse_date(first_day), parse_date(last_day)
        span_bounds(first, last)
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, date, timestamp, content, created_at, updated_at
                FROM notes
                WHERE date BETWEEN ? AND ?
                ORDER BY date, timestamp
                """,
                (first.isoformat(), last.isoformat()),
            )
            return [Note(**dict(row)) for row in cursor.fetchall()]

    def update_note(self, note_id: int, content: str) -> bool:
        """Replace a note's content. False if the note does not exist."""
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notes SET content = ?, updated_at = ? WHERE id = ?",
                (content, _now_iso(), note_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_note(self, note_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            conn.commit()
            return cursor.rowcount > 0

    # =========================================================================
    # Day analyses
    # =========================================================================

    def save_day_analysis(self, day, content: str) -> int:
        """Store an analysis for a day. Older analyses are kept as history."""
        date_str = parse_date(day).isoformat()
        with self.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO day_analyses (date, timestamp, content) VALUES (?, ?, ?)",
                (date_str, _now_iso(), content),
            )
            conn.commit()
            logger.info(f"Saved day analysis {cursor.lastrowid} for {date_str}")
            return cursor.lastrowid

    def get_day_analysis(self, day) -> Optional[DayAnalysis]:
        """Most recent analysis for a day, or None."""
        date_str = parse_date(day).isoformat()
        with self.get_connection() as conn:
            row = conn.execute(
                """
                SELECT id, date, timestamp, content, created_at
                FROM day_analyses
                WHERE date = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
                """,
                (date_str,),
            ).fetchone()
            return DayAnalysis(**dict(row)) if row else None

    def get_analyses_in_range(self, first_day, last_day) -> List[DayAnalysis]:
        first, last = parse_date(first_day), parse_date(last_day)
        span_bounds(first, last)
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, date, timestamp, content, created_at
                FROM day_analyses
                WHERE date BETWEEN ? AND ?
                ORDER BY date, timestamp
                """,
                (first.isoformat(), last.isoformat()),
            )
            return [DayAnalysis(**dict(row)) for row in cursor.fetchall()]

    def update_analysis(self, analysis_id: int, content: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE day_analyses SET content = ? WHERE id = ?",
                (content, analysis_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_analysis(self, analysis_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM day_analyses WHERE id = ?", (analysis_id,))
            conn.commit()
            return cursor.rowcount > 0
