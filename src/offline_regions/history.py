"""
SQLite-based history of offline region downloads.

Tracks, per event:
- Which region was requested for it
- Whether the download is in progress, done or failed
- How many attempts it took and the last error

The in-memory registry decides what gets downloaded; this history is a
record for inspection (see the `stats` CLI command) and survives restarts.
"""

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .bounds import CoordinateBounds
from .errors import DownloadCancelledError
from .events import PointOfInterest
from .orchestrator.listeners import DownloadListener


@dataclass
class RegionRecord:
    """Record of an event region in the history database."""
    event_id: str
    region_id: str
    source: str
    title: Optional[str]
    lat: float
    lon: float
    status: str  # 'downloading', 'downloaded', 'failed', 'cancelled'
    attempts: int
    started_at: Optional[str]
    completed_at: Optional[str]
    error_message: Optional[str]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DownloadHistory(DownloadListener):
    """
    Records download attempts using SQLite.

    All methods are synchronous since SQLite operations are fast and they run
    between downloads, not during them.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS regions (
                    event_id TEXT PRIMARY KEY,
                    region_id TEXT,
                    source TEXT,
                    title TEXT,
                    lat REAL,
                    lon REAL,
                    status TEXT,
                    attempts INTEGER DEFAULT 0,
                    started_at TEXT,
                    completed_at TEXT,
                    error_message TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_regions_status
                ON regions(status)
            """)

    # --- Metadata methods ---

    def set_metadata(self, key: str, value: str):
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, value)
            )

    def get_metadata(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = ?",
                (key,)
            ).fetchone()
            return row["value"] if row else None

    # --- Region methods ---

    def mark_started(self, poi: PointOfInterest, bounds: CoordinateBounds):
        """Record a new attempt for an event's region."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO regions
                (event_id, region_id, source, title, lat, lon, status, attempts, started_at)
                VALUES (?, ?, ?, ?, ?, ?, 'downloading', 1, ?)
                ON CONFLICT(event_id) DO UPDATE SET
                    region_id = excluded.region_id,
                    source = excluded.source,
                    title = excluded.title,
                    lat = excluded.lat,
                    lon = excluded.lon,
                    status = 'downloading',
                    attempts = attempts + 1,
                    started_at = excluded.started_at,
                    error_message = NULL
                """,
                (
                    poi.id,
                    bounds.region_id,
                    poi.source.value,
                    poi.title,
                    poi.location.latitude,
                    poi.location.longitude,
                    _now(),
                )
            )

    def mark_downloaded(self, event_id: str):
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE regions
                SET status = 'downloaded', completed_at = ?
                WHERE event_id = ?
                """,
                (_now(), event_id)
            )

    def mark_failed(self, event_id: str, error: str):
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE regions SET status = 'failed', error_message = ? WHERE event_id = ?",
                (error, event_id)
            )

    def mark_cancelled(self, event_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE regions SET status = 'cancelled' WHERE event_id = ?",
                (event_id,)
            )

    def get_record(self, event_id: str) -> Optional[RegionRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM regions WHERE event_id = ?",
                (event_id,)
            ).fetchone()
            return RegionRecord(**dict(row)) if row else None

    def get_records(self, status: Optional[str] = None) -> list[RegionRecord]:
        with self._get_connection() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM regions ORDER BY started_at, event_id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM regions WHERE status = ? ORDER BY started_at, event_id",
                    (status,)
                ).fetchall()
            return [RegionRecord(**dict(r)) for r in rows]

    def get_stats(self) -> dict:
        """Count of regions per status."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) as count FROM regions GROUP BY status"
            ).fetchall()
            return {r["status"]: r["count"] for r in rows}

    def reset_in_progress(self):
        """Mark regions left 'downloading' by a crash as cancelled."""
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE regions SET status = 'cancelled' WHERE status = 'downloading'"
            )

    # --- DownloadListener ---

    def on_session_start(self, user_id: str):
        # Nothing is in flight yet, so leftover 'downloading' rows are stale
        self.reset_in_progress()
        self.set_metadata("user_id", user_id)

    def on_download_start(self, poi: PointOfInterest, bounds: CoordinateBounds):
        self.mark_started(poi, bounds)

    def on_download_complete(self, poi: PointOfInterest, error: Optional[Exception]):
        if error is None:
            self.mark_downloaded(poi.id)
        elif isinstance(error, DownloadCancelledError):
            self.mark_cancelled(poi.id)
        else:
            self.mark_failed(poi.id, str(error))
