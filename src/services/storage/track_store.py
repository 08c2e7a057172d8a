"""SQLite-backed local track store.

Every call opens its own short-lived connection, so the store can be used
from worker threads without sharing a connection.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from core.exceptions import InvalidInputError, StoreError
from core.models.track_models import LocalTrackRef

if TYPE_CHECKING:
    import logging
    from collections.abc import Iterator

    from core.models.track_models import MergedTagSet

SCHEMA = """
CREATE TABLE IF NOT EXISTS tracks (
    id INTEGER PRIMARY KEY,
    path TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL DEFAULT '',
    artist TEXT NOT NULL DEFAULT '',
    duration REAL,
    bpm REAL,
    key TEXT,
    genre TEXT,
    album TEXT,
    year INTEGER,
    label TEXT,
    isrc TEXT,
    catalog_number TEXT,
    artwork_url TEXT,
    catalog_id INTEGER,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

# MergedTagSet field -> tracks column
FIELD_COLUMNS: dict[str, str] = {
    "title": "title",
    "artist": "artist",
    "bpm": "bpm",
    "key": "key",
    "genre": "genre",
    "label": "label",
    "album": "album",
    "year": "year",
    "isrc": "isrc",
    "catalog_number": "catalog_number",
    "artwork_url": "artwork_url",
}

_SELECT = (
    "SELECT id, path, title, artist, duration, bpm, key, genre, album, year, "
    "label, isrc, catalog_number, catalog_id FROM tracks"
)


def _row_to_ref(row: sqlite3.Row) -> LocalTrackRef:
    return LocalTrackRef(
        id=row["id"],
        path=row["path"],
        title=row["title"] or "",
        artist=row["artist"] or "",
        duration_seconds=row["duration"],
        current_bpm=row["bpm"],
        current_key=row["key"],
        current_genre=row["genre"],
        current_album=row["album"],
        current_year=row["year"],
        current_label=row["label"],
        current_isrc=row["isrc"],
        current_catalog_number=row["catalog_number"],
        catalog_id=row["catalog_id"],
    )


class SqliteTrackStore:
    """Reads track snapshots and applies partial field updates."""

    def __init__(self, db_path: str | Path, console_logger: logging.Logger) -> None:
        self.db_path = Path(db_path)
        self.console_logger = console_logger

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
        except sqlite3.Error as e:
            msg = f"Cannot open track database {self.db_path}: {e}"
            raise StoreError(msg) from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            msg = f"Track database error: {e}"
            raise StoreError(msg) from e
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(SCHEMA)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_catalog_id ON tracks (catalog_id)")
        self.console_logger.debug("Track store ready at %s", self.db_path)

    def get_track(self, track_id: int) -> LocalTrackRef:
        """Return the snapshot of one track.

        Raises:
            InvalidInputError: If no track has this id
            StoreError: If the database cannot be read

        """
        with self._connect() as conn:
            row = conn.execute(f"{_SELECT} WHERE id = ?", (track_id,)).fetchone()
        if row is None:
            msg = f"Track {track_id} not found in database"
            raise InvalidInputError(msg)
        return _row_to_ref(row)

    def list_track_ids(self, only_unmatched: bool = False) -> list[int]:
        """Return track ids in id order, optionally only those never matched."""
        query = "SELECT id FROM tracks"
        if only_unmatched:
            query += " WHERE catalog_id IS NULL"
        with self._connect() as conn:
            return [row["id"] for row in conn.execute(f"{query} ORDER BY id")]

    def update_track_fields(self, track_id: int, merged: MergedTagSet, catalog_id: int | None = None) -> None:
        """Write the populated fields of a merged set, plus the catalog link.

        Only populated fields are touched; with nothing to write this is a no-op.

        Raises:
            StoreError: If the update fails or the track no longer exists

        """
        assignments = {FIELD_COLUMNS[field]: value for field, value in merged.changed_fields().items()}
        if catalog_id is not None:
            assignments["catalog_id"] = catalog_id
        if not assignments:
            return

        columns = ", ".join(f"{column} = ?" for column in assignments)
        params = [*assignments.values(), track_id]
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tracks SET {columns}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                params,
            )
        if cursor.rowcount == 0:
            msg = f"Track {track_id} vanished before update"
            raise StoreError(msg)
        self.console_logger.debug("Updated track %d: %s", track_id, ", ".join(assignments))

    def upsert_track(self, track: LocalTrackRef) -> None:
        """Insert or replace a track row from a snapshot."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tracks (id, path, title, artist, duration, bpm, key, genre, album, year,
                                    label, isrc, catalog_number, catalog_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    path = excluded.path, title = excluded.title, artist = excluded.artist,
                    duration = excluded.duration, bpm = excluded.bpm, key = excluded.key,
                    genre = excluded.genre, album = excluded.album, year = excluded.year,
                    label = excluded.label, isrc = excluded.isrc,
                    catalog_number = excluded.catalog_number, catalog_id = excluded.catalog_id
                """,
                (
                    track.id,
                    track.path,
                    track.title,
                    track.artist,
                    track.duration_seconds,
                    track.current_bpm,
                    track.current_key,
                    track.current_genre,
                    track.current_album,
                    track.current_year,
                    track.current_label,
                    track.current_isrc,
                    track.current_catalog_number,
                    track.catalog_id,
                ),
            )
