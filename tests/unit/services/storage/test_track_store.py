"""Tests for the SQLite track store."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from core.exceptions import InvalidInputError, StoreError
from core.models.track_models import MergedTagSet
from services.storage.track_store import SqliteTrackStore
from tests.factories import STROBE_CATALOG_ID, make_local_track

if TYPE_CHECKING:
    from pathlib import Path
    from unittest.mock import MagicMock


@pytest.fixture
def store(tmp_path: Path, mock_console_logger: MagicMock) -> SqliteTrackStore:
    store = SqliteTrackStore(tmp_path / "db" / "library.db", mock_console_logger)
    store.initialize()
    store.upsert_track(make_local_track())
    store.upsert_track(make_local_track(id=2, path="/music/b.mp3", title="Ghosts 'n' Stuff", catalog_id=42))
    store.upsert_track(make_local_track(id=3, path="/music/c.mp3", title="Raise Your Weapon"))
    return store


class TestReads:
    """Tests for get_track and list_track_ids."""

    def test_initialize_creates_parent_directory(self, store: SqliteTrackStore) -> None:
        assert store.db_path.is_file()

    def test_get_track_round_trips_snapshot(self, store: SqliteTrackStore) -> None:
        track = store.get_track(1)
        assert track == make_local_track()

    def test_unknown_id(self, store: SqliteTrackStore) -> None:
        with pytest.raises(InvalidInputError, match="Track 99 not found"):
            store.get_track(99)

    def test_list_all_and_unmatched(self, store: SqliteTrackStore) -> None:
        assert store.list_track_ids() == [1, 2, 3]
        assert store.list_track_ids(only_unmatched=True) == [1, 3]

    def test_upsert_replaces_existing_row(self, store: SqliteTrackStore) -> None:
        store.upsert_track(make_local_track(title="Strobe (Edit)"))
        assert store.get_track(1).title == "Strobe (Edit)"
        assert store.list_track_ids() == [1, 2, 3]


class TestUpdates:
    """Tests for partial field updates."""

    def test_only_populated_fields_change(self, store: SqliteTrackStore) -> None:
        store.update_track_fields(1, MergedTagSet(key="B min", year=2009), catalog_id=STROBE_CATALOG_ID)

        track = store.get_track(1)
        assert track.current_key == "B min"
        assert track.current_year == 2009
        assert track.catalog_id == STROBE_CATALOG_ID
        assert track.current_bpm == 128.0
        assert track.current_genre == "Electronic"

    def test_empty_update_is_noop(self, store: SqliteTrackStore) -> None:
        store.update_track_fields(1, MergedTagSet())
        assert store.get_track(1) == make_local_track()

    def test_catalog_link_alone(self, store: SqliteTrackStore) -> None:
        store.update_track_fields(3, MergedTagSet(), catalog_id=7)
        assert store.list_track_ids(only_unmatched=True) == [1]

    def test_missing_row(self, store: SqliteTrackStore) -> None:
        with pytest.raises(StoreError, match="vanished"):
            store.update_track_fields(99, MergedTagSet(genre="House"))


def test_database_errors_become_store_errors(tmp_path: Path, mock_console_logger: MagicMock) -> None:
    path = tmp_path / "library.db"
    sqlite3.connect(path).close()
    store = SqliteTrackStore(path, mock_console_logger)

    with pytest.raises(StoreError, match="Track database error"):
        store.get_track(1)
