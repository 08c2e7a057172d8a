"""Shared fixtures for integration tests: a real SQLite store and real FLAC files."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from services.storage.track_store import SqliteTrackStore
from services.tags.tag_writer import MutagenTagWriter
from tests.factories import make_flac_bytes, make_local_track

if TYPE_CHECKING:
    from unittest.mock import MagicMock


@pytest.fixture
def library(tmp_path: Path, mock_console_logger: MagicMock) -> SqliteTrackStore:
    """Store holding two FLAC tracks: Strobe (id 1) and Ghosts 'n' Stuff (id 2)."""
    store = SqliteTrackStore(tmp_path / "library.db", mock_console_logger)
    store.initialize()
    for track in (
        make_local_track(path=str(tmp_path / "strobe.flac")),
        make_local_track(id=2, path=str(tmp_path / "ghosts.flac"), title="Ghosts 'n' Stuff", duration_seconds=None),
    ):
        Path(track.path).write_bytes(make_flac_bytes())
        store.upsert_track(track)
    return store


@pytest.fixture
def flac_writer(mock_console_logger: MagicMock, mock_error_logger: MagicMock) -> MutagenTagWriter:
    return MutagenTagWriter(mock_console_logger, mock_error_logger)
