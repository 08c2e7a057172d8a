"""Tests for MutagenTagWriter using a minimal FLAC file."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from mutagen.flac import FLAC

from core.exceptions import TagWriteError
from core.models.track_models import MergedTagSet
from services.tags.tag_writer import MutagenTagWriter, detect_image_mime
from tests.factories import make_flac_bytes

if TYPE_CHECKING:
    from pathlib import Path
    from unittest.mock import MagicMock

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16


@pytest.fixture
def flac_file(tmp_path: Path) -> Path:
    path = tmp_path / "strobe.flac"
    path.write_bytes(make_flac_bytes())
    return path


@pytest.fixture
def writer(mock_console_logger: MagicMock, mock_error_logger: MagicMock) -> MutagenTagWriter:
    return MutagenTagWriter(mock_console_logger, mock_error_logger)


class TestWriteTags:
    """Tests for write_tags on FLAC."""

    def test_writes_populated_fields(self, writer: MutagenTagWriter, flac_file: Path) -> None:
        writer.write_tags(str(flac_file), MergedTagSet(title="Strobe", bpm=127.6, key="B min", label="mau5trap"))

        tags = {key.lower(): value for key, value in writer.read_tags(str(flac_file)).items()}
        assert tags["title"] == "Strobe"
        assert tags["bpm"] == "128"
        assert tags["initialkey"] == "B min"
        assert tags["label"] == "mau5trap"
        assert "genre" not in tags

    def test_artwork_replaces_front_cover(self, writer: MutagenTagWriter, flac_file: Path) -> None:
        writer.write_tags(str(flac_file), MergedTagSet(), artwork=JPEG_BYTES)
        writer.write_tags(str(flac_file), MergedTagSet(), artwork=PNG_BYTES)

        pictures = FLAC(flac_file).pictures
        assert len(pictures) == 1
        assert pictures[0].mime == "image/png"
        assert pictures[0].data == PNG_BYTES

    def test_no_temp_file_left_behind(self, writer: MutagenTagWriter, flac_file: Path) -> None:
        writer.write_tags(str(flac_file), MergedTagSet(genre="Progressive House"))
        assert sorted(p.name for p in flac_file.parent.iterdir()) == ["strobe.flac"]

    def test_nothing_to_write_leaves_file_untouched(self, writer: MutagenTagWriter, flac_file: Path) -> None:
        before = flac_file.read_bytes()
        writer.write_tags(str(flac_file), MergedTagSet())
        assert flac_file.read_bytes() == before


class TestWriteErrors:
    """Failures surface as TagWriteError carrying the path."""

    def test_missing_file(self, writer: MutagenTagWriter, tmp_path: Path) -> None:
        missing = str(tmp_path / "gone.mp3")
        with pytest.raises(TagWriteError) as exc_info:
            writer.write_tags(missing, MergedTagSet(title="x"))
        assert exc_info.value.path == missing

    def test_unsupported_format(self, writer: MutagenTagWriter, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("not audio", encoding="utf-8")

        with pytest.raises(TagWriteError, match="Unsupported audio format"):
            writer.write_tags(str(path), MergedTagSet(title="x"))
        assert path.read_text(encoding="utf-8") == "not audio"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["notes.txt"]

    def test_read_tags_of_missing_file(self, writer: MutagenTagWriter, tmp_path: Path) -> None:
        with pytest.raises(TagWriteError):
            writer.read_tags(str(tmp_path / "gone.flac"))


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (JPEG_BYTES, "image/jpeg"),
        (PNG_BYTES, "image/png"),
        (b"GIF89a", "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"unknown", "image/jpeg"),
    ],
)
def test_detect_image_mime(data: bytes, expected: str) -> None:
    assert detect_image_mime(data) == expected
