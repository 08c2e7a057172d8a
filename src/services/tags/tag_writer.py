"""Audio file tag writing with mutagen.

Tags are written to a temporary copy next to the original, which then
atomically replaces it, so a failed save never leaves a half-written file.
"""

from __future__ import annotations

import base64
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.aiff import AIFF
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, ID3, TALB, TBPM, TCON, TDRC, TIT2, TKEY, TPE1, TPUB, TSRC, TXXX
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4, MP4Cover, MP4FreeForm
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis
from mutagen.wave import WAVE

from core.exceptions import TagWriteError

if TYPE_CHECKING:
    import logging

    from mutagen import FileType

    from core.models.track_models import MergedTagSet

FRONT_COVER = 3
UTF8 = 3
ITUNES_FREEFORM = "----:com.apple.iTunes:"

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG", "image/png"),
    (b"GIF", "image/gif"),
    (b"BM", "image/bmp"),
)

_VORBIS_KEYS = {
    "title": "TITLE",
    "artist": "ARTIST",
    "album": "ALBUM",
    "genre": "GENRE",
    "year": "DATE",
    "bpm": "BPM",
    "key": "INITIALKEY",
    "label": "LABEL",
    "isrc": "ISRC",
    "catalog_number": "CATALOGNUMBER",
}

_MP4_KEYS = {
    "title": "\xa9nam",
    "artist": "\xa9ART",
    "album": "\xa9alb",
    "genre": "\xa9gen",
    "year": "\xa9day",
}

_MP4_FREEFORM_KEYS = {
    "key": "initialkey",
    "label": "LABEL",
    "isrc": "ISRC",
    "catalog_number": "CATALOGNUMBER",
}


def detect_image_mime(data: bytes) -> str:
    """Guess an image MIME type from its magic bytes, defaulting to JPEG."""
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    for magic, mime in _IMAGE_SIGNATURES:
        if data.startswith(magic):
            return mime
    return "image/jpeg"


def _text_values(merged: MergedTagSet) -> dict[str, str]:
    """Populated fields as tag strings; BPM is written rounded."""
    values: dict[str, str] = {}
    for field, value in merged.changed_fields().items():
        if field == "artwork_url":
            continue
        values[field] = str(round(value)) if field == "bpm" else str(value)
    return values


class MutagenTagWriter:
    """Writes merged tag sets into MP3/AIFF/WAV, MP4, FLAC and Ogg files."""

    def __init__(self, console_logger: logging.Logger, error_logger: logging.Logger) -> None:
        self.console_logger = console_logger
        self.error_logger = error_logger

    def write_tags(self, path: str, merged: MergedTagSet, artwork: bytes | None = None) -> None:
        """Write the populated fields of a merged set (and cover art) to a file.

        Args:
            path: Audio file path
            merged: Fields to write; unset fields are left untouched
            artwork: Cover image bytes replacing the front cover, if any

        Raises:
            TagWriteError: On missing file, unsupported format or save failure

        """
        source = Path(path)
        if not source.is_file():
            msg = f"File not found: {path}"
            raise TagWriteError(msg, path)

        values = _text_values(merged)
        if not values and not artwork:
            return

        temp_path = source.with_name(f".{source.stem}.tagtmp{source.suffix}")
        try:
            shutil.copy2(source, temp_path)
            audio = self._open(temp_path, path)
            self._apply(audio, values, artwork, path)
            audio.save()
            os.replace(temp_path, source)
        except (MutagenError, OSError) as e:
            msg = f"Error writing tags to {path}: {e}"
            raise TagWriteError(msg, path) from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        self.console_logger.debug(
            "Wrote %s%s to %s",
            ", ".join(values) or "no text tags",
            " + artwork" if artwork else "",
            source.name,
        )

    @staticmethod
    def _open(temp_path: Path, original: str) -> FileType:
        audio = MutagenFile(temp_path)
        if audio is None:
            msg = f"Unsupported audio format: {original}"
            raise TagWriteError(msg, original)
        return audio

    def _apply(self, audio: FileType, values: dict[str, str], artwork: bytes | None, path: str) -> None:
        if isinstance(audio, MP4):
            self._write_mp4(audio, values, artwork)
        elif isinstance(audio, FLAC):
            self._write_vorbis(audio, values)
            if artwork:
                audio.clear_pictures()
                audio.add_picture(self._picture(artwork))
        elif isinstance(audio, OggVorbis | OggOpus):
            self._write_vorbis(audio, values)
            if artwork:
                picture_data = base64.b64encode(self._picture(artwork).write()).decode("ascii")
                audio["METADATA_BLOCK_PICTURE"] = [picture_data]
        elif isinstance(audio.tags, ID3) or isinstance(audio, MP3 | AIFF | WAVE):
            self._write_id3(audio, values, artwork)
        else:
            msg = f"Unsupported format for tag writing: {path}"
            raise TagWriteError(msg, path)

    @staticmethod
    def _write_id3(audio: FileType, values: dict[str, str], artwork: bytes | None) -> None:
        if audio.tags is None:
            audio.add_tags()
        tags = audio.tags
        frames = {
            "title": TIT2,
            "artist": TPE1,
            "album": TALB,
            "genre": TCON,
            "year": TDRC,
            "bpm": TBPM,
            "key": TKEY,
            "label": TPUB,
            "isrc": TSRC,
        }
        for field, value in values.items():
            if field == "catalog_number":
                tags.setall("TXXX:CATALOGNUMBER", [TXXX(encoding=UTF8, desc="CATALOGNUMBER", text=value)])
            else:
                frame = frames[field]
                tags.setall(frame.__name__, [frame(encoding=UTF8, text=value)])
        if artwork:
            tags.delall("APIC")
            tags.add(APIC(encoding=UTF8, mime=detect_image_mime(artwork), type=FRONT_COVER, desc="Cover", data=artwork))

    @staticmethod
    def _write_mp4(audio: MP4, values: dict[str, str], artwork: bytes | None) -> None:
        if audio.tags is None:
            audio.add_tags()
        tags = audio.tags
        for field, value in values.items():
            if field == "bpm":
                tags["tmpo"] = [int(value)]
            elif field in _MP4_KEYS:
                tags[_MP4_KEYS[field]] = [value]
            else:
                tags[ITUNES_FREEFORM + _MP4_FREEFORM_KEYS[field]] = [MP4FreeForm(value.encode("utf-8"))]
        if artwork:
            image_format = MP4Cover.FORMAT_PNG if detect_image_mime(artwork) == "image/png" else MP4Cover.FORMAT_JPEG
            tags["covr"] = [MP4Cover(artwork, imageformat=image_format)]

    @staticmethod
    def _write_vorbis(audio: FileType, values: dict[str, str]) -> None:
        if audio.tags is None:
            audio.add_tags()
        for field, value in values.items():
            audio[_VORBIS_KEYS[field]] = [value]

    @staticmethod
    def _picture(artwork: bytes) -> Picture:
        picture = Picture()
        picture.type = FRONT_COVER
        picture.mime = detect_image_mime(artwork)
        picture.desc = "Cover"
        picture.data = artwork
        return picture

    def read_tags(self, path: str) -> dict[str, str]:
        """Return the file's tags as a flat key -> text mapping.

        Raises:
            TagWriteError: If the file cannot be opened

        """
        try:
            audio = MutagenFile(path)
        except (MutagenError, OSError) as e:
            msg = f"Error reading tags from {path}: {e}"
            raise TagWriteError(msg, path) from e
        if audio is None:
            msg = f"Unsupported audio format: {path}"
            raise TagWriteError(msg, path)
        if audio.tags is None:
            return {}

        flat: dict[str, str] = {}
        for key, value in audio.tags.items():
            if key.startswith(("APIC", "covr", "METADATA_BLOCK_PICTURE")):
                continue
            items = value if isinstance(value, list) else [value]
            flat[key] = "; ".join(
                item.decode("utf-8", errors="replace") if isinstance(item, bytes) else str(item) for item in items
            )
        return flat
