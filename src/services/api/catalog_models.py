"""Pydantic models for catalog payloads.

The same track shape arrives from two places: the JSON detail API, and the
search page's embedded Next.js data. The two disagree on field names (``id``
vs ``track_id``), on where the label lives and on how the length is encoded,
so the models accept both spellings and expose accessor helpers.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from core.models.track_models import CatalogCandidate, FullCatalogTags
from services.api.api_base import extract_year

MILLISECONDS_THRESHOLD = 10_000
ORIGINAL_MIX = "original mix"


def _sized(uri: str, size: int) -> str:
    return uri.replace("{w}", str(size)).replace("{h}", str(size))


class _CatalogEntity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CatalogArtist(_CatalogEntity):
    id: int = Field(validation_alias=AliasChoices("id", "artist_id"))
    name: str = Field(validation_alias=AliasChoices("name", "artist_name"))


class CatalogGenre(_CatalogEntity):
    id: int = Field(validation_alias=AliasChoices("id", "genre_id"))
    name: str = Field(validation_alias=AliasChoices("name", "genre_name"))


class CatalogLabel(_CatalogEntity):
    id: int = Field(validation_alias=AliasChoices("id", "label_id"))
    name: str = Field(validation_alias=AliasChoices("name", "label_name"))


class CatalogKey(_CatalogEntity):
    name: str
    camelot_number: int | None = None
    camelot_letter: str | None = None

    @property
    def camelot(self) -> str | None:
        if self.camelot_number is None or not self.camelot_letter:
            return None
        return f"{self.camelot_number}{self.camelot_letter}"


class CatalogImage(_CatalogEntity):
    uri: str
    dynamic_uri: str | None = None

    def url(self, size: int) -> str:
        return _sized(self.dynamic_uri, size) if self.dynamic_uri else self.uri


class CatalogRelease(_CatalogEntity):
    id: int | None = Field(default=None, validation_alias=AliasChoices("id", "release_id"))
    name: str | None = Field(default=None, validation_alias=AliasChoices("name", "release_name"))
    image: CatalogImage | None = None
    label: CatalogLabel | None = None
    image_uri: str | None = Field(default=None, validation_alias=AliasChoices("image_uri", "release_image_uri"))
    image_dynamic_uri: str | None = Field(
        default=None,
        validation_alias=AliasChoices("image_dynamic_uri", "release_image_dynamic_uri"),
    )

    def artwork_url(self, size: int) -> str | None:
        if self.image:
            return self.image.url(size)
        if self.image_dynamic_uri:
            return _sized(self.image_dynamic_uri, size)
        return self.image_uri


class CatalogTrack(_CatalogEntity):
    """A catalog track as returned by search or the detail endpoint."""

    id: int = Field(validation_alias=AliasChoices("id", "track_id"))
    name: str = Field(validation_alias=AliasChoices("name", "track_name"))
    mix_name: str | None = None
    bpm: float | None = None
    key: CatalogKey | None = None
    key_name: str | None = None
    artists: list[CatalogArtist] = Field(default_factory=list)
    genre: list[CatalogGenre] = Field(default_factory=list)
    label: CatalogLabel | None = None
    release: CatalogRelease | None = None
    publish_date: str | None = None
    catalog_number: str | None = None
    isrc: str | None = None
    length_ms: int | None = None
    length: int | float | str | None = None
    image: CatalogImage | None = None
    track_image_uri: str | None = None
    track_image_dynamic_uri: str | None = None

    @field_validator("genre", mode="before")
    @classmethod
    def _genre_as_list(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value if isinstance(value, list) else []

    @field_validator("length_ms", mode="before")
    @classmethod
    def _numeric_length_ms(cls, value: Any) -> int | None:
        return int(value) if isinstance(value, int | float) and not isinstance(value, bool) else None

    @property
    def key_label(self) -> str | None:
        return self.key.name if self.key else self.key_name

    @property
    def artist_names(self) -> str:
        return ", ".join(artist.name for artist in self.artists)

    @property
    def genre_name(self) -> str | None:
        return self.genre[0].name if self.genre else None

    @property
    def label_name(self) -> str | None:
        if self.label:
            return self.label.name
        if self.release and self.release.label:
            return self.release.label.name
        return None

    @property
    def display_title(self) -> str:
        """Track name, plus the mix name in parentheses unless it is the original mix."""
        mix = (self.mix_name or "").strip()
        if not mix or mix.casefold() == ORIGINAL_MIX:
            return self.name
        return f"{self.name} ({mix})"

    def duration_seconds(self) -> float | None:
        """Length in seconds from length_ms, or from length given as ms, seconds or "MM:SS"."""
        if self.length_ms is not None:
            return self.length_ms / 1000
        value = self.length
        if isinstance(value, int | float):
            return value / 1000 if value > MILLISECONDS_THRESHOLD else float(value)
        if isinstance(value, str):
            minutes, sep, seconds = value.partition(":")
            if sep and minutes.isdigit() and seconds.isdigit():
                return float(int(minutes) * 60 + int(seconds))
        return None

    def artwork_url(self, size: int) -> str | None:
        """Best cover image URL at the requested pixel size."""
        if self.release and (url := self.release.artwork_url(size)):
            return url
        if self.image:
            return self.image.url(size)
        if self.track_image_dynamic_uri:
            return _sized(self.track_image_dynamic_uri, size)
        return self.track_image_uri

    def to_candidate(self, thumbnail_size: int) -> CatalogCandidate:
        return CatalogCandidate(
            catalog_id=self.id,
            title=self.name,
            mix_name=self.mix_name,
            artists=self.artist_names,
            bpm=self.bpm,
            key=self.key_label,
            duration_seconds=self.duration_seconds(),
            artwork_url=self.artwork_url(thumbnail_size),
            genre=self.genre_name,
            label=self.label_name,
            release_date=self.publish_date,
        )

    def to_full_tags(self, artwork_size: int) -> FullCatalogTags:
        return FullCatalogTags(
            catalog_id=self.id,
            title=self.display_title,
            artist=self.artist_names or None,
            bpm=self.bpm,
            key=self.key_label,
            genre=self.genre_name,
            label=self.label_name,
            album=self.release.name if self.release else None,
            year=extract_year(self.publish_date),
            isrc=self.isrc,
            catalog_number=self.catalog_number,
            artwork_url=self.artwork_url(artwork_size),
        )
