"""Field-level merge policy between local tags and catalog metadata.

The catalog is authoritative for descriptive fields; BPM is treated as a
local measurement and is only ever filled in, never overwritten.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.models.track_models import MergedTagSet

if TYPE_CHECKING:
    from core.models.track_models import FullCatalogTags, LocalTrackRef

# Incoming value wins whenever present
OVERWRITE_FIELDS: tuple[str, ...] = (
    "title",
    "artist",
    "key",
    "genre",
    "label",
    "album",
    "year",
    "isrc",
    "catalog_number",
)


def _differs(current: str | float | int | None, incoming: str | float | int) -> bool:
    if current is None:
        return True
    if isinstance(current, str) and isinstance(incoming, str):
        return current.strip() != incoming.strip()
    return current != incoming


def merge(current: LocalTrackRef, incoming: FullCatalogTags, already_has_catalog_id: bool) -> MergedTagSet:
    """Compute the tag changes to apply for one reconciled track.

    Args:
        current: Stored snapshot of the local track
        incoming: Full metadata of the chosen catalog track
        already_has_catalog_id: True when the track is already linked to this
            catalog id, in which case its artwork is already embedded

    Returns:
        MergedTagSet with only the fields that change populated

    """
    changes: dict[str, str | float | int] = {}

    for field in OVERWRITE_FIELDS:
        value = getattr(incoming, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if _differs(current.current_value(field), value):
            changes[field] = value

    if current.current_bpm is None and incoming.bpm is not None:
        changes["bpm"] = incoming.bpm

    if incoming.artwork_url and not already_has_catalog_id:
        changes["artwork_url"] = incoming.artwork_url

    return MergedTagSet(**changes)


def project_artwork_only(merged: MergedTagSet) -> MergedTagSet:
    """Restrict a merged set to its artwork field."""
    return MergedTagSet(artwork_url=merged.artwork_url)


def is_noop(merged: MergedTagSet, current: LocalTrackRef, catalog_id: int) -> bool:
    """True when applying the merge would change neither tags nor the catalog link."""
    return merged.is_empty and current.catalog_id == catalog_id
