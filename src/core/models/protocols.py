"""Service Protocol Definitions.

This module defines the interfaces the reconciliation pipeline depends on.
The core never imports the concrete catalog client, store or tag writer; it
only talks to these protocols, so tests can swap in fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from core.models.track_models import (
        CatalogCandidate,
        FullCatalogTags,
        LocalTrackRef,
        MergedTagSet,
        ProgressEvent,
    )


# noinspection PyMissingOrEmptyDocstring
@runtime_checkable
class CatalogClientProtocol(Protocol):
    """Protocol for the remote catalog search and detail API."""

    async def search_candidates(
        self,
        title: str,
        artist: str,
        duration_hint_seconds: float | None,
        max_results: int,
        min_score: float,
    ) -> list[CatalogCandidate]:
        """Search the catalog and return scored, filtered candidates.

        Args:
            title: Local track title
            artist: Local track artist credit
            duration_hint_seconds: Local duration used for scoring, if known
            max_results: Maximum number of candidates to return
            min_score: Candidates scoring below this are dropped

        Returns:
            Candidates sorted by descending similarity score

        Raises:
            CatalogUnavailableError: On network or protocol failure

        """
        ...

    async def get_track_details(self, catalog_id: int) -> FullCatalogTags:
        """Fetch complete metadata for one catalog track.

        Raises:
            CatalogNotFoundError: If the id does not exist
            CatalogUnavailableError: On network or protocol failure

        """
        ...

    async def download_artwork(self, url: str) -> bytes:
        """Download cover image bytes from an artwork URL."""
        ...


# noinspection PyMissingOrEmptyDocstring
@runtime_checkable
class LocalTrackStoreProtocol(Protocol):
    """Protocol for the local track library."""

    def get_track(self, track_id: int) -> LocalTrackRef:
        """Return a snapshot of one local track.

        Raises:
            InvalidInputError: If the id is unknown
            StoreError: If the store cannot be read

        """
        ...

    def update_track_fields(
        self,
        track_id: int,
        merged: MergedTagSet,
        catalog_id: int | None = None,
    ) -> None:
        """Persist the populated fields of a merged tag set.

        Only populated fields are written; an update with no fields is a no-op.

        Raises:
            StoreError: If the update fails

        """
        ...


# noinspection PyMissingOrEmptyDocstring
@runtime_checkable
class TagWriterProtocol(Protocol):
    """Protocol for persisting tags into audio files."""

    def write_tags(self, path: str, merged: MergedTagSet, artwork: bytes | None = None) -> None:
        """Write populated tag fields (and optional cover art) to a file.

        Raises:
            TagWriteError: On missing file, unsupported format or write failure

        """
        ...


# noinspection PyMissingOrEmptyDocstring
@runtime_checkable
class ProgressNotifierProtocol(Protocol):
    """Protocol for progress event delivery."""

    def notify(self, event: ProgressEvent) -> None:
        """Deliver one progress event; must not block."""
        ...
