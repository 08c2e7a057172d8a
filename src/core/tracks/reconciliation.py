"""Batch reconciliation of local tracks against the remote catalog.

Each track moves through a small state machine:

    pending -> searching -> found | no_match | search_error
            -> [manual_selection] -> applying -> applied | apply_error | skipped

Tracks are processed strictly one after another with a fixed delay between
remote calls. A failure on one track is recorded in its result and never
stops the batch.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from core.exceptions import (
    CatalogNotFoundError,
    CatalogUnavailableError,
    InvalidInputError,
    NoMatchError,
    ReconciliationError,
    StoreError,
    TagWriteError,
)
from core.models.track_models import (
    BatchResult,
    ProgressEvent,
    ReconciliationConfig,
    ReconciliationMode,
    ReconciliationPhase,
    ReconciliationResult,
    SearchCandidatesResult,
    TrackCandidateSet,
    TrackState,
)
from core.tracks.selection import ManualSelectionCoordinator
from core.tracks.tag_merge import is_noop, merge, project_artwork_only

if TYPE_CHECKING:
    import logging
    from collections.abc import Awaitable, Callable, Iterable

    from core.models.protocols import (
        CatalogClientProtocol,
        LocalTrackStoreProtocol,
        ProgressNotifierProtocol,
        TagWriterProtocol,
    )
    from core.models.track_models import (
        CatalogCandidate,
        FullCatalogTags,
        LocalTrackRef,
        MergedTagSet,
        TrackSelection,
    )

NOT_SELECTED = "not selected"
NO_ARTWORK = "Track found but no artwork available"


class FullFixStrategy:
    """Apply every field the merge policy allows."""

    mode: ClassVar[ReconciliationMode] = ReconciliationMode.AUTOMATIC
    artwork_required: ClassVar[bool] = False
    records_catalog_link: ClassVar[bool] = True

    @staticmethod
    def project(current: LocalTrackRef, incoming: FullCatalogTags) -> MergedTagSet:
        return merge(current, incoming, already_has_catalog_id=current.catalog_id == incoming.catalog_id)


class ArtworkOnlyStrategy:
    """Replace the cover art and leave every other tag alone."""

    mode: ClassVar[ReconciliationMode] = ReconciliationMode.ARTWORK_ONLY
    artwork_required: ClassVar[bool] = True
    records_catalog_link: ClassVar[bool] = False

    @staticmethod
    def project(current: LocalTrackRef, incoming: FullCatalogTags) -> MergedTagSet:
        return project_artwork_only(merge(current, incoming, already_has_catalog_id=False))


ReconciliationStrategy = FullFixStrategy | ArtworkOnlyStrategy

STRATEGIES: dict[ReconciliationMode, ReconciliationStrategy] = {
    ReconciliationMode.AUTOMATIC: FullFixStrategy(),
    ReconciliationMode.ARTWORK_ONLY: ArtworkOnlyStrategy(),
}


class RequestPacer:
    """Inserts a fixed delay between consecutive remote calls of one batch."""

    def __init__(self, delay_seconds: float, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self.calls = 0

    def reset(self) -> None:
        self.calls = 0

    async def wait(self) -> None:
        """Sleep before every call except the first one of the batch."""
        if self.calls and self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)
        self.calls += 1


class ReconciliationOrchestrator:
    """Runs search, selection and apply over a batch of local tracks."""

    def __init__(
        self,
        catalog: CatalogClientProtocol,
        store: LocalTrackStoreProtocol,
        tag_writer: TagWriterProtocol,
        notifier: ProgressNotifierProtocol,
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        *,
        config: ReconciliationConfig | None = None,
        selection: ManualSelectionCoordinator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            catalog: Remote catalog client
            store: Local track store
            tag_writer: Audio file tag writer
            notifier: Progress notification sink
            console_logger: Console logger
            error_logger: Error logger
            config: Batch settings (candidate limits, request delay)
            selection: Coordinator holding candidate sets between search and apply
            sleep: Awaitable used for the inter-request delay

        """
        self.catalog = catalog
        self.store = store
        self.tag_writer = tag_writer
        self.notifier = notifier
        self.console_logger = console_logger
        self.error_logger = error_logger
        self.config = config or ReconciliationConfig()
        self.selection = selection or ManualSelectionCoordinator(console_logger)
        self.pacer = RequestPacer(self.config.request_delay_ms / 1000, sleep)

    # Entry points

    async def reconcile_batch(
        self,
        track_ids: Iterable[int],
        mode: ReconciliationMode = ReconciliationMode.AUTOMATIC,
    ) -> BatchResult:
        """Search and apply the best match for every track.

        Args:
            track_ids: Local track ids, processed in order
            mode: AUTOMATIC applies all fields, ARTWORK_ONLY only replaces cover art

        Returns:
            BatchResult with one result per input id

        Raises:
            InvalidInputError: If track_ids is empty

        """
        ids = self._require_ids(track_ids)
        strategy = STRATEGIES[mode]
        self.pacer.reset()
        self.console_logger.info("Reconciling %d tracks (%s)", len(ids), mode.value)

        results: list[ReconciliationResult] = []
        last_title = ""
        for index, track_id in enumerate(ids, 1):
            result, last_title = await self._run_isolated(
                track_id,
                self._reconcile_one(index, len(ids), track_id, strategy),
            )
            results.append(result)

        self._notify(len(ids), len(ids), last_title, ReconciliationPhase.COMPLETE)
        batch = BatchResult(results=results)
        self.print_summary(batch, mode.value)
        return batch

    async def search_candidates_for_batch(self, track_ids: Iterable[int]) -> SearchCandidatesResult:
        """Collect ranked candidates for every track without applying anything.

        The candidate sets are registered with the selection coordinator so
        that apply_selections can follow.

        Raises:
            InvalidInputError: If track_ids is empty

        """
        ids = self._require_ids(track_ids)
        self.pacer.reset()
        self.console_logger.info("Searching candidates for %d tracks", len(ids))

        sets: list[TrackCandidateSet] = []
        last_title = ""
        for index, track_id in enumerate(ids, 1):
            candidate_set = await self._search_one(index, len(ids), track_id)
            last_title = candidate_set.local_title or last_title
            sets.append(candidate_set)

        self.selection.register(sets)
        self._notify(len(ids), len(ids), last_title, ReconciliationPhase.COMPLETE)
        result = SearchCandidatesResult(tracks=sets)
        self.console_logger.info(
            "Search finished: %d with candidates, %d without",
            result.with_candidates,
            result.without_candidates,
        )
        return result

    async def apply_selections(self, selections: Iterable[TrackSelection]) -> BatchResult:
        """Apply the user's chosen catalog ids.

        Selections without a catalog id finish immediately as "not selected"
        and cause no remote call. Tracks absent from the selections are not
        part of the result.

        Raises:
            InvalidInputError: If selections is empty

        """
        raw = list(selections)
        if not raw:
            msg = "No selections to apply"
            raise InvalidInputError(msg)

        resolved = self.selection.resolve(raw)
        self.pacer.reset()
        strategy = STRATEGIES[ReconciliationMode.AUTOMATIC]
        self.console_logger.info("Applying %d selections", len(resolved))

        results: list[ReconciliationResult] = []
        last_title = ""
        for index, selection in enumerate(resolved, 1):
            if selection.chosen_catalog_id is None:
                self._transition(selection.local_track_id, TrackState.SKIPPED)
                results.append(
                    ReconciliationResult(local_track_id=selection.local_track_id, success=False, error=NOT_SELECTED)
                )
                continue
            result, last_title = await self._run_isolated(
                selection.local_track_id,
                self._apply_selection(index, len(resolved), selection.local_track_id, selection.chosen_catalog_id, strategy),
            )
            results.append(result)

        self._notify(len(resolved), len(resolved), last_title, ReconciliationPhase.COMPLETE)
        batch = BatchResult(results=results)
        self.print_summary(batch, "manual")
        return batch

    # Per-track steps

    async def _run_isolated(
        self,
        track_id: int,
        step: Awaitable[tuple[ReconciliationResult, str]],
    ) -> tuple[ReconciliationResult, str]:
        try:
            return await step
        except asyncio.CancelledError:
            self.console_logger.warning("Reconciliation interrupted at track %d", track_id)
            raise
        except (OSError, ValueError, TypeError, RuntimeError) as e:
            self.error_logger.exception("Unexpected failure reconciling track %d", track_id)
            self._transition(track_id, TrackState.APPLY_ERROR)
            return ReconciliationResult(local_track_id=track_id, success=False, error=str(e)), ""

    async def _reconcile_one(
        self,
        index: int,
        total: int,
        track_id: int,
        strategy: ReconciliationStrategy,
    ) -> tuple[ReconciliationResult, str]:
        try:
            local = await self._load_track(track_id)
        except ReconciliationError as e:
            return self._failure(track_id, TrackState.SEARCH_ERROR, str(e)), ""

        self._notify(index, total, local.title, ReconciliationPhase.SEARCHING)
        try:
            best = await self._find_best(local)
        except NoMatchError as e:
            return self._failure(track_id, TrackState.NO_MATCH, str(e)), local.title
        except CatalogUnavailableError as e:
            return self._failure(track_id, TrackState.SEARCH_ERROR, f"Search error: {e}"), local.title

        self._transition(track_id, TrackState.FOUND)
        self.console_logger.debug(
            "Track %d matched catalog %d (score %.2f)",
            track_id,
            best.catalog_id,
            best.similarity_score,
        )
        return await self._apply(index, total, local, best.catalog_id, strategy), local.title

    async def _apply_selection(
        self,
        index: int,
        total: int,
        track_id: int,
        catalog_id: int,
        strategy: ReconciliationStrategy,
    ) -> tuple[ReconciliationResult, str]:
        try:
            local = await self._load_track(track_id)
        except ReconciliationError as e:
            return self._failure(track_id, TrackState.APPLY_ERROR, str(e), catalog_id), ""
        self._transition(track_id, TrackState.MANUAL_SELECTION)
        return await self._apply(index, total, local, catalog_id, strategy), local.title

    async def _search_one(self, index: int, total: int, track_id: int) -> TrackCandidateSet:
        try:
            local = await self._load_track(track_id)
        except ReconciliationError as e:
            self._transition(track_id, TrackState.SEARCH_ERROR)
            return TrackCandidateSet(local_track_id=track_id, local_title="", local_artist="", search_error=str(e))

        self._notify(index, total, local.title, ReconciliationPhase.SEARCHING)
        candidates: list[CatalogCandidate] = []
        search_error = None
        try:
            candidates = await self._search(local)
        except CatalogUnavailableError as e:
            search_error = str(e)
            self._transition(track_id, TrackState.SEARCH_ERROR)
            self.error_logger.warning("Search failed for track %d: %s", track_id, e)
        else:
            self._transition(track_id, TrackState.MANUAL_SELECTION)

        return TrackCandidateSet(
            local_track_id=local.id,
            local_title=local.title,
            local_artist=local.artist,
            local_filename=Path(local.path).name,
            local_duration_seconds=local.duration_seconds,
            candidates=candidates,
            search_error=search_error,
        )

    async def _load_track(self, track_id: int) -> LocalTrackRef:
        self._transition(track_id, TrackState.PENDING)
        return await asyncio.to_thread(self.store.get_track, track_id)

    async def _search(self, local: LocalTrackRef) -> list[CatalogCandidate]:
        self._transition(local.id, TrackState.SEARCHING)
        await self.pacer.wait()
        return await self.catalog.search_candidates(
            local.title,
            local.artist,
            local.duration_seconds,
            self.config.max_candidates,
            self.config.min_score,
        )

    async def _find_best(self, local: LocalTrackRef) -> CatalogCandidate:
        candidates = await self._search(local)
        if not candidates:
            msg = f"No match found for {local.artist} - {local.title}"
            raise NoMatchError(msg)
        return candidates[0]

    async def _apply(
        self,
        index: int,
        total: int,
        local: LocalTrackRef,
        catalog_id: int,
        strategy: ReconciliationStrategy,
    ) -> ReconciliationResult:
        """Fetch full catalog data, merge, write tags and update the store."""
        self._transition(local.id, TrackState.APPLYING)
        self._notify(index, total, local.title, ReconciliationPhase.DOWNLOADING)

        try:
            await self.pacer.wait()
            incoming = await self.catalog.get_track_details(catalog_id)
        except (CatalogNotFoundError, CatalogUnavailableError) as e:
            return self._failure(local.id, TrackState.APPLY_ERROR, f"Error fetching catalog data: {e}", catalog_id)

        merged = strategy.project(local, incoming)
        if strategy.artwork_required and not merged.artwork_url:
            return self._failure(local.id, TrackState.APPLY_ERROR, NO_ARTWORK, catalog_id)

        if is_noop(merged, local, catalog_id):
            self.console_logger.info("Track %d already up to date", local.id)
            self._transition(local.id, TrackState.APPLIED)
            return ReconciliationResult(local_track_id=local.id, success=True, catalog_id=catalog_id, applied_tags=merged)

        artwork: bytes | None = None
        if merged.artwork_url:
            try:
                await self.pacer.wait()
                artwork = await self.catalog.download_artwork(merged.artwork_url)
            except (CatalogNotFoundError, CatalogUnavailableError) as e:
                if strategy.artwork_required:
                    return self._failure(local.id, TrackState.APPLY_ERROR, f"Artwork download failed: {e}", catalog_id)
                self.error_logger.warning("Artwork download failed for track %d: %s", local.id, e)
                merged = merged.model_copy(update={"artwork_url": None})

        self._notify(index, total, local.title, ReconciliationPhase.APPLYING_TAGS)
        if not merged.is_empty:
            try:
                await asyncio.to_thread(self.tag_writer.write_tags, local.path, merged, artwork)
            except TagWriteError as e:
                return self._failure(local.id, TrackState.APPLY_ERROR, f"Tag write failed: {e}", catalog_id)

        # A cover-only change leaves the track unmatched
        link = catalog_id if strategy.records_catalog_link else None
        warning = None
        try:
            await asyncio.to_thread(self.store.update_track_fields, local.id, merged, link)
        except StoreError as e:
            # File tags stay written; the next run re-reads the stale row and retries
            warning = f"Tags written but store update failed: {e}"
            self.error_logger.warning("Track %d: %s", local.id, warning)

        self._transition(local.id, TrackState.APPLIED)
        self.console_logger.info(
            "Applied catalog %d to track %d: %s",
            catalog_id,
            local.id,
            ", ".join(merged.changed_fields()) or "catalog link only",
        )
        return ReconciliationResult(
            local_track_id=local.id,
            success=True,
            catalog_id=catalog_id,
            applied_tags=merged,
            warning=warning,
        )

    # Helpers

    @staticmethod
    def _require_ids(track_ids: Iterable[int]) -> list[int]:
        ids = list(track_ids)
        if not ids:
            msg = "Batch contains no track ids"
            raise InvalidInputError(msg)
        return ids

    def _failure(
        self,
        track_id: int,
        state: TrackState,
        error: str,
        catalog_id: int | None = None,
    ) -> ReconciliationResult:
        self._transition(track_id, state)
        self.error_logger.warning("Track %d: %s", track_id, error)
        return ReconciliationResult(local_track_id=track_id, success=False, catalog_id=catalog_id, error=error)

    def _transition(self, track_id: int, state: TrackState) -> None:
        self.console_logger.debug("Track %d -> %s", track_id, state.value)

    def _notify(self, index: int, total: int, title: str, phase: ReconciliationPhase) -> None:
        """Deliver a progress event; delivery failures never affect the batch."""
        try:
            self.notifier.notify(ProgressEvent(current_index=index, total=total, current_track_title=title, phase=phase))
        except Exception:
            self.error_logger.debug("Progress notification failed", exc_info=True)

    def print_summary(self, batch: BatchResult, label: str) -> None:
        """Log the batch summary.

        Args:
            batch: Finished batch result
            label: Mode label shown in the header

        """
        self.console_logger.info("%s", "=" * 50)
        self.console_logger.info("RECONCILIATION SUMMARY (%s)", label)
        self.console_logger.info("=" * 50)
        self.console_logger.info("Total tracks: %d", batch.total)
        self.console_logger.info("Succeeded: %d", batch.success_count)
        if batch.failed_count:
            self.console_logger.error("Failed: %d", batch.failed_count)
            for result in batch.results:
                if not result.success:
                    self.console_logger.error("  - track %d: %s", result.local_track_id, result.error)
        if batch.total:
            self.console_logger.info("Success rate: %.1f%%", batch.success_count / batch.total * 100)
