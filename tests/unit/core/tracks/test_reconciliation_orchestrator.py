"""Unit tests for ReconciliationOrchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from core.exceptions import CatalogNotFoundError, CatalogUnavailableError, InvalidInputError
from core.models.track_models import (
    ReconciliationConfig,
    ReconciliationMode,
    ReconciliationPhase,
    TrackCandidateSet,
    TrackSelection,
)
from core.tracks.reconciliation import NO_ARTWORK, NOT_SELECTED, ReconciliationOrchestrator, RequestPacer
from tests.factories import STROBE_CATALOG_ID, make_candidate, make_full_tags, make_local_track
from tests.mocks.protocol_mocks import FailingNotifier

if TYPE_CHECKING:
    from unittest.mock import MagicMock

    from tests.mocks.protocol_mocks import FakeCatalogClient, FakeTagWriter, FakeTrackStore, RecordingNotifier


def create_orchestrator(
    catalog: FakeCatalogClient,
    store: FakeTrackStore,
    writer: FakeTagWriter,
    notifier: object,
    console_logger: MagicMock,
    error_logger: MagicMock,
    **config: int | float,
) -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator(
        catalog,
        store,
        writer,
        notifier,  # type: ignore[arg-type]
        console_logger,
        error_logger,
        config=ReconciliationConfig(request_delay_ms=0, **config),
    )


@pytest.fixture
def orchestrator(
    catalog_client: FakeCatalogClient,
    track_store: FakeTrackStore,
    tag_writer: FakeTagWriter,
    notifier: RecordingNotifier,
    mock_console_logger: MagicMock,
    mock_error_logger: MagicMock,
) -> ReconciliationOrchestrator:
    catalog_client.search_results["Strobe"] = [make_candidate(similarity_score=0.98)]
    catalog_client.details[STROBE_CATALOG_ID] = make_full_tags()
    return create_orchestrator(catalog_client, track_store, tag_writer, notifier, mock_console_logger, mock_error_logger)


def add_three_tracks(store: FakeTrackStore, catalog: FakeCatalogClient) -> None:
    """Tracks 1..3; the search for track 2 fails with a network error."""
    store.add(make_local_track(id=2, title="Ghosts n Stuff", path="/music/ghosts.mp3"))
    store.add(make_local_track(id=3, title="Raise Your Weapon", path="/music/ryw.mp3"))
    catalog.search_results["Ghosts n Stuff"] = CatalogUnavailableError("Cannot connect to host")
    catalog.search_results["Raise Your Weapon"] = [make_candidate(catalog_id=77, title="Raise Your Weapon", similarity_score=0.95)]
    catalog.details[77] = make_full_tags(catalog_id=77, title="Raise Your Weapon")


class TestReconcileBatch:
    """Tests for the automatic batch."""

    @pytest.mark.asyncio
    async def test_single_track_applied(
        self,
        orchestrator: ReconciliationOrchestrator,
        tag_writer: FakeTagWriter,
        track_store: FakeTrackStore,
    ) -> None:
        batch = await orchestrator.reconcile_batch([1])

        assert batch.total == 1
        result = batch.results[0]
        assert result.success
        assert result.catalog_id == STROBE_CATALOG_ID
        assert result.applied_tags is not None
        assert result.applied_tags.bpm is None
        assert result.applied_tags.genre == "Progressive House"

        path, merged, artwork = tag_writer.writes[0]
        assert path == "/music/deadmau5 - Strobe.mp3"
        assert merged.artwork_url is not None
        assert artwork is not None
        assert track_store.tracks[1].catalog_id == STROBE_CATALOG_ID

    @pytest.mark.asyncio
    async def test_failing_search_does_not_stop_batch(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
    ) -> None:
        add_three_tracks(track_store, catalog_client)

        batch = await orchestrator.reconcile_batch([1, 2, 3])

        assert [result.local_track_id for result in batch.results] == [1, 2, 3]
        assert [result.success for result in batch.results] == [True, False, True]
        assert batch.results[1].error is not None
        assert batch.results[1].error.startswith("Search error")
        assert batch.success_count == 2
        assert batch.failed_count == 1
        assert catalog_client.search_calls[2] == ("Raise Your Weapon", "deadmau5")

    @pytest.mark.asyncio
    async def test_batch_counts_always_add_up(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
    ) -> None:
        add_three_tracks(track_store, catalog_client)
        batch = await orchestrator.reconcile_batch([3, 99, 2, 1])

        assert batch.total == 4
        assert batch.success_count + batch.failed_count == batch.total

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, orchestrator: ReconciliationOrchestrator) -> None:
        with pytest.raises(InvalidInputError):
            await orchestrator.reconcile_batch([])

    @pytest.mark.asyncio
    async def test_unknown_track_fails_only_that_item(self, orchestrator: ReconciliationOrchestrator) -> None:
        batch = await orchestrator.reconcile_batch([99, 1])

        assert batch.results[0].success is False
        assert "not found" in (batch.results[0].error or "")
        assert batch.results[1].success is True

    @pytest.mark.asyncio
    async def test_no_candidates_is_no_match(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        tag_writer: FakeTagWriter,
    ) -> None:
        catalog_client.search_results["Strobe"] = []

        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].error == "No match found for deadmau5 - Strobe"
        assert catalog_client.detail_calls == []
        assert tag_writer.writes == []

    @pytest.mark.asyncio
    async def test_detail_fetch_failure(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
    ) -> None:
        catalog_client.details[STROBE_CATALOG_ID] = CatalogNotFoundError(STROBE_CATALOG_ID)

        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].success is False
        assert (batch.results[0].error or "").startswith("Error fetching catalog data")

    @pytest.mark.asyncio
    async def test_tag_write_failure_leaves_store_untouched(
        self,
        orchestrator: ReconciliationOrchestrator,
        tag_writer: FakeTagWriter,
        track_store: FakeTrackStore,
    ) -> None:
        tag_writer.fail_paths.add("/music/deadmau5 - Strobe.mp3")

        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].success is False
        assert "Tag write failed" in (batch.results[0].error or "")
        assert track_store.updates == []

    @pytest.mark.asyncio
    async def test_store_failure_after_write_is_a_warning(
        self,
        orchestrator: ReconciliationOrchestrator,
        tag_writer: FakeTagWriter,
        track_store: FakeTrackStore,
    ) -> None:
        track_store.fail_updates = True

        batch = await orchestrator.reconcile_batch([1])

        result = batch.results[0]
        assert result.success is True
        assert result.warning is not None
        assert "store update failed" in result.warning
        assert len(tag_writer.writes) == 1

    @pytest.mark.asyncio
    async def test_artwork_download_failure_drops_artwork_only(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        tag_writer: FakeTagWriter,
    ) -> None:
        catalog_client.artwork = CatalogUnavailableError("HTTP 503")

        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].success is True
        _, merged, artwork = tag_writer.writes[0]
        assert merged.artwork_url is None
        assert artwork is None

    @pytest.mark.asyncio
    async def test_second_run_writes_nothing(
        self,
        orchestrator: ReconciliationOrchestrator,
        tag_writer: FakeTagWriter,
    ) -> None:
        await orchestrator.reconcile_batch([1])
        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].success is True
        assert batch.results[0].applied_tags is not None
        assert batch.results[0].applied_tags.is_empty
        assert len(tag_writer.writes) == 1


class TestArtworkOnlyMode:
    """Tests for the artwork-only batch."""

    @pytest.mark.asyncio
    async def test_only_artwork_is_written(
        self,
        orchestrator: ReconciliationOrchestrator,
        tag_writer: FakeTagWriter,
    ) -> None:
        batch = await orchestrator.reconcile_batch([1], ReconciliationMode.ARTWORK_ONLY)

        assert batch.results[0].success is True
        _, merged, artwork = tag_writer.writes[0]
        assert list(merged.changed_fields()) == ["artwork_url"]
        assert artwork is not None

    @pytest.mark.asyncio
    async def test_catalog_link_is_not_recorded(
        self,
        orchestrator: ReconciliationOrchestrator,
        track_store: FakeTrackStore,
    ) -> None:
        batch = await orchestrator.reconcile_batch([1], ReconciliationMode.ARTWORK_ONLY)

        assert batch.results[0].catalog_id == STROBE_CATALOG_ID
        _, merged, catalog_id = track_store.updates[0]
        assert catalog_id is None
        assert list(merged.changed_fields()) == ["artwork_url"]
        assert track_store.tracks[1].catalog_id is None

    @pytest.mark.asyncio
    async def test_missing_artwork_fails(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        tag_writer: FakeTagWriter,
    ) -> None:
        catalog_client.details[STROBE_CATALOG_ID] = make_full_tags(artwork_url=None)

        batch = await orchestrator.reconcile_batch([1], ReconciliationMode.ARTWORK_ONLY)

        assert batch.results[0].error == NO_ARTWORK
        assert tag_writer.writes == []

    @pytest.mark.asyncio
    async def test_artwork_download_failure_fails_item(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
    ) -> None:
        catalog_client.artwork = CatalogUnavailableError("HTTP 503")

        batch = await orchestrator.reconcile_batch([1], ReconciliationMode.ARTWORK_ONLY)

        assert batch.results[0].success is False


class TestProgress:
    """Tests for progress notifications."""

    @pytest.mark.asyncio
    async def test_phase_sequence(self, orchestrator: ReconciliationOrchestrator, notifier: RecordingNotifier) -> None:
        await orchestrator.reconcile_batch([1])

        phases = [event.phase for event in notifier.events]
        assert phases == [
            ReconciliationPhase.SEARCHING,
            ReconciliationPhase.DOWNLOADING,
            ReconciliationPhase.APPLYING_TAGS,
            ReconciliationPhase.COMPLETE,
        ]
        assert notifier.events[0].current_track_title == "Strobe"
        assert notifier.events[-1].current_index == notifier.events[-1].total == 1

    @pytest.mark.asyncio
    async def test_failing_notifier_is_ignored(
        self,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
        tag_writer: FakeTagWriter,
        mock_console_logger: MagicMock,
        mock_error_logger: MagicMock,
    ) -> None:
        catalog_client.search_results["Strobe"] = [make_candidate(similarity_score=0.98)]
        catalog_client.details[STROBE_CATALOG_ID] = make_full_tags()
        orchestrator = create_orchestrator(
            catalog_client, track_store, tag_writer, FailingNotifier(), mock_console_logger, mock_error_logger
        )

        batch = await orchestrator.reconcile_batch([1])

        assert batch.results[0].success is True


class TestManualMode:
    """Tests for search_candidates_for_batch and apply_selections."""

    @pytest.mark.asyncio
    async def test_search_registers_candidate_sets(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
        tag_writer: FakeTagWriter,
    ) -> None:
        add_three_tracks(track_store, catalog_client)

        result = await orchestrator.search_candidates_for_batch([1, 2, 3])

        assert result.total == 3
        assert result.with_candidates == 2
        assert result.tracks[1].search_error is not None
        assert result.tracks[0].local_filename == "deadmau5 - Strobe.mp3"
        assert orchestrator.selection.pending_track_ids() == [1, 2, 3]
        assert catalog_client.detail_calls == []
        assert tag_writer.writes == []

    @pytest.mark.asyncio
    async def test_not_selected_makes_no_remote_call(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        tag_writer: FakeTagWriter,
    ) -> None:
        batch = await orchestrator.apply_selections([TrackSelection(local_track_id=1, chosen_catalog_id=None)])

        assert batch.results[0].success is False
        assert batch.results[0].error == NOT_SELECTED
        assert catalog_client.total_calls == 0
        assert tag_writer.writes == []

    @pytest.mark.asyncio
    async def test_selected_id_is_applied(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
    ) -> None:
        catalog_client.details[555] = make_full_tags(catalog_id=555, genre="Techno")

        batch = await orchestrator.apply_selections([TrackSelection(local_track_id=1, chosen_catalog_id=555)])

        assert batch.results[0].success is True
        assert batch.results[0].catalog_id == 555
        assert catalog_client.search_calls == []

    @pytest.mark.asyncio
    async def test_omitted_tracks_are_not_in_result(
        self,
        orchestrator: ReconciliationOrchestrator,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
    ) -> None:
        add_three_tracks(track_store, catalog_client)
        orchestrator.selection.register([TrackCandidateSet(local_track_id=i, local_title="", local_artist="") for i in (1, 2, 3)])

        batch = await orchestrator.apply_selections([TrackSelection(local_track_id=3, chosen_catalog_id=77)])

        assert [result.local_track_id for result in batch.results] == [3]

    @pytest.mark.asyncio
    async def test_empty_selections_rejected(self, orchestrator: ReconciliationOrchestrator) -> None:
        with pytest.raises(InvalidInputError):
            await orchestrator.apply_selections([])


class TestRequestPacer:
    """Tests for the fixed inter-request delay."""

    @pytest.mark.asyncio
    async def test_sleeps_between_calls_only(self) -> None:
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        pacer = RequestPacer(0.5, fake_sleep)
        for _ in range(3):
            await pacer.wait()
        assert delays == [0.5, 0.5]

        pacer.reset()
        await pacer.wait()
        assert delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_orchestrator_paces_remote_calls(
        self,
        catalog_client: FakeCatalogClient,
        track_store: FakeTrackStore,
        tag_writer: FakeTagWriter,
        notifier: RecordingNotifier,
        mock_console_logger: MagicMock,
        mock_error_logger: MagicMock,
    ) -> None:
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        catalog_client.search_results["Strobe"] = [make_candidate(similarity_score=0.98)]
        catalog_client.details[STROBE_CATALOG_ID] = make_full_tags()
        orchestrator = ReconciliationOrchestrator(
            catalog_client,
            track_store,
            tag_writer,
            notifier,
            mock_console_logger,
            mock_error_logger,
            config=ReconciliationConfig(request_delay_ms=250),
            sleep=fake_sleep,
        )

        await orchestrator.reconcile_batch([1])

        # search, details, artwork: two gaps
        assert delays == [0.25, 0.25]
