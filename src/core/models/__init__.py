"""Data models and protocols."""

from core.models.normalization import normalize_for_matching, split_artists
from core.models.protocols import (
    CatalogClientProtocol,
    LocalTrackStoreProtocol,
    ProgressNotifierProtocol,
    TagWriterProtocol,
)
from core.models.track_models import (
    AppConfig,
    BatchResult,
    CatalogCandidate,
    FullCatalogTags,
    LocalTrackRef,
    MergedTagSet,
    ProgressEvent,
    ReconciliationMode,
    ReconciliationPhase,
    ReconciliationResult,
    SearchCandidatesResult,
    TrackCandidateSet,
    TrackSelection,
    TrackState,
)

__all__ = [
    "AppConfig",
    "BatchResult",
    "CatalogCandidate",
    "CatalogClientProtocol",
    "FullCatalogTags",
    "LocalTrackRef",
    "LocalTrackStoreProtocol",
    "MergedTagSet",
    "ProgressEvent",
    "ProgressNotifierProtocol",
    "ReconciliationMode",
    "ReconciliationPhase",
    "ReconciliationResult",
    "SearchCandidatesResult",
    "TagWriterProtocol",
    "TrackCandidateSet",
    "TrackSelection",
    "TrackState",
    "normalize_for_matching",
    "split_artists",
]
