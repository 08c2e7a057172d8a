"""Pydantic models for configuration and data validation."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

# Tag fields the merge engine can change, in the order they are written and reported
MERGE_FIELDS: tuple[str, ...] = (
    "title",
    "artist",
    "bpm",
    "key",
    "genre",
    "label",
    "album",
    "year",
    "isrc",
    "catalog_number",
    "artwork_url",
)


class LogLevel(StrEnum):
    """Log level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    NOTSET = "NOTSET"


class ReconciliationMode(StrEnum):
    """Batch reconciliation mode."""

    AUTOMATIC = "automatic"
    ARTWORK_ONLY = "artwork_only"


class ReconciliationPhase(StrEnum):
    """Phase reported in progress notifications."""

    SEARCHING = "searching"
    DOWNLOADING = "downloading"
    APPLYING_TAGS = "applying_tags"
    COMPLETE = "complete"


class TrackState(StrEnum):
    """Per-track state inside a reconciliation batch."""

    PENDING = "pending"
    SEARCHING = "searching"
    FOUND = "found"
    NO_MATCH = "no_match"
    SEARCH_ERROR = "search_error"
    MANUAL_SELECTION = "manual_selection"
    APPLYING = "applying"
    APPLIED = "applied"
    APPLY_ERROR = "apply_error"
    SKIPPED = "skipped"


# Configuration models


class LogLevelsConfig(BaseModel):
    """Log levels configuration."""

    console: LogLevel = LogLevel.INFO
    main_file: LogLevel = LogLevel.DEBUG


class LoggingConfig(BaseModel):
    """Logging configuration."""

    main_log_file: str = "main/reconciler.log"
    error_log_file: str = "main/errors.log"
    max_bytes: int = Field(default=5_000_000, ge=0)
    backup_count: int = Field(default=3, ge=0)
    levels: LogLevelsConfig = Field(default_factory=LogLevelsConfig)


class CatalogConfig(BaseModel):
    """Remote catalog endpoints and HTTP behaviour."""

    search_url: str = "https://www.beatport.com/search/tracks"
    api_base_url: str = "https://api.beatport.com/v4"
    user_agent: str = "Mozilla/5.0 (compatible; TrackReconciler/1.0)"
    timeout_seconds: float = Field(default=45.0, gt=0)
    connect_timeout_seconds: float = Field(default=15.0, gt=0)
    requests_per_window: int = Field(default=2, ge=1)
    window_seconds: float = Field(default=1.0, gt=0)
    max_retries: int = Field(default=0, ge=0)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    search_overfetch: int = Field(default=25, ge=1)
    artwork_size: int = Field(default=500, ge=1)
    thumbnail_size: int = Field(default=100, ge=1)
    token_refresh_margin_seconds: int = Field(default=60, ge=0)


class MatchingConfig(BaseModel):
    """Candidate scoring weights and duration thresholds."""

    title_weight: float = Field(default=0.5, ge=0)
    artist_weight: float = Field(default=0.3, ge=0)
    duration_weight: float = Field(default=0.2, ge=0)
    duration_tolerance_seconds: float = Field(default=5.0, ge=0)
    duration_cutoff_seconds: float = Field(default=30.0, gt=0)
    missing_duration_score: float = Field(default=0.7, ge=0, le=1)

    @model_validator(mode="after")
    def _check_thresholds(self) -> MatchingConfig:
        if self.title_weight + self.artist_weight + self.duration_weight <= 0:
            msg = "at least one matching weight must be positive"
            raise ValueError(msg)
        if self.duration_cutoff_seconds <= self.duration_tolerance_seconds:
            msg = "duration_cutoff_seconds must be greater than duration_tolerance_seconds"
            raise ValueError(msg)
        return self


class ReconciliationConfig(BaseModel):
    """Batch behaviour of the reconciliation pipeline."""

    max_candidates: int = Field(default=4, ge=1)
    min_score: float = Field(default=0.25, ge=0, le=1)
    request_delay_ms: int = Field(default=500, ge=0)
    progress_queue_size: int = Field(default=100, ge=1)


class AppConfig(BaseModel):
    """Main application configuration model."""

    logs_base_dir: str = "logs"
    database_path: str = "library.db"

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)


# Domain models


class LocalTrackRef(BaseModel):
    """Snapshot of a track as stored in the local library."""

    model_config = ConfigDict(frozen=True)

    id: int
    path: str
    title: str
    artist: str
    duration_seconds: float | None = None
    current_bpm: float | None = None
    current_key: str | None = None
    current_genre: str | None = None
    current_album: str | None = None
    current_year: int | None = None
    current_label: str | None = None
    current_isrc: str | None = None
    current_catalog_number: str | None = None
    catalog_id: int | None = None

    def current_value(self, field: str) -> str | float | int | None:
        """Return the stored value that corresponds to a merge field.

        Args:
            field: Name of a MergedTagSet field

        Returns:
            The current stored value, or None when the store keeps no such field

        """
        if field in {"title", "artist"}:
            return getattr(self, field)
        return getattr(self, f"current_{field}", None)


class CatalogCandidate(BaseModel):
    """Catalog entry proposed as a possible match."""

    catalog_id: int
    title: str
    mix_name: str | None = None
    artists: str = ""
    bpm: float | None = None
    key: str | None = None
    duration_seconds: float | None = None
    artwork_url: str | None = None
    genre: str | None = None
    label: str | None = None
    release_date: str | None = None
    similarity_score: float = Field(default=0.0, ge=0, le=1)


class FullCatalogTags(BaseModel):
    """Complete metadata of one catalog track, ready for merging."""

    catalog_id: int
    title: str | None = None
    artist: str | None = None
    bpm: float | None = None
    key: str | None = None
    genre: str | None = None
    label: str | None = None
    album: str | None = None
    year: int | None = None
    isrc: str | None = None
    catalog_number: str | None = None
    artwork_url: str | None = None


class MergedTagSet(BaseModel):
    """Fields the merge policy decided to change; unset fields stay untouched."""

    title: str | None = None
    artist: str | None = None
    bpm: float | None = None
    key: str | None = None
    genre: str | None = None
    label: str | None = None
    album: str | None = None
    year: int | None = None
    isrc: str | None = None
    catalog_number: str | None = None
    artwork_url: str | None = None

    def changed_fields(self) -> dict[str, str | float | int]:
        """Return the populated fields in write order."""
        values: dict[str, str | float | int] = {}
        for field in MERGE_FIELDS:
            value = getattr(self, field)
            if value is not None:
                values[field] = value
        return values

    @property
    def is_empty(self) -> bool:
        """True when no field is populated."""
        return not self.changed_fields()


class TrackCandidateSet(BaseModel):
    """Candidates found for one local track, awaiting a user decision."""

    local_track_id: int
    local_title: str
    local_artist: str
    local_filename: str | None = None
    local_duration_seconds: float | None = None
    candidates: list[CatalogCandidate] = Field(default_factory=list)
    search_error: str | None = None


class SearchCandidatesResult(BaseModel):
    """Result of the manual-mode search phase."""

    tracks: list[TrackCandidateSet] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return len(self.tracks)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def with_candidates(self) -> int:
        return sum(1 for track in self.tracks if track.candidates)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def without_candidates(self) -> int:
        return self.total - self.with_candidates


class TrackSelection(BaseModel):
    """User decision for one track; None means the track is not in the catalog."""

    local_track_id: int
    chosen_catalog_id: int | None = None


class ReconciliationResult(BaseModel):
    """Outcome of reconciling a single track."""

    local_track_id: int
    success: bool
    catalog_id: int | None = None
    applied_tags: MergedTagSet | None = None
    error: str | None = None
    warning: str | None = None


class BatchResult(BaseModel):
    """Aggregate outcome of one batch; counts are always derived from the results."""

    results: list[ReconciliationResult] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return len(self.results)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_count(self) -> int:
        return self.total - self.success_count


class ProgressEvent(BaseModel):
    """Progress notification emitted after each phase transition."""

    current_index: int = Field(ge=0)
    total: int = Field(ge=0)
    current_track_title: str
    phase: ReconciliationPhase
