"""Candidate scoring and ranking for catalog matches.

Scores are a weighted blend of title similarity, artist similarity and
duration closeness, each in [0, 1]. The scorer is pure: it holds only its
configuration and never performs I/O.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

from rapidfuzz import fuzz

from core.models.normalization import normalize_for_matching, split_artists
from core.models.track_models import MatchingConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from core.models.track_models import CatalogCandidate, LocalTrackRef

SCORE_PRECISION = 4


class ScoreBreakdown(NamedTuple):
    """Component scores behind a final similarity score."""

    title: float
    artist: float
    duration: float
    total: float


class CandidateScorer:
    """Scores catalog candidates against a local track."""

    def __init__(self, config: MatchingConfig | None = None) -> None:
        self.config = config or MatchingConfig()

    def score(self, local: LocalTrackRef, candidate: CatalogCandidate) -> float:
        """Return the similarity of a candidate to a local track, in [0, 1]."""
        return self.score_fields(local.title, local.artist, local.duration_seconds, candidate)

    def score_fields(
        self,
        title: str,
        artist: str,
        duration_seconds: float | None,
        candidate: CatalogCandidate,
    ) -> float:
        """Score a candidate against loose title/artist/duration values."""
        return self.breakdown(title, artist, duration_seconds, candidate).total

    def breakdown(
        self,
        title: str,
        artist: str,
        duration_seconds: float | None,
        candidate: CatalogCandidate,
    ) -> ScoreBreakdown:
        """Compute every component score for a candidate.

        Args:
            title: Local track title
            artist: Local artist credit
            duration_seconds: Local duration, or None when unknown
            candidate: Catalog candidate to score

        Returns:
            ScoreBreakdown with the rounded weighted total

        """
        title_score = self.title_similarity(title, candidate.title, candidate.mix_name)
        artist_score = self.artist_similarity(artist, candidate.artists)
        duration_score = self.duration_closeness(duration_seconds, candidate.duration_seconds)

        cfg = self.config
        weight_sum = cfg.title_weight + cfg.artist_weight + cfg.duration_weight
        weighted = (
            cfg.title_weight * title_score + cfg.artist_weight * artist_score + cfg.duration_weight * duration_score
        )
        total = round(min(1.0, max(0.0, weighted / weight_sum)), SCORE_PRECISION)
        return ScoreBreakdown(title_score, artist_score, duration_score, total)

    @staticmethod
    def title_similarity(local_title: str, candidate_title: str, mix_name: str | None = None) -> float:
        """Compare titles, with and without the candidate's mix name appended."""
        local = normalize_for_matching(local_title)
        bare = normalize_for_matching(candidate_title)
        if not local or not bare:
            return 0.0

        best = fuzz.token_sort_ratio(local, bare)
        mix = normalize_for_matching(mix_name)
        if mix:
            best = max(best, fuzz.token_sort_ratio(local, f"{bare} {mix}"))
        return best / 100.0

    @staticmethod
    def artist_similarity(local_artist: str, candidate_artists: str) -> float:
        """Compare artist credits independently of order and separators."""
        local = split_artists(local_artist)
        remote = split_artists(candidate_artists)
        if not local or not remote:
            return 0.0
        return fuzz.token_sort_ratio(" ".join(local), " ".join(remote)) / 100.0

    def duration_closeness(self, local_seconds: float | None, candidate_seconds: float | None) -> float:
        """Map a duration difference onto [0, 1].

        Full credit within the tolerance window, linear decay to zero at the
        cutoff. A missing duration on either side yields the neutral score.
        """
        if not local_seconds or not candidate_seconds:
            return self.config.missing_duration_score

        diff = abs(local_seconds - candidate_seconds)
        tolerance = self.config.duration_tolerance_seconds
        cutoff = self.config.duration_cutoff_seconds
        if diff <= tolerance:
            return 1.0
        if diff >= cutoff:
            return 0.0
        return 1.0 - (diff - tolerance) / (cutoff - tolerance)

    def rank(
        self,
        title: str,
        artist: str,
        duration_seconds: float | None,
        candidates: Iterable[CatalogCandidate],
        max_results: int,
        min_score: float,
    ) -> list[CatalogCandidate]:
        """Score, filter and order candidates.

        Candidates below min_score are dropped. The rest are sorted by score
        descending; equal scores are broken by duration closeness, then by
        text similarity. At most max_results candidates are returned.

        Returns:
            New candidate objects carrying their similarity_score

        """
        scored: list[tuple[ScoreBreakdown, CatalogCandidate]] = []
        for candidate in candidates:
            parts = self.breakdown(title, artist, duration_seconds, candidate)
            if parts.total < min_score:
                continue
            scored.append((parts, candidate.model_copy(update={"similarity_score": parts.total})))

        scored.sort(key=lambda item: (-item[0].total, -item[0].duration, -(item[0].title + item[0].artist)))
        return [candidate for _, candidate in scored[: max(0, max_results)]]
