"""Manual selection coordinator.

Holds the candidate sets produced by the search phase until the user comes
back with a selection for each track. It makes no matching decisions of its
own; it only keeps the candidate sets and turns the user's answers into
ordered work items.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from core.exceptions import InvalidInputError
from core.models.track_models import TrackCandidateSet, TrackSelection

if TYPE_CHECKING:
    import logging
    from collections.abc import Iterable

_CANDIDATE_SETS = TypeAdapter(list[TrackCandidateSet])
_SELECTIONS = TypeAdapter(list[TrackSelection])


class ManualSelectionCoordinator:
    """Bridges the search phase and the apply phase of manual reconciliation."""

    def __init__(self, console_logger: logging.Logger) -> None:
        self.console_logger = console_logger
        self._candidate_sets: dict[int, TrackCandidateSet] = {}

    def register(self, candidate_sets: Iterable[TrackCandidateSet]) -> None:
        """Remember candidate sets; a later set for the same track replaces the earlier one."""
        for candidate_set in candidate_sets:
            self._candidate_sets[candidate_set.local_track_id] = candidate_set

    def candidate_set(self, local_track_id: int) -> TrackCandidateSet | None:
        return self._candidate_sets.get(local_track_id)

    def pending_track_ids(self) -> list[int]:
        return list(self._candidate_sets)

    def resolve(self, selections: Iterable[TrackSelection]) -> list[TrackSelection]:
        """Turn raw user selections into the ordered list of items to apply.

        Duplicate selections for the same track collapse to the last one, at
        the position of the first. Tracks without a selection are simply
        absent from the result.

        Args:
            selections: User answers, in the order they were given

        Returns:
            Deduplicated selections in input order

        """
        resolved: dict[int, TrackSelection] = {}
        for selection in selections:
            if selection.local_track_id in resolved:
                self.console_logger.debug(
                    "Duplicate selection for track %d, keeping the latest",
                    selection.local_track_id,
                )
            resolved[selection.local_track_id] = selection
            self._log_unlisted_choice(selection)
        return list(resolved.values())

    def _log_unlisted_choice(self, selection: TrackSelection) -> None:
        if selection.chosen_catalog_id is None:
            return
        candidate_set = self._candidate_sets.get(selection.local_track_id)
        if candidate_set is None:
            return
        offered = {candidate.catalog_id for candidate in candidate_set.candidates}
        if selection.chosen_catalog_id not in offered:
            self.console_logger.debug(
                "Track %d: catalog id %d was not among the offered candidates",
                selection.local_track_id,
                selection.chosen_catalog_id,
            )

    def export_json(self, path: str | Path) -> None:
        """Write the held candidate sets to a JSON file."""
        payload = _CANDIDATE_SETS.dump_python(list(self._candidate_sets.values()), mode="json")
        Path(path).write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def load_json(self, path: str | Path) -> None:
        """Register candidate sets previously written by export_json.

        Raises:
            InvalidInputError: If the file is missing or malformed

        """
        try:
            raw = Path(path).read_text(encoding="utf-8")
            self.register(_CANDIDATE_SETS.validate_json(raw))
        except (OSError, ValidationError) as e:
            msg = f"Cannot load candidate sets from {path}: {e}"
            raise InvalidInputError(msg) from e


def load_selections(path: str | Path) -> list[TrackSelection]:
    """Read a JSON list of {local_track_id, chosen_catalog_id} objects.

    Raises:
        InvalidInputError: If the file is missing or malformed

    """
    try:
        return _SELECTIONS.validate_json(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        msg = f"Cannot load selections from {path}: {e}"
        raise InvalidInputError(msg) from e
