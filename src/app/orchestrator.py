"""Main orchestrator module for the track reconciler.

This module routes CLI commands to the reconciliation service and renders
their results.
"""

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

from rich.table import Table

from core.exceptions import InvalidInputError
from core.logger import LogFormat, get_shared_console
from core.models.track_models import BatchResult, ReconciliationMode, SearchCandidatesResult
from core.tracks.selection import load_selections

if TYPE_CHECKING:
    from services.dependency_container import DependencyContainer


def build_results_table(batch: BatchResult, title: str) -> Table:
    """Render one row per track result."""
    table = Table(title=title, show_lines=False)
    for header in ("Track", "Status", "Catalog ID", "Changed fields", "Message"):
        table.add_column(header, overflow="fold")
    for result in batch.results:
        status = "[green]applied[/green]" if result.success else "[red]failed[/red]"
        fields = ", ".join(result.applied_tags.changed_fields()) if result.applied_tags else ""
        table.add_row(
            str(result.local_track_id),
            status,
            str(result.catalog_id) if result.catalog_id is not None else "-",
            fields or "-",
            result.error or result.warning or "",
        )
    return table


def build_candidates_table(result: SearchCandidatesResult) -> Table:
    """Render every candidate of every track, best first."""
    table = Table(title="Catalog candidates", show_lines=True)
    for header in ("Track", "Local", "Catalog ID", "Candidate", "BPM", "Key", "Score"):
        table.add_column(header, overflow="fold")
    for track in result.tracks:
        local = f"{track.local_artist} - {track.local_title}"
        if track.search_error:
            table.add_row(str(track.local_track_id), local, "-", f"[red]{track.search_error}[/red]", "", "", "")
            continue
        if not track.candidates:
            table.add_row(str(track.local_track_id), local, "-", "[dim]no candidates[/dim]", "", "", "")
            continue
        for candidate in track.candidates:
            title = f"{candidate.title} ({candidate.mix_name})" if candidate.mix_name else candidate.title
            table.add_row(
                str(track.local_track_id),
                local,
                str(candidate.catalog_id),
                f"{candidate.artists} - {title}",
                f"{candidate.bpm:g}" if candidate.bpm is not None else "",
                candidate.key or "",
                f"{candidate.similarity_score:.2f}",
            )
    return table


class Orchestrator:
    """Orchestrates the reconciliation commands."""

    def __init__(self, deps: "DependencyContainer") -> None:
        """Initialize the orchestrator with dependencies.

        Args:
            deps: Dependency container with all required services

        """
        self.deps = deps
        self.config = deps.config
        self.console_logger = deps.console_logger
        self.error_logger = deps.error_logger
        self.console = get_shared_console()

    async def run_command(self, args: argparse.Namespace) -> None:
        """Execute the appropriate command based on arguments.

        Args:
            args: Parsed command-line arguments

        """
        match args.command:
            case "fix":
                await self._run_reconcile(args, ReconciliationMode.AUTOMATIC)
            case "artwork":
                await self._run_reconcile(args, ReconciliationMode.ARTWORK_ONLY)
            case "search":
                await self._run_search(args)
            case "apply":
                await self._run_apply(args)
            case _:
                self.error_logger.error("Unknown command: %s", args.command)

    async def _resolve_track_ids(self, args: argparse.Namespace) -> list[int]:
        """Track ids from the command line, or every unmatched track in the store."""
        if getattr(args, "all_unmatched", False):
            track_ids = self.deps.store.list_track_ids(only_unmatched=True)
            self.console_logger.info("Found %d unmatched tracks", len(track_ids))
            return track_ids
        return list(args.track_ids)

    async def _run_reconcile(self, args: argparse.Namespace, mode: ReconciliationMode) -> None:
        """Run the automatic or artwork-only batch."""
        track_ids = await self._resolve_track_ids(args)
        if not track_ids:
            self.console_logger.warning("Nothing to do: no track ids given")
            return
        batch = await self.deps.reconciliation.reconcile_batch(track_ids, mode)
        self.console.print(build_results_table(batch, f"Reconciliation ({mode.value})"))
        self._write_output(batch, getattr(args, "output", None))

    async def _run_search(self, args: argparse.Namespace) -> None:
        """Run the manual-mode search and save the candidate sets."""
        track_ids = await self._resolve_track_ids(args)
        if not track_ids:
            self.console_logger.warning("Nothing to do: no track ids given")
            return
        result = await self.deps.reconciliation.search_candidates_for_batch(track_ids)
        self.console.print(build_candidates_table(result))
        self.deps.selection.export_json(args.output)
        self.console_logger.info("Candidate sets saved to %s", LogFormat.file(args.output))

    async def _run_apply(self, args: argparse.Namespace) -> None:
        """Apply selections loaded from a JSON file."""
        try:
            if args.candidates:
                self.deps.selection.load_json(args.candidates)
            selections = load_selections(args.selections)
            batch = await self.deps.reconciliation.apply_selections(selections)
        except InvalidInputError as e:
            self.error_logger.error("Cannot apply selections: %s", e)
            return
        self.console.print(build_results_table(batch, "Reconciliation (manual)"))
        self._write_output(batch, getattr(args, "output", None))

    def _write_output(self, batch: BatchResult, output: str | None) -> None:
        if not output:
            return
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(batch.model_dump_json(indent=2), encoding="utf-8")
        self.console_logger.info("Results saved to %s", LogFormat.file(str(path)))
