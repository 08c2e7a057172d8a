"""Command-line interface for the track reconciler."""

import argparse
from typing import Any


def _add_track_selection_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the positional track ids and the --all-unmatched switch."""
    parser.add_argument(
        "track_ids",
        nargs="*",
        type=int,
        metavar="TRACK_ID",
        help="Local track ids to process, in order",
    )
    parser.add_argument(
        "--all-unmatched",
        action="store_true",
        help="Process every track that has no catalog id yet",
    )


def _add_fix_command(subparsers: Any) -> None:
    """Add the automatic fix command."""
    parser = subparsers.add_parser(
        "fix",
        help="Match tracks and apply the best catalog candidate",
        description="Search the catalog for each track, auto-apply the top candidate and write tags",
    )
    _add_track_selection_arguments(parser)
    parser.add_argument("--output", help="Write the batch result as JSON to this path")


def _add_artwork_command(subparsers: Any) -> None:
    """Add the artwork-only command."""
    parser = subparsers.add_parser(
        "artwork",
        help="Replace cover art from the best catalog candidate",
        description="Like 'fix', but only the artwork is written; every other tag is left untouched",
    )
    _add_track_selection_arguments(parser)
    parser.add_argument("--output", help="Write the batch result as JSON to this path")


def _add_search_command(subparsers: Any) -> None:
    """Add the manual-mode search command."""
    parser = subparsers.add_parser(
        "search",
        help="Collect ranked candidates for manual selection",
        description="Search the catalog and save the candidate sets for a later 'apply'",
    )
    _add_track_selection_arguments(parser)
    parser.add_argument(
        "--output",
        default="candidates.json",
        help="Where to write the candidate sets (default: %(default)s)",
    )


def _add_apply_command(subparsers: Any) -> None:
    """Add the manual-mode apply command."""
    parser = subparsers.add_parser(
        "apply",
        help="Apply manually chosen catalog ids",
        description="Apply a JSON list of {local_track_id, chosen_catalog_id} selections",
    )
    parser.add_argument(
        "--selections",
        required=True,
        help="JSON file with the selections; chosen_catalog_id null means 'not selected'",
    )
    parser.add_argument(
        "--candidates",
        help="Candidate sets JSON written by 'search', used to flag ids that were never offered",
    )
    parser.add_argument("--output", help="Write the batch result as JSON to this path")


class CLI:
    """Command-line interface handler."""

    def __init__(self) -> None:
        """Initialize CLI parser."""
        self.parser = self._create_parser()

    @staticmethod
    def _create_parser() -> argparse.ArgumentParser:
        """Create the argument parser.

        Returns:
            Configured ArgumentParser

        """
        parser = argparse.ArgumentParser(
            prog="python main.py",
            description="Track Reconciler - match local tracks against the catalog and fix their tags",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
    # Fix two tracks automatically
    %(prog)s fix 12 15

    # Replace artwork for every track that was never matched
    %(prog)s artwork --all-unmatched

    # Manual mode: search, edit selections, apply
    %(prog)s search 12 15 --output candidates.json
    %(prog)s apply --selections selections.json --candidates candidates.json
            """,
        )

        parser.add_argument(
            "--verbose",
            "-v",
            action="store_true",
            help="Enable verbose logging",
        )
        parser.add_argument(
            "--config",
            type=str,
            help="Path to configuration file. If not specified, uses $CONFIG_PATH, then 'config.yaml' if present.",
        )

        subparsers = parser.add_subparsers(
            dest="command",
            title="Commands",
            description="Available commands",
            help="Use '%(prog)s COMMAND --help' for command-specific help",
            required=True,
        )
        _add_fix_command(subparsers)
        _add_artwork_command(subparsers)
        _add_search_command(subparsers)
        _add_apply_command(subparsers)
        return parser

    def parse_args(self, args: list[str] | None = None) -> argparse.Namespace:
        """Parse command-line arguments.

        Args:
            args: List of arguments (use sys.argv if None)

        Returns:
            Parsed arguments namespace

        """
        namespace = self.parser.parse_args(args)
        if namespace.command in ("fix", "artwork", "search") and namespace.track_ids and namespace.all_unmatched:
            self.parser.error("pass track ids or --all-unmatched, not both")
        return namespace

    def print_help(self) -> None:
        """Print help message."""
        self.parser.print_help()
