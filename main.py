#!/usr/bin/env python3
"""Track Reconciler - Main entry point.

Matches local tracks against the remote catalog and writes the
reconciled tags back to the audio files.
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Add src directory to Python path BEFORE imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from app.cli import CLI
from app.orchestrator import Orchestrator
from core.core_config import load_config
from core.exceptions import ConfigurationError, ReconciliationError
from core.logger import SafeQueueListener, get_loggers
from core.models.track_models import LogLevel
from services.dependency_container import DependencyContainer


async def _setup_environment(
    args: argparse.Namespace,
) -> tuple[DependencyContainer, SafeQueueListener | None, logging.Logger, logging.Logger]:
    """Set up configuration, logging, and dependencies.

    Args:
        args: Parsed command line arguments

    Returns:
        Tuple of (deps, listener, logger_console, logger_error)

    """
    config = load_config(args.config)
    if args.verbose:
        config.logging.levels.console = LogLevel.DEBUG

    logger_console, logger_error, listener = get_loggers(config)

    deps = DependencyContainer(
        config,
        logger_console,
        logger_error,
        logging_listener=listener,
    )
    await deps.initialize()
    return deps, listener, logger_console, logger_error


def _handle_critical_error(error: Exception, logger_error: logging.Logger | None) -> None:
    """Handle critical errors."""
    if logger_error:
        logger_error.critical("A critical error occurred: %s", error, exc_info=True)
    else:
        print(f"A critical error occurred: {error}", file=sys.stderr)
    sys.exit(1)


async def _cleanup_resources(
    deps: DependencyContainer,
    logger_console: logging.Logger,
    start_time: float,
) -> None:
    """Close services, stop the logging listener and log execution time."""
    await deps.close()
    execution_time = time.time() - start_time
    logger_console.info("Total execution time: %.2f seconds", execution_time)
    deps.shutdown()


async def main_async() -> None:
    """Execute main async entry point."""
    cli = CLI()
    args = cli.parse_args()
    start_time = time.time()

    try:
        deps, _listener, logger_console, logger_error = await _setup_environment(args)
    except (ConfigurationError, ReconciliationError) as e:
        _handle_critical_error(e, None)
        return

    try:
        orchestrator = Orchestrator(deps)
        await orchestrator.run_command(args)
    except (ReconciliationError, RuntimeError, ValueError, OSError) as e:
        _handle_critical_error(e, logger_error)
    finally:
        await _cleanup_resources(deps, logger_console, start_time)


def main() -> None:
    """Execute the main entry point."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
