"""Logger module using QueueHandler for non-blocking file IO and RichHandler for console output.

Features:

1.  **Rich Console Output:** ``rich.logging.RichHandler`` on one shared console, with markup helpers (``LogFormat``).
2.  **Non-Blocking File Logging:** ``QueueHandler`` feeds a ``SafeQueueListener`` that owns the file handlers.
3.  **Two Log Files:** a main log with everything and an error log with warnings and worse, both size-rotated.
4.  **Compact Formatting:** ``CompactFormatter`` abbreviates levels and shortens paths in file logs.
5.  **Fallback:** if setup fails, basic stream loggers are returned instead of raising.
"""

from __future__ import annotations

# All runtime information goes through a configured ``logging.Logger``.
# ``print()`` is reserved for final end-user output and for logging failures.
import logging
import os
import queue
import sys
import traceback
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from core.models.track_models import AppConfig

__all__ = [
    "LEVEL_ABBREV",
    "CompactFormatter",
    "LogFormat",
    "LoggerFilter",
    "SafeQueueListener",
    "create_console_logger",
    "create_fallback_loggers",
    "get_full_log_path",
    "get_log_levels_from_config",
    "get_loggers",
    "get_shared_console",
    "setup_queue_logging",
    "shorten_path",
]

# Module-level shared console container (avoids global statement)
_console_holder: dict[str, Console] = {}

LEVEL_ABBREV = {
    "DEBUG": "D",
    "INFO": "I",
    "WARNING": "W",
    "ERROR": "E",
    "CRITICAL": "C",
}

FILE_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(short_pathname)s:%(lineno)d - %(message)s"


def get_shared_console() -> Console:
    """Get or create the shared Rich console instance.

    All Rich output (logging, tables) should use this single Console
    instance to prevent output interleaving.
    """
    if "console" not in _console_holder:
        _console_holder["console"] = Console()
    return _console_holder["console"]


class SafeQueueListener(QueueListener):
    """A QueueListener whose stop() tolerates being called twice."""

    def stop(self) -> None:
        try:
            if getattr(self, "_thread", None) is not None:
                super().stop()
        except (AttributeError, RuntimeError, TypeError) as e:
            print(f"Warning: Error stopping QueueListener: {e}", file=sys.stderr)


class LogFormat:
    """Rich markup helpers for consistent console highlighting.

    Example:
        from core.logger import LogFormat as LF
        logger.info("Tagged %s in %s", LF.entity("Strobe"), LF.file("Strobe.flac"))
    """

    @staticmethod
    def entity(name: str) -> str:
        """Track, artist or component name (yellow)."""
        return f"[yellow]{name}[/yellow]"

    @staticmethod
    def file(name: str) -> str:
        """Filename or path (cyan)."""
        return f"[cyan]{name}[/cyan]"

    @staticmethod
    def success(text: str) -> str:
        return f"[green]{text}[/green]"


class LoggerFilter:
    """Lets through only records from the named loggers."""

    def __init__(self, allowed_loggers: list[str]) -> None:
        self.allowed_loggers = set(allowed_loggers)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name in self.allowed_loggers


def shorten_path(path: str) -> str:
    """Replace the home directory prefix with ``~`` for readable log lines."""
    if not path:
        return path
    home = os.path.expanduser("~")
    if home and home != "~" and path.startswith(home):
        return "~" + path[len(home) :]
    return path


class CompactFormatter(logging.Formatter):
    """File log formatter with one-letter levels and shortened paths."""

    def __init__(self, fmt: str | None = None, datefmt: str = "%H:%M:%S") -> None:
        super().__init__(fmt or FILE_LOG_FORMAT, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        record.short_pathname = shorten_path(getattr(record, "pathname", "N/A"))
        record.levelname = LEVEL_ABBREV.get(original_levelname, original_levelname[:1])
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname
            del record.short_pathname


def get_full_log_path(config: AppConfig, relative_path: str) -> str:
    """Resolve a log file path against ``logs_base_dir`` and create its directory."""
    base = Path(os.path.expanduser(config.logs_base_dir))
    full_path = Path(relative_path) if Path(relative_path).is_absolute() else base / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return str(full_path)


def get_log_levels_from_config(config: AppConfig) -> dict[str, int]:
    """Map configured level names onto logging constants."""
    levels = config.logging.levels
    return {
        "console": logging.getLevelName(levels.console.value),
        "main_file": logging.getLevelName(levels.main_file.value),
    }


def create_console_logger(levels: dict[str, int]) -> logging.Logger:
    """Create the console logger with a RichHandler on the shared console.

    Args:
        levels: Dictionary with a "console" logging level

    Returns:
        Configured console logger; the handler is only attached once

    """
    console_logger = logging.getLogger("console_logger")
    if not console_logger.handlers:
        handler = RichHandler(
            level=levels["console"],
            console=get_shared_console(),
            show_path=False,
            enable_link_path=False,
            log_time_format="%H:%M:%S",
            markup=True,
        )
        console_logger.addHandler(handler)
        console_logger.setLevel(levels["console"])
        console_logger.propagate = False
    return console_logger


def setup_queue_logging(config: AppConfig, levels: dict[str, int]) -> tuple[logging.Logger, SafeQueueListener]:
    """Set up queue-based file logging.

    Returns:
        Tuple of (error_logger, listener)

    """
    formatter = CompactFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    log_cfg = config.logging

    main_handler = RotatingFileHandler(
        get_full_log_path(config, log_cfg.main_log_file),
        maxBytes=log_cfg.max_bytes,
        backupCount=log_cfg.backup_count,
        encoding="utf-8",
    )
    main_handler.setFormatter(formatter)
    main_handler.setLevel(levels["main_file"])
    main_handler.addFilter(LoggerFilter(["error_logger", "config"]))

    error_handler = RotatingFileHandler(
        get_full_log_path(config, log_cfg.error_log_file),
        maxBytes=log_cfg.max_bytes,
        backupCount=log_cfg.backup_count,
        encoding="utf-8",
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.WARNING)
    error_handler.addFilter(LoggerFilter(["error_logger", "config"]))

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(-1)
    listener = SafeQueueListener(log_queue, main_handler, error_handler, respect_handler_level=True)
    listener.start()
    queue_handler = QueueHandler(log_queue)

    def setup_logger(logger_name: str) -> logging.Logger:
        logger = logging.getLogger(logger_name)
        if not any(isinstance(handler, QueueHandler) for handler in logger.handlers):
            logger.addHandler(queue_handler)
            logger.setLevel(levels["main_file"])
            logger.propagate = False
        return logger

    setup_logger("config")
    return setup_logger("error_logger"), listener


def get_loggers(config: AppConfig) -> tuple[logging.Logger, logging.Logger, SafeQueueListener | None]:
    """Create the console and error loggers.

    Never raises: on setup failure, fallback stream loggers are returned.

    Returns:
        Tuple of (console_logger, error_logger, listener). Listener is None on failure.

    """
    try:
        levels = get_log_levels_from_config(config)
        console_logger = create_console_logger(levels)
        error_logger, listener = setup_queue_logging(config, levels)
    except (OSError, ValueError, AttributeError, TypeError) as e:
        return create_fallback_loggers(e)

    console_logger.debug("Logging setup with QueueListener and RichHandler complete.")
    return console_logger, error_logger, listener


def create_fallback_loggers(e: Exception) -> tuple[logging.Logger, logging.Logger, None]:
    """Configure basic stream logging after custom setup failed."""
    print(f"FATAL ERROR: Failed to configure logging: {e}", file=sys.stderr)
    traceback.print_exc(file=sys.stderr)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    logging.critical("Fallback basic logging configured due to error: %s", e)

    console_fallback = logging.getLogger("console_fallback")
    error_fallback = logging.getLogger("error_fallback")
    if not console_fallback.handlers:
        console_fallback.addHandler(logging.StreamHandler(sys.stdout))
    if not error_fallback.handlers:
        error_fallback.addHandler(logging.StreamHandler(sys.stderr))
    return console_fallback, error_fallback, None
