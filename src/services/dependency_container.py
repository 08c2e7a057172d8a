"""Dependency Injection Container Module.

Builds the reconciliation services from a validated AppConfig, wires them
together and manages their lifecycle: the SQLite schema and the catalog
HTTP session on startup, the session and the logging listener on shutdown.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from core.logger import LogFormat, shorten_path
from core.tracks.candidate_scorer import CandidateScorer
from core.tracks.reconciliation import ReconciliationOrchestrator
from core.tracks.selection import ManualSelectionCoordinator

from .api.catalog_client import CatalogClient
from .progress import LoggingProgressNotifier
from .storage.track_store import SqliteTrackStore
from .tags.tag_writer import MutagenTagWriter

if TYPE_CHECKING:
    import logging
    from collections.abc import Awaitable

    from core.logger import SafeQueueListener
    from core.models.protocols import ProgressNotifierProtocol
    from core.models.track_models import AppConfig


class InitializableService(Protocol):
    """Protocol for services with a (sync or async) initialize method."""

    def initialize(self, *args: Any, **kwargs: Any) -> Awaitable[None] | None:
        """Initialize the service."""
        ...


class DependencyContainer:
    """Dependency injection container for the application.

    Services are constructed lazily by ``initialize()``; accessing one
    before that raises RuntimeError.
    """

    def __init__(
        self,
        config: AppConfig,
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        *,
        logging_listener: SafeQueueListener | None = None,
        notifier: ProgressNotifierProtocol | None = None,
    ) -> None:
        """Initialize the dependency container.

        Args:
            config: Validated application configuration
            console_logger: Logger for console output
            error_logger: Logger for error messages
            logging_listener: Optional queue listener stopped on shutdown
            notifier: Progress notifier; defaults to console logging

        """
        self._config = config
        self._console_logger = console_logger
        self._error_logger = error_logger
        self._listener = logging_listener
        self._notifier = notifier

        self._store: SqliteTrackStore | None = None
        self._scorer: CandidateScorer | None = None
        self._catalog_client: CatalogClient | None = None
        self._tag_writer: MutagenTagWriter | None = None
        self._selection: ManualSelectionCoordinator | None = None
        self._reconciliation: ReconciliationOrchestrator | None = None

    @property
    def config(self) -> AppConfig:
        """Get the application configuration."""
        return self._config

    @property
    def console_logger(self) -> logging.Logger:
        """Get the console logger."""
        return self._console_logger

    @property
    def error_logger(self) -> logging.Logger:
        """Get the error logger."""
        return self._error_logger

    @property
    def store(self) -> SqliteTrackStore:
        """Get the local track store."""
        if self._store is None:
            msg = "Track store not initialized"
            raise RuntimeError(msg)
        return self._store

    @property
    def catalog_client(self) -> CatalogClient:
        """Get the catalog client."""
        if self._catalog_client is None:
            msg = "Catalog client not initialized"
            raise RuntimeError(msg)
        return self._catalog_client

    @property
    def tag_writer(self) -> MutagenTagWriter:
        if self._tag_writer is None:
            msg = "Tag writer not initialized"
            raise RuntimeError(msg)
        return self._tag_writer

    @property
    def selection(self) -> ManualSelectionCoordinator:
        if self._selection is None:
            msg = "Selection coordinator not initialized"
            raise RuntimeError(msg)
        return self._selection

    @property
    def reconciliation(self) -> ReconciliationOrchestrator:
        """Get the reconciliation orchestrator."""
        if self._reconciliation is None:
            msg = "Reconciliation orchestrator not initialized"
            raise RuntimeError(msg)
        return self._reconciliation

    async def _initialize_service(self, service: InitializableService, service_name: str, *, force: bool = False) -> None:
        """Run a service's initialize method, timing it and logging failures."""
        initialize_method = getattr(service, "initialize", None)
        if not callable(initialize_method):
            self._error_logger.warning(" %s instance has no initialize method", LogFormat.entity(service_name))
            return

        self._console_logger.debug(" Initializing %s...", LogFormat.entity(service_name))
        start = time.monotonic()
        try:
            kwargs: dict[str, Any] = {}
            if force and "force" in inspect.signature(initialize_method).parameters:
                kwargs["force"] = True
            result = initialize_method(**kwargs)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            elapsed = time.monotonic() - start
            self._error_logger.exception(" Failed to initialize %s after %.2fs: %s", LogFormat.entity(service_name), elapsed, e)
            raise

        elapsed = time.monotonic() - start
        self._console_logger.debug(" %s initialized in %.2fs", LogFormat.entity(service_name), elapsed)

    def _build_services(self) -> None:
        """Construct every service that does not exist yet."""
        config = self._config
        if self._store is None:
            self._store = SqliteTrackStore(Path(config.database_path).expanduser(), self._console_logger)
        if self._scorer is None:
            self._scorer = CandidateScorer(config.matching)
        if self._catalog_client is None:
            self._catalog_client = CatalogClient(config.catalog, self._scorer, self._console_logger, self._error_logger)
        if self._tag_writer is None:
            self._tag_writer = MutagenTagWriter(self._console_logger, self._error_logger)
        if self._selection is None:
            self._selection = ManualSelectionCoordinator(self._console_logger)
        if self._notifier is None:
            self._notifier = LoggingProgressNotifier(self._console_logger)
        if self._reconciliation is None:
            self._reconciliation = ReconciliationOrchestrator(
                self._catalog_client,
                self._store,
                self._tag_writer,
                self._notifier,
                self._console_logger,
                self._error_logger,
                config=config.reconciliation,
                selection=self._selection,
            )

    async def initialize(self) -> None:
        """Build all services and run their async setup."""
        self._console_logger.debug("Starting initialization of services...")
        self._build_services()

        services: list[tuple[InitializableService, str]] = [
            (self.store, "Track Store"),
            (self.catalog_client, "Catalog Client"),
        ]
        for service, name in services:
            await self._initialize_service(service, name)

        self._console_logger.info("Library: %s", LogFormat.file(shorten_path(str(self.store.db_path))))
        self._console_logger.debug(" All services initialized successfully")

    async def close(self) -> None:
        """Close async resources (the catalog HTTP session)."""
        self._console_logger.debug("Closing %s...", LogFormat.entity("DependencyContainer"))
        if self._catalog_client is not None:
            try:
                await self._catalog_client.close()
            except (OSError, RuntimeError) as e:
                self._console_logger.warning("Failed to close catalog client: %s", e)
        self._console_logger.debug("%s closed.", LogFormat.entity("DependencyContainer"))

    def shutdown(self) -> None:
        """Stop the logging listener."""
        if self._listener is not None:
            self._console_logger.debug("Stopping logging listener...")
            self._listener.stop()
            self._listener = None
