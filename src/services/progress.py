"""Progress notifiers for reconciliation batches.

Notifiers never block the batch: the queue variant drops events when its
consumer falls behind, and the orchestrator swallows any notifier failure.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from core.logger import LogFormat
from core.models.track_models import ReconciliationPhase

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable

    from core.models.track_models import ProgressEvent

_PHASE_LABELS = {
    ReconciliationPhase.SEARCHING: "Searching",
    ReconciliationPhase.DOWNLOADING: "Fetching catalog data",
    ReconciliationPhase.APPLYING_TAGS: "Writing tags",
    ReconciliationPhase.COMPLETE: "Done",
}


class CallbackProgressNotifier:
    """Forwards each event to a plain callable."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback

    def notify(self, event: ProgressEvent) -> None:
        self._callback(event)


class QueueProgressNotifier:
    """Publishes events on a bounded asyncio queue for a separate consumer."""

    def __init__(self, maxsize: int = 100) -> None:
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def notify(self, event: ProgressEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    def drain(self) -> list[ProgressEvent]:
        """Return and remove every queued event."""
        events: list[ProgressEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class LoggingProgressNotifier:
    """Writes one console line per phase transition."""

    def __init__(self, console_logger: logging.Logger) -> None:
        self.console_logger = console_logger

    def notify(self, event: ProgressEvent) -> None:
        if event.phase is ReconciliationPhase.COMPLETE:
            self.console_logger.info("%s %d/%d tracks", LogFormat.success("Done"), event.current_index, event.total)
            return
        self.console_logger.info(
            "[%d/%d] %s: %s",
            event.current_index,
            event.total,
            _PHASE_LABELS[event.phase],
            LogFormat.entity(event.current_track_title),
        )
