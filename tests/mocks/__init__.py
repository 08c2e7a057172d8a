"""Mock infrastructure for track reconciler tests."""

from __future__ import annotations

from tests.mocks.protocol_mocks import FailingNotifier, FakeCatalogClient, FakeTagWriter, FakeTrackStore, RecordingNotifier

__all__ = [
    "FailingNotifier",
    "FakeCatalogClient",
    "FakeTagWriter",
    "FakeTrackStore",
    "RecordingNotifier",
]
