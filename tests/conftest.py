"""Pytest configuration and shared fixtures for the track reconciler.

Ensures the project root is on sys.path so that ``tests.*`` helpers are
importable next to the ``src`` packages.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from tests.factories import make_local_track
from tests.mocks.protocol_mocks import FakeCatalogClient, FakeTagWriter, FakeTrackStore, RecordingNotifier

# Ensure project root is on sys.path for `import tests.*`
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def mock_console_logger() -> MagicMock:
    """Mock console logger for testing."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def mock_error_logger() -> MagicMock:
    """Mock error logger for testing."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def track_store() -> FakeTrackStore:
    """In-memory store preloaded with the Strobe track (id 1)."""
    return FakeTrackStore([make_local_track()])


@pytest.fixture
def catalog_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def tag_writer() -> FakeTagWriter:
    return FakeTagWriter()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
