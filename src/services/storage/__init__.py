"""Local track storage."""

from .track_store import SqliteTrackStore

__all__ = ["SqliteTrackStore"]
