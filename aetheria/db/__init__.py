"""Local persistence for the session snapshot."""

from .snapshot_store import STORAGE_KEY, SnapshotStore

__all__ = ["STORAGE_KEY", "SnapshotStore"]
