"""site_indexer.storage: хранилище JSON-снимков сайтов."""

from site_indexer.storage.snapshot_store import Snapshot, SnapshotStore

__all__ = ["Snapshot", "SnapshotStore"]
