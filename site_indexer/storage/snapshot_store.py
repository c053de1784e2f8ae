# site_indexer/storage/snapshot_store.py
"""
Snapshot store: one JSON document per site key.

Writes merge on top of the previous snapshot (fields missing from the new
data survive, e.g. ``installedAt``) and always replace the whole file. Read
and write failures are logged and reported as ``None`` / ``False``; they are
never raised to the caller.
"""
from __future__ import annotations

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, TypedDict, Union

from site_indexer.crawler.models import PageResult
from site_indexer.index.indexer import InvertedIndex
from site_indexer.logger import get_logger
from site_indexer.utils import site_key

__all__ = ("Snapshot", "SnapshotStore", "now_ms")

logger = get_logger("storage")


class Snapshot(TypedDict, total=False):
    """Persisted state of one site."""

    pages: List[Dict[str, Any]]
    aggregated: str
    index: InvertedIndex
    installedAt: int
    lastCrawledAt: int
    startUrl: str


def now_ms() -> int:
    return int(time.time() * 1000)


def serialize_pages(pages: List[PageResult]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in pages]


class SnapshotStore:
    """File-backed store keyed by :func:`~site_indexer.utils.site_key`."""

    SUFFIX = ".json"

    def __init__(self, data_dir: Union[str, Path], clock: Callable[[], int] = now_ms) -> None:
        self.data_dir = Path(data_dir)
        self._clock = clock

    def path_for(self, site: str) -> Path:
        return self.data_dir / f"{site_key(site)}{self.SUFFIX}"

    def read(self, site: str) -> Optional[Snapshot]:
        """Return the stored snapshot, or ``None`` when absent or unreadable."""
        path = self.path_for(site)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Snapshot read error for %s: %s", path.name, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Snapshot %s is not a JSON object", path.name)
            return None
        return data  # type: ignore[return-value]

    def write(self, site: str, data: Mapping[str, Any]) -> bool:
        """Merge *data* over the existing snapshot, stamp ``lastCrawledAt`` and persist it."""
        merged: Dict[str, Any] = dict(self.read(site) or {})
        merged.update(data)
        merged["lastCrawledAt"] = self._clock()
        return self._persist(site, merged)

    def mark_installed(self, site: str) -> bool:
        """Record ``installedAt`` once; later calls keep the original stamp."""
        current: Dict[str, Any] = dict(self.read(site) or {})
        if "installedAt" in current:
            return True
        current["installedAt"] = self._clock()
        return self._persist(site, current)

    def list_keys(self) -> List[str]:
        if not self.data_dir.is_dir():
            return []
        try:
            return sorted(p.name[: -len(self.SUFFIX)] for p in self.data_dir.glob(f"*{self.SUFFIX}"))
        except OSError as exc:
            logger.warning("Cannot list snapshots in %s: %s", self.data_dir, exc)
            return []

    def read_all(self) -> Dict[str, Optional[Snapshot]]:
        return {key: self.read(key) for key in self.list_keys()}

    def _persist(self, site: str, snapshot: Dict[str, Any]) -> bool:
        path = self.path_for(site)
        tmp_name: Optional[str] = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp-", suffix=self.SUFFIX + ".part")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Snapshot write error for %s: %s", path.name, exc)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False
        logger.info("Snapshot saved: %s", path.name)
        return True
