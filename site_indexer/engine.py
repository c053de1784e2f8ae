# File: site_indexer/engine.py
"""site_indexer.engine: Оркестрация: обход сайта, построение индекса, сохранение снимка и повторный обход."""

from __future__ import annotations

from typing import List, Optional, Tuple

from site_indexer.config import CrawlOptions, Settings
from site_indexer.crawler.crawler import crawl
from site_indexer.crawler.models import CrawlResult
from site_indexer.crawler.render import detect_renderer
from site_indexer.index.indexer import Posting, build_index
from site_indexer.index.query import QueryService
from site_indexer.logger import logger
from site_indexer.storage.snapshot_store import Snapshot, SnapshotStore, now_ms, serialize_pages
from site_indexer.utils import site_key, validate_start_url

__all__ = ["Engine", "run_crawl"]

_AUTO = object()


async def run_crawl(
    start_url: str,
    options: Optional[CrawlOptions] = None,
    renderer: object = _AUTO,
) -> CrawlResult:
    """Запускает обход; рендерер по умолчанию определяется автоматически, если он разрешён."""
    options = options or CrawlOptions()
    if renderer is _AUTO:
        renderer = detect_renderer() if options.fallback_render else None
    return await crawl(start_url, options, renderer=renderer)  # type: ignore[arg-type]


class Engine:
    """Фасад для CLI и внешних слоёв: обход, индекс, снимки и поиск."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SnapshotStore] = None,
        renderer: object = _AUTO,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or SnapshotStore(self.settings.data_dir)
        self.query = QueryService(self.store, limit=self.settings.search_limit)
        self._renderer = renderer

    async def index_site(
        self, start_url: str, options: Optional[CrawlOptions] = None
    ) -> Tuple[CrawlResult, bool]:
        """Обходит сайт, строит индекс и сохраняет снимок. Возвращает результат и флаг записи."""
        start = validate_start_url(start_url)
        result = await run_crawl(start, options or self.settings.crawl, self._renderer)
        key = site_key(start)
        data: Snapshot = {
            "pages": serialize_pages(result.pages),
            "aggregated": result.aggregated,
            "index": build_index(result.pages),
        }
        persisted = self.store.write(key, {**data, "startUrl": start})
        if not persisted:
            logger.warning("Crawl of %s finished but its snapshot was not saved", key)
        return result, persisted

    async def refresh_stale(self, now: Optional[int] = None) -> List[str]:
        """Повторно обходит сайты, снимок которых старше ``stale_after``. Возвращает обновлённые ключи."""
        now = now_ms() if now is None else now
        threshold = self.settings.stale_after * 1000
        refreshed: List[str] = []
        for key in self.store.list_keys():
            snapshot = self.store.read(key)
            if snapshot is None:
                continue
            stamp = snapshot.get("lastCrawledAt") or snapshot.get("installedAt")
            if stamp is not None and now - stamp <= threshold:
                continue
            start_url = snapshot.get("startUrl") or f"https://{key}/"
            logger.info("Snapshot for %s is stale, re-crawling %s", key, start_url)
            try:
                _, persisted = await self.index_site(start_url)
            except Exception as exc:  # noqa: BLE001
                logger.error("Re-crawl of %s failed: %s", key, exc)
                continue
            if persisted:
                refreshed.append(key)
        return refreshed

    def get_snapshot(self, site: str) -> Optional[Snapshot]:
        return self.store.read(site)

    def put_snapshot(self, site: str, data: Snapshot) -> bool:
        return self.store.write(site, data)

    def list_site_keys(self) -> List[str]:
        return self.store.list_keys()

    def search(self, site: str, term: str) -> List[Posting]:
        return self.query.search(site, term)

    def ask(self, site: str, question: str) -> Optional[str]:
        return self.query.best_sentence(site, question)
