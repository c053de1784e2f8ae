# === FILE: site_indexer/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from aiohttp import ClientSession, ClientTimeout, TCPConnector

from site_indexer.config import CrawlOptions
from site_indexer.crawler.extractor import ExtractOptions, PageExtractor
from site_indexer.crawler.models import CrawlResult, PageFailure, PageRecord, PageResult, aggregate_text
from site_indexer.crawler.render import Renderer
from site_indexer.crawler.robots import PolitenessRules, load_rules
from site_indexer.logger import get_logger
from site_indexer.utils import is_same_origin, origin_of, validate_start_url

__all__ = ("AsyncCrawler", "crawl")


class _BatchPacer:
    """Groups dispatches into rounds of at most ``batch_size``, opened ``interval`` seconds apart.

    A round closes when it is full or as soon as a page dispatched in it is
    done, so links discovered by that page wait for the next round.
    """

    def __init__(self, batch_size: int, interval: float) -> None:
        self.batch_size = batch_size
        self.interval = interval
        self._lock = asyncio.Lock()
        self._round_start = 0.0
        self._in_round = 0
        self._closed = True

    async def wait(self) -> None:
        async with self._lock:
            if self._closed or self._in_round >= self.batch_size:
                if self._in_round:
                    delay = self.interval - (time.monotonic() - self._round_start)
                    if delay > 0:
                        await asyncio.sleep(delay)
                self._round_start = time.monotonic()
                self._in_round = 0
                self._closed = False
            self._in_round += 1

    def close_round(self) -> None:
        self._closed = True


@dataclass
class _CrawlState:
    """Frontier bookkeeping for a single crawl call."""

    queue: "asyncio.Queue[Tuple[str, int]]"
    seen: Set[str] = field(default_factory=set)
    queued: Set[str] = field(default_factory=set)
    slots: List[Optional[PageResult]] = field(default_factory=list)
    disallowed: List[str] = field(default_factory=list)


class AsyncCrawler:
    """Breadth-first same-origin crawler with robots.txt, pacing and a fixed worker pool."""

    def __init__(
        self,
        start_url: str,
        options: Optional[CrawlOptions] = None,
        *,
        renderer: Optional[Renderer] = None,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.start_url = validate_start_url(start_url)
        self.origin = origin_of(self.start_url)
        self.options = options or CrawlOptions()
        self.renderer = renderer
        self.session = session
        self._own_session = session is None
        self.logger = get_logger("crawler")

    async def __aenter__(self) -> AsyncCrawler:
        if self.session is None:
            self.session = ClientSession(
                connector=TCPConnector(limit=self.options.concurrency),
                timeout=ClientTimeout(total=self.options.fetch_timeout),
                headers={"User-Agent": self.options.user_agent},
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._own_session and self.session and not self.session.closed:
            await self.session.close()
            self.session = None

    async def crawl(self) -> CrawlResult:
        if not self.session:
            raise RuntimeError("Session not initialized")
        opts = self.options
        self.logger.info("Crawl started: %s (max_pages=%d, max_depth=%d)", self.start_url, opts.max_pages, opts.max_depth)
        start = time.monotonic()

        if opts.respect_robots:
            rules = await load_rules(
                self.origin, opts.user_agent, session=self.session, timeout=opts.robots_timeout
            )
        else:
            rules = PolitenessRules.permissive(opts.user_agent)
        interval = max(opts.min_dispatch_interval, rules.crawl_delay)
        pacer = _BatchPacer(opts.concurrency, interval)
        extractor = PageExtractor(self.session, self.renderer)

        state = _CrawlState(queue=asyncio.Queue())
        state.queued.add(self.start_url)
        await state.queue.put((self.start_url, 0))

        workers = [
            asyncio.create_task(self._worker(state, rules, pacer, extractor))
            for _ in range(opts.concurrency)
        ]
        await state.queue.join()
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        pages = [p for p in state.slots if p is not None]
        records = [p for p in pages if isinstance(p, PageRecord)]
        result = CrawlResult(pages=pages, aggregated=aggregate_text(records, opts.aggregate_max_length))

        duration = time.monotonic() - start
        self.logger.info(
            "Crawl finished: %d pages (%d failed) in %.2f s, %d aggregated chars",
            len(pages), len(pages) - len(records), duration, len(result.aggregated),
        )
        if state.disallowed:
            self.logger.info("Blocked by robots.txt: %d", len(state.disallowed))
        return result

    async def _worker(
        self,
        state: _CrawlState,
        rules: PolitenessRules,
        pacer: _BatchPacer,
        extractor: PageExtractor,
    ) -> None:
        while True:
            try:
                url, depth = await state.queue.get()
            except asyncio.CancelledError:
                break
            slot: Optional[int] = None
            try:
                await pacer.wait()
                slot = self._reserve(url, state)
                if slot is not None:
                    await self._visit(url, depth, slot, state, rules, extractor)
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("Unexpected error while crawling %s", url)
                if slot is not None:
                    state.slots[slot] = PageFailure(url=url, reason=str(exc) or type(exc).__name__)
            finally:
                if slot is not None:
                    pacer.close_round()
                state.queue.task_done()

    def _reserve(self, url: str, state: _CrawlState) -> Optional[int]:
        """Mark *url* seen and reserve its result slot in dispatch order, or return ``None``."""
        state.queued.discard(url)
        if url in state.seen or len(state.seen) >= self.options.max_pages:
            return None
        state.seen.add(url)
        state.slots.append(None)
        return len(state.slots) - 1

    async def _visit(
        self,
        url: str,
        depth: int,
        slot: int,
        state: _CrawlState,
        rules: PolitenessRules,
        extractor: PageExtractor,
    ) -> None:
        opts = self.options
        if not is_same_origin(url, self.origin):
            return
        if not rules.allowed(url):
            self.logger.debug("Disallowed by robots.txt: %s", url)
            state.disallowed.append(url)
            return

        options = ExtractOptions(
            max_text_length=opts.per_page_max_length,
            user_agent=opts.user_agent,
            allow_render_fallback=opts.fallback_render,
            render_timeout=opts.render_timeout,
            fetch_timeout=opts.fetch_timeout,
            origin=self.origin,
        )
        page, links = await extractor.extract_with_links(url, options)
        state.slots[slot] = page

        if isinstance(page, PageFailure) or depth >= opts.max_depth:
            return
        added = 0
        for link in links:
            if link in state.seen or link in state.queued or not is_same_origin(link, self.origin):
                continue
            if len(state.seen) + len(state.queued) >= opts.max_pages:
                break
            state.queued.add(link)
            state.queue.put_nowait((link, depth + 1))
            added += 1
        self.logger.debug("%s (depth %d): %d new links queued", url, depth, added)


async def crawl(
    start_url: str,
    options: Optional[CrawlOptions] = None,
    *,
    renderer: Optional[Renderer] = None,
) -> CrawlResult:
    """Crawl *start_url* with a private session; raises ``InvalidStartURL`` before any I/O."""
    async with AsyncCrawler(start_url, options, renderer=renderer) as crawler:
        return await crawler.crawl()
