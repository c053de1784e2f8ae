# File: tests/test_crawler.py
# Test-suite for the SiteIndexer async crawler, run against in-process aiohttp servers
from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from conftest import html_page, html_response, make_app, serve_app

from site_indexer.config import CrawlOptions
from site_indexer.crawler.crawler import AsyncCrawler, crawl
from site_indexer.crawler.extractor import ExtractOptions, PageExtractor
from site_indexer.crawler.models import PageFailure, PageRecord
from site_indexer.index.indexer import build_index
from site_indexer.utils import InvalidStartURL

#: number of seconds a “slow” handler sleeps in the concurrency test
SLOW_SLEEP: float = 0.5


async def run_crawler(url: str, options: CrawlOptions):
    """Run the crawler inside a generous overall timeout."""
    return await asyncio.wait_for(crawl(url, options), timeout=20.0)


def _chain_app() -> web.Application:
    async def root(_):
        return html_response(html_page("Home", '<h1>Welcome</h1><a href="/page1">Page1</a>'))

    async def page1(_):
        return html_response(html_page("One", '<p>first page</p><a href="/page2">Page2</a>'))

    async def page2(_):
        return html_response(html_page("Two", '<p>second page</p><a href="/page3">Page3</a>'))

    async def page3(_):
        return html_response(html_page("Three", "<p>third page</p>"))

    async def robots(_):
        return web.Response(text="User-agent: *\nDisallow:", content_type="text/plain")

    return make_app({"/": root, "/page1": page1, "/page2": page2, "/page3": page3, "/robots.txt": robots})


@pytest_asyncio.fixture
async def chain_server(unused_tcp_port: int) -> AsyncIterator[str]:
    async for url in serve_app(_chain_app(), unused_tcp_port):
        yield url


@pytest.mark.asyncio()
async def test_basic_crawl_respects_depth(chain_server: str, fast_options: CrawlOptions):
    result = await run_crawler(chain_server, fast_options.model_copy(update={"max_depth": 2}))
    urls = [p.url for p in result.pages]

    assert urls == [f"{chain_server}/", f"{chain_server}/page1", f"{chain_server}/page2"]
    assert all(isinstance(p, PageRecord) for p in result.pages)
    home = result.pages[0]
    assert home.title == "Home"
    assert home.heading == "Welcome"
    assert "Welcome Page1" in home.text


@pytest.mark.asyncio()
async def test_depth_zero_fetches_only_start(chain_server: str, fast_options: CrawlOptions):
    result = await run_crawler(chain_server, fast_options.model_copy(update={"max_depth": 0}))
    assert [p.url for p in result.pages] == [f"{chain_server}/"]


@pytest.mark.asyncio()
async def test_aggregated_text_in_discovery_order(chain_server: str, fast_options: CrawlOptions):
    result = await run_crawler(chain_server, fast_options)
    agg = result.aggregated
    assert agg.index(f"# {chain_server}/\n") < agg.index(f"# {chain_server}/page1\n")
    assert agg.index(f"# {chain_server}/page1\n") < agg.index(f"# {chain_server}/page3\n")
    assert "third page" in agg


@pytest.mark.asyncio()
async def test_aggregate_limit_never_exceeded(chain_server: str, fast_options: CrawlOptions):
    result = await run_crawler(chain_server, fast_options.model_copy(update={"aggregate_max_length": 60}))
    assert len(result.pages) == 4
    assert 0 < len(result.aggregated) <= 60


@pytest.mark.asyncio()
async def test_respect_robots(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(_):
        return html_response(html_page("Root", '<a href="/page1">Page1</a><a href="/page2">Page2</a>'))

    async def page(_):
        return html_response(html_page("Page", "<p>content</p>"))

    async def robots(_):
        return web.Response(text="User-agent: TestAgent\nDisallow: /page1", content_type="text/plain")

    app = make_app({"/": root, "/page1": page, "/page2": page, "/robots.txt": robots})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)
        ignored = await run_crawler(base, fast_options.model_copy(update={"respect_robots": False}))

    assert [p.url for p in result.pages] == [f"{base}/", f"{base}/page2"]
    assert f"{base}/page1" in {p.url for p in ignored.pages}


@pytest.mark.asyncio()
async def test_missing_robots_allows_everything(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(_):
        return html_response(html_page("Root", '<a href="/private">Private</a>'))

    async def private(_):
        return html_response(html_page("Private", "<p>still crawled</p>"))

    app = make_app({"/": root, "/private": private})  # /robots.txt -> 404
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    assert [p.url for p in result.pages] == [f"{base}/", f"{base}/private"]


@pytest.mark.asyncio()
async def test_each_url_visited_once(unused_tcp_port: int, fast_options: CrawlOptions):
    calls: dict[str, int] = {}

    def counted(name: str, body: str):
        async def handler(_):
            calls[name] = calls.get(name, 0) + 1
            return html_response(html_page(name, body))
        return handler

    links = '<a href="/a">A</a><a href="/a/">A slash</a><a href="/a#top">A frag</a><a href="/b">B</a>'
    app = make_app({
        "/": counted("root", links),
        "/a": counted("a", '<a href="/">Home</a><a href="/b">B</a>'),
        "/a/": counted("a-slash", "<p>never requested</p>"),
        "/b": counted("b", '<a href="/a">A</a><a href="/">Home</a>'),
    })
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    urls = [p.url for p in result.pages]
    assert len(urls) == len(set(urls)) == 3
    assert calls == {"root": 1, "a": 1, "b": 1}


@pytest.mark.asyncio()
async def test_max_pages_caps_seen_urls(unused_tcp_port: int, fast_options: CrawlOptions):
    links = "".join(f'<a href="/page{i}">Page{i}</a>' for i in range(1, 40))

    async def root(_):
        return html_response(html_page("Root", links))

    async def page(request):
        return html_response(html_page("Page", f'<a href="/deep{request.path}">deeper</a>'))

    app = web.Application()
    app.router.add_get("/", root)
    app.router.add_get("/{name}", page)
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options.model_copy(update={"max_pages": 10}))

    urls = [p.url for p in result.pages]
    assert len(urls) == 10
    assert len(set(urls)) == 10


@pytest.mark.asyncio()
async def test_off_origin_links_discarded(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(request):
        port = request.url.port
        return html_response(html_page(
            "Root",
            f'<a href="http://127.0.0.1:{port}/other">other host</a>'
            '<a href="https://example.org/x">external</a>'
            '<a href="mailto:shop@example.com">mail</a>'
            '<a href="/local">local</a>',
        ))

    async def page(_):
        return html_response(html_page("Page", "<p>text</p>"))

    app = make_app({"/": root, "/other": page, "/local": page})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    assert [p.url for p in result.pages] == [f"{base}/", f"{base}/local"]


@pytest.mark.asyncio()
async def test_crawler_records_page_errors(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(_):
        return html_response(html_page("Root", '<a href="/missing">Broken</a><a href="/ok">Ok</a>'))

    async def ok(_):
        return html_response(html_page("Ok", "<p>fine</p>"))

    app = make_app({"/": root, "/ok": ok})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    by_url = {p.url: p for p in result.pages}
    assert isinstance(by_url[f"{base}/missing"], PageFailure)
    assert "404" in by_url[f"{base}/missing"].reason
    assert isinstance(by_url[f"{base}/ok"], PageRecord)
    assert len(result.records) == 2
    assert f"# {base}/missing" not in result.aggregated


@pytest.mark.asyncio()
async def test_concurrency(unused_tcp_port: int, fast_options: CrawlOptions):
    """Two slow pages are fetched concurrently."""

    async def slow(_):
        await asyncio.sleep(SLOW_SLEEP)
        return html_response(html_page("Slow", "<h1>Slow</h1>"))

    async def root(_):
        return html_response(html_page("Root", '<a href="/slow1">S1</a><a href="/slow2">S2</a>'))

    app = make_app({"/": root, "/slow1": slow, "/slow2": slow})
    async for base in serve_app(app, unused_tcp_port):
        start = time.perf_counter()
        result = await run_crawler(base, fast_options)
        elapsed = time.perf_counter() - start

    assert elapsed < SLOW_SLEEP * 1.8
    assert {p.url for p in result.pages} == {f"{base}/", f"{base}/slow1", f"{base}/slow2"}


@pytest.mark.asyncio()
async def test_result_order_follows_dispatch_not_completion(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(_):
        return html_response(html_page("Root", '<a href="/a">A</a><a href="/b">B</a><a href="/c">C</a>'))

    async def slow_a(_):
        await asyncio.sleep(0.3)
        return html_response(html_page("A", "<p>a</p>"))

    async def fast(_):
        return html_response(html_page("Fast", "<p>fast</p>"))

    app = make_app({"/": root, "/a": slow_a, "/b": fast, "/c": fast})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    assert [p.url for p in result.pages] == [f"{base}/", f"{base}/a", f"{base}/b", f"{base}/c"]


@pytest.mark.asyncio()
async def test_crawl_delay_paces_dispatch(unused_tcp_port: int, fast_options: CrawlOptions):
    async def root(_):
        return html_response(html_page("Root", '<a href="/p1">1</a><a href="/p2">2</a>'))

    async def page(_):
        return html_response(html_page("P", "<p>p</p>"))

    async def robots(_):
        return web.Response(text="User-agent: *\nCrawl-delay: 0.3", content_type="text/plain")

    app = make_app({"/": root, "/p1": page, "/p2": page, "/robots.txt": robots})
    async for base in serve_app(app, unused_tcp_port):
        start = time.perf_counter()
        result = await run_crawler(base, fast_options.model_copy(update={"concurrency": 1}))
        elapsed = time.perf_counter() - start

    assert len(result.pages) == 3
    assert elapsed >= 0.55


@pytest.mark.asyncio()
async def test_crawl_delay_applies_to_discovered_links_with_idle_workers(
    unused_tcp_port: int, fast_options: CrawlOptions
):
    hits: dict[str, float] = {}

    async def root(request: web.Request):
        hits[request.path] = time.perf_counter()
        return html_response(html_page("Root", '<a href="/p1">1</a>'))

    async def page(request: web.Request):
        hits[request.path] = time.perf_counter()
        return html_response(html_page("P", "<p>p</p>"))

    async def robots(_):
        return web.Response(text="User-agent: *\nCrawl-delay: 0.5", content_type="text/plain")

    app = make_app({"/": root, "/p1": page, "/robots.txt": robots})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options.model_copy(update={"concurrency": 5}))

    assert len(result.records) == 2
    assert hits["/p1"] - hits["/"] >= 0.45


@pytest.mark.asyncio()
async def test_redirect_off_origin_is_a_failure(unused_tcp_port: int, fast_options: CrawlOptions):
    foreign_hits: list[str] = []

    async def root(_):
        return html_response(html_page("Root", '<a href="/go">Go</a><a href="/moved">Moved</a>'))

    async def go(_):
        raise web.HTTPFound(f"http://127.0.0.1:{unused_tcp_port}/foreign")

    async def moved(_):
        raise web.HTTPMovedPermanently("/landing")

    async def landing(_):
        return html_response(html_page("Landing", "<p>landing page for moved content</p>"))

    async def foreign(request: web.Request):
        foreign_hits.append(request.path)
        return html_response(html_page("Foreign", "<p>content served by another origin</p>"))

    app = make_app({"/": root, "/go": go, "/moved": moved, "/landing": landing, "/foreign": foreign})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    by_url = {p.url: p for p in result.pages}
    assert isinstance(by_url[f"{base}/go"], PageFailure)
    assert "off origin" in by_url[f"{base}/go"].reason
    assert isinstance(by_url[f"{base}/moved"], PageRecord)
    assert "landing page" in by_url[f"{base}/moved"].text
    assert "another origin" not in result.aggregated
    assert foreign_hits == []


@pytest.mark.asyncio()
async def test_unexpected_error_keeps_dispatch_position(
    unused_tcp_port: int, fast_options: CrawlOptions, monkeypatch: pytest.MonkeyPatch
):
    original = PageExtractor.extract_with_links

    async def flaky(self, url: str, options: ExtractOptions = ExtractOptions()):
        if url.endswith("/b"):
            raise RuntimeError("extractor blew up")
        return await original(self, url, options)

    monkeypatch.setattr(PageExtractor, "extract_with_links", flaky)

    async def root(_):
        return html_response(html_page("Root", '<a href="/a">A</a><a href="/b">B</a><a href="/c">C</a>'))

    async def slow_a(_):
        await asyncio.sleep(0.3)
        return html_response(html_page("A", "<p>a</p>"))

    async def fast(_):
        return html_response(html_page("Fast", "<p>fast</p>"))

    app = make_app({"/": root, "/a": slow_a, "/b": fast, "/c": fast})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    assert [p.url for p in result.pages] == [f"{base}/", f"{base}/a", f"{base}/b", f"{base}/c"]
    assert isinstance(result.pages[2], PageFailure)
    assert result.pages[2].reason == "extractor blew up"
    assert len(result.records) == 3


@pytest.mark.asyncio()
async def test_single_page_site(unused_tcp_port: int, fast_options: CrawlOptions):
    body = "<h1>Candles</h1><p>Soy candles and wax candles. Every candle is hand poured.</p>"

    async def root(_):
        return html_response(html_page("Candle Shop", body))

    app = make_app({"/": root})
    async for base in serve_app(app, unused_tcp_port):
        result = await run_crawler(base, fast_options)

    assert len(result.pages) == 1
    assert "Candle Shop" in result.aggregated
    assert "hand poured" in result.aggregated
    index = build_index(result.pages)
    # heading is counted on top of the body text it also appears in
    assert index["candles"] == [{"url": f"{base}/", "count": 4}]
    assert index["candle"] == [{"url": f"{base}/", "count": 2}]


@pytest.mark.asyncio()
async def test_crawler_reusable_state_is_per_call(chain_server: str, fast_options: CrawlOptions):
    async with AsyncCrawler(chain_server, fast_options) as crawler:
        first = await crawler.crawl()
        second = await crawler.crawl()
    assert [p.url for p in first.pages] == [p.url for p in second.pages]


@pytest.mark.parametrize("bad", ["", "not a url", "ftp://example.com/", "http://", "/relative/path"])
def test_invalid_start_url_rejected(bad: str):
    with pytest.raises(InvalidStartURL):
        AsyncCrawler(bad)
