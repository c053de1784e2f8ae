# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest
from aiohttp import web

from site_indexer.config import CrawlOptions
from site_indexer.storage.snapshot_store import SnapshotStore


def html_page(title: str = "", body: str = "", head: str = "") -> str:
    """Small HTML document for test handlers."""
    return f"<html><head><title>{title}</title>{head}</head><body>{body}</body></html>"


def html_response(text: str) -> web.Response:
    return web.Response(text=text, content_type="text/html")


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def make_app(routes: dict[str, Handler]) -> web.Application:
    app = web.Application()
    for path, handler in routes.items():
        app.router.add_get(path, handler)
    return app


@pytest.fixture()
def fast_options() -> CrawlOptions:
    """Crawl options tuned for local test servers: no render, short timeouts."""
    return CrawlOptions(
        max_pages=50,
        max_depth=3,
        concurrency=4,
        user_agent="TestAgent/1.0",
        fallback_render=False,
        fetch_timeout=2.0,
        robots_timeout=1.0,
        min_dispatch_interval=0.0,
    )


@pytest.fixture()
def store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "data")
