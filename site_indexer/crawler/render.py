# site_indexer/crawler/render.py
"""
Optional headless-browser rendering for pages whose static HTML carries no text.

Rendering is a capability: :func:`detect_renderer` checks once whether
Playwright is installed and returns a :class:`PlaywrightRenderer` or ``None``.
The extractor receives the result as an injected dependency and simply skips
the fallback when it is ``None``.
"""
from __future__ import annotations

import importlib.util
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

from site_indexer.logger import get_logger

__all__ = ("RenderedPage", "Renderer", "PlaywrightRenderer", "detect_renderer", "STRIP_TAGS")

logger = get_logger("render")

#: elements removed before text collection, both statically and in the browser
STRIP_TAGS = ("script", "style", "noscript", "iframe", "svg", "meta", "link")

_STRIP_JS = """(tags) => {
    for (const tag of tags) {
        document.querySelectorAll(tag).forEach((n) => n.remove());
    }
}"""


@dataclass(frozen=True, slots=True)
class RenderedPage:
    text: str
    title: str = ""
    heading: str = ""


class Renderer(Protocol):
    async def render(self, url: str, *, user_agent: str, timeout_ms: int) -> RenderedPage: ...


class PlaywrightRenderer:
    """Renders one URL in headless Chromium and reads ``document.body.innerText``."""

    def __init__(self, launch_args: tuple[str, ...] = ("--no-sandbox", "--disable-setuid-sandbox")) -> None:
        self.launch_args = list(launch_args)

    async def render(self, url: str, *, user_agent: str, timeout_ms: int) -> RenderedPage:
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True, args=self.launch_args)
            try:
                context = await browser.new_context(user_agent=user_agent)
                page = await context.new_page()
                await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                await page.evaluate(_STRIP_JS, list(STRIP_TAGS))
                text = await page.evaluate("() => document.body ? document.body.innerText : ''")
                title = await page.title()
                heading = ""
                h1 = await page.query_selector("h1")
                if h1 is not None:
                    heading = (await h1.inner_text()).strip()
            finally:
                await browser.close()
        logger.debug("Rendered %s: %d chars", url, len(text or ""))
        return RenderedPage(text=text or "", title=(title or "").strip(), heading=heading)


@lru_cache(maxsize=1)
def detect_renderer() -> Optional[Renderer]:
    """Return a Playwright renderer when the package is importable, else ``None``."""
    if importlib.util.find_spec("playwright") is None:
        logger.debug("Playwright not installed; render fallback disabled")
        return None
    return PlaywrightRenderer()
