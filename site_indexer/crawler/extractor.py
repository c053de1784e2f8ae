# site_indexer/crawler/extractor.py
"""
Page extractor: fetches one URL and turns it into a :class:`PageRecord`.

Static pass: parse with BeautifulSoup, read title / first ``<h1>`` / meta
description, drop non-content elements, then collect the direct text nodes
of every element under ``<body>``. When that yields (almost) nothing and
rendering is allowed, an injected :class:`~site_indexer.crawler.render.Renderer`
gets a chance. Fetch and parse errors become :class:`PageFailure`.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from aiohttp import ClientSession, ClientTimeout, hdrs
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from site_indexer.config import DEFAULT_USER_AGENT
from site_indexer.crawler.link_extractor import extract_links
from site_indexer.crawler.models import PageFailure, PageRecord, PageResult
from site_indexer.crawler.render import STRIP_TAGS, Renderer
from site_indexer.logger import get_logger
from site_indexer.utils import is_same_origin, origin_of

__all__ = ("ExtractOptions", "PageExtractor", "extract_page", "collect_text", "MIN_TEXT_LENGTH")

logger = get_logger("extractor")

#: below this many characters the static text counts as empty
MIN_TEXT_LENGTH = 20

MAX_REDIRECTS = 10
_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

_WS_RE = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


@dataclass(frozen=True)
class ExtractOptions:
    max_text_length: int = 2000
    user_agent: str = DEFAULT_USER_AGENT
    allow_render_fallback: bool = True
    render_timeout: int = 20_000  # ms
    fetch_timeout: float = 15.0
    #: redirects leaving this origin fail the page; defaults to the requested URL's origin
    origin: Optional[str] = None


@dataclass
class _Parsed:
    title: str
    heading: str
    description: str
    text: str
    links: List[str] = field(default_factory=list)


def collect_text(soup: BeautifulSoup) -> str:
    """Join the direct text nodes of ``<body>`` and each element inside it.

    Non-content elements must already be removed. Text is collected once per
    node, so nested markup does not repeat its children's text.
    """
    root = soup.body if soup.body is not None else soup
    elements = [root, *root.find_all(True)]
    pieces: List[str] = []
    for el in elements:
        own = " ".join(
            str(s)
            for s in el.find_all(string=True, recursive=False)
            if isinstance(s, NavigableString) and not isinstance(s, PreformattedString)
        )
        own = _squash(own)
        if own:
            pieces.append(own)
    return _squash(" ".join(pieces))


def _parse(html: str, base_url: str, origin: str) -> _Parsed:
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag is not None else ""
    h1 = soup.find("h1")
    heading = _squash(h1.get_text(" ")) if h1 is not None else ""
    meta = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    description = ""
    if isinstance(meta, Tag):
        content = meta.get("content")
        description = content.strip() if isinstance(content, str) else ""

    links = extract_links(soup, base_url, origin)

    for element in soup(list(STRIP_TAGS)):
        element.decompose()
    return _Parsed(title=title, heading=heading, description=description, text=collect_text(soup), links=links)


class PageExtractor:
    """Fetches pages through a shared aiohttp session; rendering is optional."""

    def __init__(self, session: ClientSession, renderer: Optional[Renderer] = None) -> None:
        self.session = session
        self.renderer = renderer

    async def extract(self, url: str, options: ExtractOptions = ExtractOptions()) -> PageResult:
        result, _ = await self.extract_with_links(url, options)
        return result

    async def extract_with_links(
        self, url: str, options: ExtractOptions = ExtractOptions()
    ) -> Tuple[PageResult, List[str]]:
        """Extract *url* and also return its same-origin links (empty on failure)."""
        try:
            html, final_url = await self._fetch(url, options)
            parsed = _parse(html, final_url, options.origin or origin_of(url))
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or type(exc).__name__
            logger.warning("Failed %s: %s", url, reason)
            return PageFailure(url=url, reason=reason), []

        text = parsed.text[: options.max_text_length]
        title, heading = parsed.title, parsed.heading
        if len(text) < MIN_TEXT_LENGTH and options.allow_render_fallback and self.renderer is not None:
            rendered = await self._render(url, options)
            if rendered is not None:
                text = _squash(rendered.text)[: options.max_text_length]
                title = title or rendered.title
                heading = heading or rendered.heading

        logger.debug("Extracted %s: %d chars, %d links", url, len(text), len(parsed.links))
        record = PageRecord(
            url=url, title=title, heading=heading, description=parsed.description, text=text
        )
        return record, parsed.links

    async def _fetch(self, url: str, options: ExtractOptions) -> Tuple[str, str]:
        """GET *url*, following redirects only while they stay on the crawl origin."""
        headers = {"User-Agent": options.user_agent, "Accept": "text/html,application/xhtml+xml"}
        origin = options.origin or origin_of(url)
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self.session.get(
                current,
                headers=headers,
                timeout=ClientTimeout(total=options.fetch_timeout),
                allow_redirects=False,
            ) as resp:
                if resp.status in _REDIRECT_STATUSES:
                    location = resp.headers.get(hdrs.LOCATION)
                    if not location:
                        raise ValueError(f"redirect {resp.status} without Location header")
                    target = urljoin(current, location)
                    if not is_same_origin(target, origin):
                        raise ValueError(f"redirected off origin to {target}")
                    logger.debug("Redirect %s -> %s", current, target)
                    current = target
                    continue
                resp.raise_for_status()
                body = await resp.text(errors="replace")
                return body, str(resp.url)
        raise ValueError(f"too many redirects (>{MAX_REDIRECTS})")

    async def _render(self, url: str, options: ExtractOptions):
        assert self.renderer is not None
        logger.debug("Attempting render fallback for %s", url)
        # the browser enforces render_timeout on navigation; this bounds the rest
        budget = options.render_timeout / 1000 * 2
        try:
            return await asyncio.wait_for(
                self.renderer.render(url, user_agent=options.user_agent, timeout_ms=options.render_timeout),
                timeout=budget,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Render fallback failed for %s: %s", url, exc)
            return None


async def extract_page(
    url: str, options: ExtractOptions = ExtractOptions(), renderer: Optional[Renderer] = None
) -> PageResult:
    """One-off extraction with a private session."""
    async with ClientSession() as session:
        return await PageExtractor(session, renderer).extract(url, options)
