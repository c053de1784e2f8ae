# site_indexer/crawler/link_extractor.py
"""
Link extraction for SiteIndexer: same-origin HTTP(S) hyperlinks of a parsed page.
"""
from __future__ import annotations

from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from site_indexer.utils import is_same_origin, normalize_url


def extract_links(soup: BeautifulSoup, page_url: str, origin: str) -> List[str]:
    """
    Return canonical same-origin links from ``<a href>`` tags, deduplicated
    and in document order.

    Ignores mailto:, javascript:, bare anchors and other origins.
    """
    seen: set[str] = set()
    links: List[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href_val = tag.get("href")
        if not isinstance(href_val, str):
            continue
        raw = href_val.strip()
        if not raw or raw.startswith("#"):
            continue
        canonical = normalize_url(urljoin(page_url, raw))
        if canonical is None or not is_same_origin(canonical, origin):
            continue
        if canonical not in seen:
            seen.add(canonical)
            links.append(canonical)
    return links
