# site_indexer/crawler/models.py
"""
Data models for the SiteIndexer crawler.

A crawl produces one :data:`PageResult` per dispatched URL: either a
:class:`PageRecord` (the page was fetched and its text extracted) or a
:class:`PageFailure` (fetch/parse failed; the crawl carried on).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Union


@dataclass(frozen=True, slots=True)
class PageRecord:
    """Visible text and metadata of one successfully extracted page."""

    url: str
    title: str = ""
    heading: str = ""
    description: str = ""
    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PageFailure:
    """A page that could not be fetched or parsed."""

    url: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "error": self.reason}


PageResult = Union[PageRecord, PageFailure]


def aggregate_text(records: Iterable[PageRecord], limit: int) -> str:
    """Concatenate pages in order into one blob of at most *limit* characters.

    Each page contributes a ``# <url>`` header, its title and heading (when
    present) and its text. The page that crosses the limit is cut at the
    boundary and nothing after it is added.
    """
    out: List[str] = []
    total = 0
    for rec in records:
        chunk = f"\n\n# {rec.url}\n"
        if rec.title:
            chunk += rec.title + "\n"
        if rec.heading:
            chunk += rec.heading + "\n"
        chunk += rec.text + "\n"
        if total + len(chunk) > limit:
            out.append(chunk[: limit - total])
            break
        out.append(chunk)
        total += len(chunk)
    return "".join(out)


@dataclass(slots=True)
class CrawlResult:
    """Outcome of one crawl: results in dispatch order plus the aggregated text."""

    pages: List[PageResult] = field(default_factory=list)
    aggregated: str = ""

    @property
    def records(self) -> List[PageRecord]:
        return [p for p in self.pages if isinstance(p, PageRecord)]

    @property
    def failures(self) -> List[PageFailure]:
        return [p for p in self.pages if isinstance(p, PageFailure)]
