# File: site_indexer/index/indexer.py
"""site_indexer.index.indexer: Построение инвертированного индекса по страницам обхода."""

from __future__ import annotations

import re
from collections import Counter
from typing import Dict, Iterable, List, TypedDict

from site_indexer.crawler.models import PageRecord, PageResult

__all__ = ["Posting", "InvertedIndex", "tokenize", "normalize_term", "build_index", "MIN_TOKEN_LENGTH"]

#: tokens of this length or shorter are dropped
MIN_TOKEN_LENGTH = 2

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class Posting(TypedDict):
    """Сколько раз термин встретился на странице."""

    url: str
    count: int


InvertedIndex = Dict[str, List[Posting]]


def tokenize(text: str) -> List[str]:
    """Нижний регистр, всё не буквенно-цифровое в пробел, токены длиннее двух символов."""
    return [t for t in _NON_ALNUM.sub(" ", (text or "").lower()).split() if len(t) > MIN_TOKEN_LENGTH]


def normalize_term(term: str) -> str:
    """Приводит поисковый термин к виду ключа индекса."""
    return (term or "").strip().lower()


def build_index(pages: Iterable[PageResult]) -> InvertedIndex:
    """Строит индекс ``term -> [{url, count}, ...]``, отсортированный по count по убыванию.

    Страницы с ошибкой пропускаются. Сортировка устойчивая: при равном count
    порядок совпадает с порядком страниц на входе.
    """
    index: InvertedIndex = {}
    for page in pages:
        if not isinstance(page, PageRecord):
            continue
        counts = Counter(tokenize(f"{page.title} {page.heading} {page.text}"))
        for token, count in counts.items():
            index.setdefault(token, []).append({"url": page.url, "count": count})
    for token, postings in index.items():
        index[token] = sorted(postings, key=lambda p: p["count"], reverse=True)
    return index
