# File: site_indexer/index/query.py
"""site_indexer.index.query: Поиск по сохранённому индексу и простой ответ по ключевым словам."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, List, Optional

from site_indexer.index.indexer import MIN_TOKEN_LENGTH, Posting, normalize_term
from site_indexer.logger import get_logger

if TYPE_CHECKING:
    from site_indexer.storage.snapshot_store import SnapshotStore

__all__ = ["QueryService", "DEFAULT_LIMIT"]

DEFAULT_LIMIT = 20

logger = get_logger("query")

_SENTENCE_SPLIT = re.compile(r"[.\n]+")
_WORD_SPLIT = re.compile(r"\W+")


class QueryService:
    """Только чтение: никогда не бросает исключений из-за отсутствия снимка или термина."""

    def __init__(self, store: SnapshotStore, limit: int = DEFAULT_LIMIT) -> None:
        self.store = store
        self.limit = limit

    def search(self, site: str, term: str) -> List[Posting]:
        """Постинги термина, не более ``limit``; пустой список, если искать негде."""
        key = normalize_term(term)
        if not key:
            return []
        snapshot = self.store.read(site)
        if not snapshot:
            logger.debug("search: no snapshot for %s", site)
            return []
        index = snapshot.get("index") or {}
        postings = index.get(key, []) if isinstance(index, dict) else []
        return list(postings[: self.limit])

    def best_sentence(self, site: str, question: str) -> Optional[str]:
        """Предложение агрегированного текста с наибольшим числом слов вопроса."""
        snapshot = self.store.read(site)
        context = (snapshot or {}).get("aggregated") or ""
        words = [w for w in _WORD_SPLIT.split(question.lower()) if len(w) > MIN_TOKEN_LENGTH]
        if not context or not words:
            return None
        best, best_score = None, 0
        for sentence in (s.strip() for s in _SENTENCE_SPLIT.split(context)):
            if not sentence:
                continue
            lowered = sentence.lower()
            score = sum(1 for w in words if w in lowered)
            if score > best_score:
                best, best_score = sentence, score
        return best
