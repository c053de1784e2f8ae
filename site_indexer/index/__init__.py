"""site_indexer.index: инвертированный индекс и поиск."""

from site_indexer.index.indexer import InvertedIndex, Posting, build_index, tokenize
from site_indexer.index.query import QueryService

__all__ = ["InvertedIndex", "Posting", "build_index", "tokenize", "QueryService"]
