"""site_indexer.crawler: обход сайта, извлечение текста и правила robots.txt."""

from site_indexer.crawler.crawler import AsyncCrawler, crawl
from site_indexer.crawler.models import CrawlResult, PageFailure, PageRecord, PageResult

__all__ = ["AsyncCrawler", "crawl", "CrawlResult", "PageFailure", "PageRecord", "PageResult"]
