# File: site_indexer/utils.py
"""site_indexer.utils: Утилиты для нормализации URL, проверки origin и вычисления ключа сайта."""

from __future__ import annotations

import re
from typing import Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from site_indexer.logger import get_logger

__all__: Sequence[str] = (
    "InvalidStartURL",
    "normalize_url",
    "origin_of",
    "is_same_origin",
    "validate_start_url",
    "site_key",
)

logger = get_logger("utils")

_DEFAULT_PORTS = {"http": 80, "https": 443}
_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9.-]", re.IGNORECASE)
_SKIPPED_SCHEMES = ("mailto:", "javascript:", "tel:", "data:", "#")


class InvalidStartURL(ValueError):
    """Стартовый URL не является абсолютным http(s)-адресом с хостом."""


def _netloc(scheme: str, host: str, port: Optional[int]) -> str:
    if port is None or _DEFAULT_PORTS.get(scheme) == port:
        return host
    return f"{host}:{port}"


def normalize_url(url: str) -> Optional[str]:
    """Канонизирует URL: убирает фрагмент и завершающий слеш (кроме корня).

    Возвращает ``None`` для ссылок, которые нельзя обойти (mailto:, javascript:,
    голые якоря, не-http схемы, мусор).
    """
    raw = url.strip()
    if not raw or raw.lower().startswith(_SKIPPED_SCHEMES):
        return None
    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError:
        logger.debug("Unparseable URL skipped: %r", url)
        return None
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        return None
    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"
    netloc = _netloc(scheme, parts.hostname.lower(), port)
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def origin_of(url: str) -> str:
    """Возвращает origin (``scheme://host[:port]``) абсолютного URL."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    return f"{scheme}://{_netloc(scheme, (parts.hostname or '').lower(), parts.port)}"


def is_same_origin(url: str, origin: str) -> bool:
    """Проверяет, что URL принадлежит указанному origin."""
    try:
        return origin_of(url) == origin
    except ValueError:
        return False


def validate_start_url(url: str) -> str:
    """Проверяет стартовый URL и возвращает его каноническую форму.

    Raises
    ------
    InvalidStartURL
        Если URL не абсолютный, не http(s) или без хоста.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidStartURL("start URL must be a non-empty string")
    try:
        parts = urlsplit(url.strip())
        parts.port  # raises ValueError on a bad port
    except ValueError as exc:
        raise InvalidStartURL(f"malformed start URL {url!r}: {exc}") from exc
    if parts.scheme.lower() not in _DEFAULT_PORTS:
        raise InvalidStartURL(f"start URL must use http or https: {url!r}")
    if not parts.hostname:
        raise InvalidStartURL(f"start URL has no host: {url!r}")
    canonical = normalize_url(url)
    if canonical is None:
        raise InvalidStartURL(f"start URL cannot be crawled: {url!r}")
    return canonical


def site_key(site: str) -> str:
    """Ключ сайта: хост из полного URL либо сам домен, с заменой небезопасных символов на ``_``."""
    value = site.strip()
    try:
        parts = urlsplit(value)
        if parts.scheme and parts.hostname:
            value = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
    except ValueError:
        pass
    return _UNSAFE_KEY_CHARS.sub("_", value)
