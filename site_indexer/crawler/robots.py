# site_indexer/crawler/robots.py
"""
Politeness gate: robots.txt parsing, allow/deny checks and crawl-delay.

Rules are loaded once per crawl. Anything that goes wrong while loading
(network error, non-200 status, undecodable body) yields the permissive
fallback: everything allowed, no delay.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_indexer.logger import get_logger

__all__ = ("RobotsTxtRules", "PolitenessRules", "load_rules")

logger = get_logger("robots")


class RobotsTxtRules:
    """
    Parses robots.txt: user-agent groups, Allow/Disallow with ``*``/``$``
    wildcards (longest match wins, Allow wins ties) and Crawl-delay.
    An empty Disallow allows every path.
    """
    _WILDCARD_RE = re.compile(r"(\*|\$)")

    def __init__(self, text: str) -> None:
        self._groups: List[Dict[str, object]] = []
        self._regex_cache: Dict[str, re.Pattern[str]] = {}
        self._parse(text)

    def can_fetch(self, user_agent: str, path: str) -> bool:
        group = self._match_group(user_agent)
        if group is None:
            return True
        best_len = -1
        allow: Optional[bool] = None
        for directive, pattern in group["directives"]:  # type: ignore[index]
            if not self._match_path(path, pattern):
                continue
            length = self._rule_len(pattern)
            if length > best_len or (length == best_len and directive == "allow" and allow is False):
                best_len = length
                allow = (directive == "allow")
        return True if allow is None else allow

    def crawl_delay(self, user_agent: str) -> Optional[float]:
        group = self._match_group(user_agent)
        return None if group is None else group.get("crawl_delay")  # type: ignore[return-value]

    @staticmethod
    def _new_group() -> Dict[str, object]:
        return {"agents": [], "directives": [], "crawl_delay": None}

    def _parse(self, text: str) -> None:
        current: Optional[Dict[str, object]] = None
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            key, _, val = line.partition(":")
            key = key.lower().strip()
            val = val.strip()
            if key == "user-agent":
                if current is None or (current["directives"] or current["crawl_delay"] is not None):
                    current = self._new_group()
                    self._groups.append(current)
                if val:
                    current["agents"].append(val.lower())  # type: ignore[attr-defined]
                continue
            if key not in ("allow", "disallow", "crawl-delay"):
                continue
            if current is None:
                current = self._new_group()
                current["agents"].append("*")  # type: ignore[attr-defined]
                self._groups.append(current)
            if key == "crawl-delay":
                try:
                    current["crawl_delay"] = float(val)
                except ValueError:
                    logger.debug("Ignoring bad Crawl-delay value %r", val)
            elif val:
                current["directives"].append((key, val))  # type: ignore[attr-defined]

    def _match_group(self, user_agent: str) -> Optional[Dict[str, object]]:
        ua = user_agent.lower()
        for group in self._groups:
            if any(a != "*" and ua.startswith(a) for a in group["agents"]):  # type: ignore[attr-defined]
                return group
        for group in self._groups:
            if "*" in group["agents"]:  # type: ignore[operator]
                return group
        return None

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))

    @classmethod
    def _rule_len(cls, pattern: str) -> int:
        return len(cls._WILDCARD_RE.sub("", pattern))


@dataclass(frozen=True)
class PolitenessRules:
    """Allow checker plus crawl-delay for one origin."""

    user_agent: str
    rules: Optional[RobotsTxtRules] = None
    crawl_delay: float = 0.0

    @classmethod
    def permissive(cls, user_agent: str = "*") -> PolitenessRules:
        return cls(user_agent=user_agent)

    def allowed(self, url_or_path: str, user_agent: Optional[str] = None) -> bool:
        """Fail-open check: a broken rule set never blocks the crawl."""
        if self.rules is None:
            return True
        try:
            parts = urlsplit(url_or_path)
            path = parts.path or "/"
            if parts.query:
                path += "?" + parts.query
            return self.rules.can_fetch(user_agent or self.user_agent, path)
        except Exception as exc:  # noqa: BLE001
            logger.debug("robots check failed for %s (%s); allowing", url_or_path, exc)
            return True


async def _fetch_robots(session: ClientSession, robots_url: str, timeout: float) -> Optional[str]:
    async with session.get(robots_url, timeout=ClientTimeout(total=timeout)) as resp:
        if resp.status != 200:
            logger.debug("robots.txt %s -> HTTP %s", robots_url, resp.status)
            return None
        return await resp.text(errors="replace")


async def load_rules(
    origin: str,
    user_agent: str,
    *,
    session: Optional[ClientSession] = None,
    timeout: float = 5.0,
) -> PolitenessRules:
    """Fetch ``<origin>/robots.txt`` and build :class:`PolitenessRules`.

    Never raises: any failure produces :meth:`PolitenessRules.permissive`.
    """
    robots_url = origin.rstrip("/") + "/robots.txt"
    try:
        if session is None:
            async with ClientSession(headers={"User-Agent": user_agent}) as own:
                text = await _fetch_robots(own, robots_url, timeout)
        else:
            text = await _fetch_robots(session, robots_url, timeout)
        if text is None:
            return PolitenessRules.permissive(user_agent)
        rules = RobotsTxtRules(text)
        delay = rules.crawl_delay(user_agent) or 0.0
    except (ClientError, asyncio.TimeoutError, UnicodeError, ValueError) as exc:
        logger.warning("Error loading robots.txt from %s: %s", robots_url, exc)
        return PolitenessRules.permissive(user_agent)
    logger.debug("robots.txt loaded for %s, crawl-delay=%s", origin, delay)
    return PolitenessRules(user_agent=user_agent, rules=rules, crawl_delay=max(0.0, delay))
