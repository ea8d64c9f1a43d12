"""
robots.txt policy helper for scraper compliance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import requests

from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobotsDecision:
    allowed: bool
    checked: bool = True
    uncertain: bool = False
    crawl_delay: float | None = None


@dataclass
class _CachedRules:
    parser: RobotFileParser
    uncertain: bool
    fetched_at: float


class RobotsPolicyManager:
    """
    Caches robots.txt rules per origin and answers access checks.

    Fetches go through `requests` on a worker thread so the event loop keeps
    running while a slow host answers.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        user_agent: str = "EthicalScraper/1.0",
        timeout_seconds: float = 10.0,
        cache_ttl_seconds: float = 3600.0,
        allow_when_unreachable: bool = True,
        clock=time.monotonic,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds
        self._cache_ttl_seconds = cache_ttl_seconds
        self._allow_when_unreachable = allow_when_unreachable
        self._clock = clock
        self._cache: dict[str, _CachedRules] = {}

    @property
    def user_agent(self) -> str:
        return self._user_agent

    async def check(self, url: str) -> RobotsDecision:
        """
        Decide whether `url` may be fetched by the engine user agent.
        """

        rules = await asyncio.to_thread(self._get_rules, url)
        allowed = rules.parser.can_fetch(self._user_agent, url)
        delay = rules.parser.crawl_delay(self._user_agent)
        if delay is None:
            delay = rules.parser.crawl_delay("*")

        decision = RobotsDecision(
            allowed=allowed,
            checked=True,
            uncertain=rules.uncertain,
            crawl_delay=float(delay) if delay is not None else None,
        )
        log_event(
            logger,
            logging.INFO,
            "robots_checked",
            url=url,
            allowed=decision.allowed,
            uncertain=decision.uncertain,
            crawl_delay=decision.crawl_delay,
        )
        return decision

    def clear_cache(self) -> None:
        self._cache.clear()

    def _get_rules(self, url: str) -> _CachedRules:
        origin = self._origin(url)
        cached = self._cache.get(origin)
        now = self._clock()
        if cached is not None and now - cached.fetched_at < self._cache_ttl_seconds:
            return cached

        parser = RobotFileParser()
        robots_url = urljoin(origin, "/robots.txt")
        uncertain = False
        try:
            response = self._session.get(
                robots_url,
                timeout=self._timeout_seconds,
                headers={"User-Agent": self._user_agent},
            )
            if response.ok:
                parser.set_url(robots_url)
                parser.parse(response.text.splitlines())
                log_event(
                    logger,
                    logging.INFO,
                    "robots_loaded",
                    origin=origin,
                    robots_url=robots_url,
                )
            else:
                # No published rules means everything is allowed.
                parser.parse(["User-agent: *", "Allow: /"])
                log_event(
                    logger,
                    logging.INFO,
                    "robots_not_published",
                    origin=origin,
                    robots_url=robots_url,
                    status_code=response.status_code,
                )
        except requests.RequestException as exc:
            uncertain = True
            self._apply_fallback_policy(parser)
            log_event(
                logger,
                logging.WARNING,
                "robots_fetch_failed",
                origin=origin,
                robots_url=robots_url,
                fallback_allow=self._allow_when_unreachable,
                error=str(exc),
            )

        rules = _CachedRules(parser=parser, uncertain=uncertain, fetched_at=now)
        self._cache[origin] = rules
        return rules

    def _apply_fallback_policy(self, parser: RobotFileParser) -> None:
        if self._allow_when_unreachable:
            parser.parse(["User-agent: *", "Allow: /"])
        else:
            parser.parse(["User-agent: *", "Disallow: /"])

    @staticmethod
    def _origin(url: str) -> str:
        parsed = urlparse(url)
        scheme = parsed.scheme or "https"
        return f"{scheme}://{parsed.netloc}"
