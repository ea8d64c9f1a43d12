"""
Wildcard URL matching from request URLs to site configuration names.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from ethical_scraper.scraping.config.loader import SiteConfigLoader
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiteMatcher:
    pattern: str
    config_name: str
    priority: int = 0


def wildcard_match(value: str, pattern: str) -> bool:
    """
    Case-insensitive full match where `*` matches any run of characters.
    """

    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, value, flags=re.IGNORECASE) is not None


class SiteMatcherService:
    """
    Resolves a URL to the best matching configuration name by priority.

    Patterns come from each configuration's `url_patterns` (or its domain and
    subdomains when none are declared) plus any matchers added at runtime.
    """

    def __init__(self, *, loader: SiteConfigLoader, fallback_config: str | None = None) -> None:
        self._loader = loader
        self._fallback_config = fallback_config
        self._config_matchers: list[SiteMatcher] | None = None
        self._extra_matchers: list[SiteMatcher] = []

    def refresh(self) -> None:
        matchers: list[SiteMatcher] = []
        for config_name, config in self._loader.load_all().items():
            patterns = config.url_patterns or (
                f"*://{config.domain}/*",
                f"*://*.{config.domain}/*",
            )
            for pattern in patterns:
                matchers.append(
                    SiteMatcher(pattern=pattern, config_name=config_name, priority=config.priority)
                )
        self._config_matchers = matchers

    def find_config_for_url(self, url: str) -> str | None:
        normalized = normalize_url(url)
        if normalized is None:
            log_event(logger, logging.WARNING, "site_match_invalid_url", url=url)
            return None

        for matcher in self.all_matchers():
            if wildcard_match(normalized, matcher.pattern):
                log_event(
                    logger,
                    logging.INFO,
                    "site_matched",
                    url=url,
                    pattern=matcher.pattern,
                    config_name=matcher.config_name,
                )
                return matcher.config_name

        log_event(
            logger,
            logging.INFO,
            "site_match_fallback",
            url=url,
            fallback_config=self._fallback_config,
        )
        return self._fallback_config

    def add_matcher(self, matcher: SiteMatcher) -> None:
        self._extra_matchers.append(matcher)

    def remove_matcher(self, pattern: str) -> bool:
        before = len(self._extra_matchers)
        self._extra_matchers = [item for item in self._extra_matchers if item.pattern != pattern]
        return len(self._extra_matchers) < before

    def all_matchers(self) -> list[SiteMatcher]:
        """
        Every matcher, highest priority first (stable within equal priority).
        """

        if self._config_matchers is None:
            self.refresh()
        combined = [*self._extra_matchers, *(self._config_matchers or [])]
        return sorted(combined, key=lambda item: item.priority, reverse=True)

    def test_url(self, url: str) -> list[dict[str, object]]:
        normalized = normalize_url(url) or url
        return [
            {
                "pattern": matcher.pattern,
                "config_name": matcher.config_name,
                "matches": wildcard_match(normalized, matcher.pattern),
            }
            for matcher in self.all_matchers()
        ]


def normalize_url(url: str) -> str | None:
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    normalized = f"{parsed.scheme}://{parsed.netloc.lower()}{parsed.path or '/'}"
    if parsed.query:
        normalized = f"{normalized}?{parsed.query}"
    return normalized
