"""
In-memory TTL cache of scrape results keyed by URL.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.types import ScrapeResult

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    result: ScrapeResult
    cached_at: float
    expires_at: float
    hits: int = 0


class ResultCache:
    """
    Process-wide result cache; concurrent writers for one URL are last-writer-wins.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> ScrapeResult | None:
        """
        Return a copy of the cached result flagged `cache_used`, or None.
        """

        with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[url]
                log_event(logger, logging.DEBUG, "cache_expired", url=url)
                return None
            entry.hits += 1
            cached = entry.result

        log_event(logger, logging.INFO, "cache_hit", url=url)
        return replace(
            cached,
            data=copy.deepcopy(cached.data),
            metadata=replace(cached.metadata, cache_used=True),
        )

    def put(self, url: str, result: ScrapeResult, ttl_seconds: float) -> None:
        now = self._clock()
        with self._lock:
            self._entries[url] = CacheEntry(
                result=result,
                cached_at=now,
                expires_at=now + max(0.0, ttl_seconds),
            )
        log_event(logger, logging.DEBUG, "cache_stored", url=url, ttl_seconds=ttl_seconds)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
        log_event(logger, logging.INFO, "cache_cleared", cleared=cleared)
        return cleared

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "urls": sorted(self._entries),
                "total_hits": sum(entry.hits for entry in self._entries.values()),
            }
