"""
tests/test_politeness.py

robots.txt policy, politeness delay, per-client rate limiting and result cache.
"""

from __future__ import annotations

import asyncio
import unittest

from ethical_scraper.scraping.cache import ResultCache
from ethical_scraper.scraping.rate_limiter import FixedWindowRateLimiter, PolitenessDelay
from ethical_scraper.scraping.robots import RobotsPolicyManager
from ethical_scraper.scraping.types import ScrapeResult
from scrape_fakes import FakeHTTPResponse, FakeSession, connection_error

ROBOTS_TXT = """
User-agent: *
Disallow: /private/
Crawl-delay: 3
"""


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRobotsPolicyManager(unittest.TestCase):
    def _manager(self, responses, **kwargs) -> tuple[RobotsPolicyManager, FakeSession]:
        session = FakeSession(responses)
        return RobotsPolicyManager(session=session, **kwargs), session

    def test_disallowed_path_is_blocked_with_crawl_delay(self) -> None:
        manager, _ = self._manager({"https://site.example/robots.txt": FakeHTTPResponse(200, ROBOTS_TXT)})

        blocked = asyncio.run(manager.check("https://site.example/private/page"))
        allowed = asyncio.run(manager.check("https://site.example/public"))

        self.assertFalse(blocked.allowed)
        self.assertTrue(allowed.allowed)
        self.assertTrue(allowed.checked)
        self.assertFalse(allowed.uncertain)
        self.assertEqual(allowed.crawl_delay, 3.0)

    def test_missing_robots_file_allows_and_counts_as_checked(self) -> None:
        manager, _ = self._manager({"https://site.example/robots.txt": FakeHTTPResponse(404)})

        decision = asyncio.run(manager.check("https://site.example/anything"))

        self.assertTrue(decision.allowed)
        self.assertTrue(decision.checked)
        self.assertFalse(decision.uncertain)

    def test_fetch_error_fails_open_and_is_uncertain(self) -> None:
        manager, _ = self._manager({"https://site.example/robots.txt": connection_error()})

        decision = asyncio.run(manager.check("https://site.example/anything"))

        self.assertTrue(decision.allowed)
        self.assertTrue(decision.uncertain)

    def test_fetch_error_can_fail_closed(self) -> None:
        manager, _ = self._manager(
            {"https://site.example/robots.txt": connection_error()},
            allow_when_unreachable=False,
        )
        decision = asyncio.run(manager.check("https://site.example/anything"))
        self.assertFalse(decision.allowed)

    def test_rules_are_cached_per_origin_until_ttl(self) -> None:
        clock = FakeClock()
        manager, session = self._manager(
            {"https://site.example/robots.txt": FakeHTTPResponse(200, ROBOTS_TXT)},
            cache_ttl_seconds=60,
            clock=clock,
        )

        asyncio.run(manager.check("https://site.example/a"))
        asyncio.run(manager.check("https://site.example/b"))
        clock.now += 61
        asyncio.run(manager.check("https://site.example/c"))

        self.assertEqual(len(session.requested), 2)

    def test_clear_cache_forces_refetch(self) -> None:
        manager, session = self._manager({"https://site.example/robots.txt": FakeHTTPResponse(200, ROBOTS_TXT)})

        asyncio.run(manager.check("https://site.example/a"))
        manager.clear_cache()
        asyncio.run(manager.check("https://site.example/a"))

        self.assertEqual(len(session.requested), 2)


class TestPolitenessDelay(unittest.TestCase):
    def test_effective_delay_takes_the_larger_value(self) -> None:
        self.assertEqual(PolitenessDelay.effective_delay(1000, None), 1.0)
        self.assertEqual(PolitenessDelay.effective_delay(1000, 3.0), 3.0)
        self.assertEqual(PolitenessDelay.effective_delay(5000, 2.0), 5.0)
        self.assertEqual(PolitenessDelay.effective_delay(-10, None), 0.0)

    def test_wait_sleeps_every_time(self) -> None:
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        delay = PolitenessDelay(sleep=fake_sleep)

        async def scenario():
            await delay.wait(1.5)
            await delay.wait(1.5)
            await delay.wait(0)

        asyncio.run(scenario())
        self.assertEqual(slept, [1.5, 1.5])


class TestFixedWindowRateLimiter(unittest.TestCase):
    def test_blocks_after_limit_and_resets_with_window(self) -> None:
        clock = FakeClock(0.0)
        limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

        self.assertEqual(limiter.hit("1.2.3.4"), (True, 0))
        self.assertEqual(limiter.hit("1.2.3.4"), (True, 0))
        clock.now = 20.0
        self.assertEqual(limiter.hit("1.2.3.4"), (False, 40))
        self.assertEqual(limiter.hit("5.6.7.8"), (True, 0))

        clock.now = 60.0
        self.assertEqual(limiter.hit("1.2.3.4"), (True, 0))

    def test_reset_forgets_all_windows(self) -> None:
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock(0.0))
        limiter.hit("1.2.3.4")
        self.assertFalse(limiter.hit("1.2.3.4")[0])

        limiter.reset()

        self.assertTrue(limiter.hit("1.2.3.4")[0])


class TestResultCache(unittest.TestCase):
    def test_hit_returns_copy_flagged_as_cached(self) -> None:
        clock = FakeClock()
        cache = ResultCache(clock=clock)
        result = ScrapeResult(url="https://site.example/", success=True, data={"title": "Hi"})

        cache.put(result.url, result, ttl_seconds=300)
        cached = cache.get(result.url)

        self.assertIsNotNone(cached)
        self.assertTrue(cached.metadata.cache_used)
        self.assertFalse(result.metadata.cache_used)
        self.assertEqual(cached.data, {"title": "Hi"})
        self.assertEqual(cache.stats(), {"size": 1, "urls": ["https://site.example/"], "total_hits": 1})

    def test_expired_entries_are_evicted(self) -> None:
        clock = FakeClock()
        cache = ResultCache(clock=clock)
        cache.put("https://site.example/", ScrapeResult(url="https://site.example/", success=True), 10)

        clock.now += 10
        self.assertIsNone(cache.get("https://site.example/"))
        self.assertEqual(cache.stats()["size"], 0)

    def test_clear_returns_entry_count(self) -> None:
        cache = ResultCache()
        cache.put("a", ScrapeResult(url="a", success=True), 60)
        cache.put("b", ScrapeResult(url="b", success=True), 60)
        self.assertEqual(cache.clear(), 2)
        self.assertEqual(cache.stats()["size"], 0)


if __name__ == "__main__":
    unittest.main()
