"""
ethical_scraper/services.py

Construction of the scrape orchestrator and scheduler from settings.
"""

from __future__ import annotations

from functools import partial

import requests

from ethical_scraper.config import (
    SchedulerSettings,
    ScraperSettings,
    get_scheduler_settings,
    get_scraper_settings,
)
from ethical_scraper.scheduler import JSONRegistrationStore, LoggingNotifier, ScrapeScheduler
from ethical_scraper.scraping.browser import BrowserEngine
from ethical_scraper.scraping.cache import ResultCache
from ethical_scraper.scraping.config import SiteConfigLoader, SiteMatcherService
from ethical_scraper.scraping.frames import FrameTraversal
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator
from ethical_scraper.scraping.robots import RobotsPolicyManager
from ethical_scraper.scraping.storage import JSONResultStorage


def build_orchestrator(
    settings: ScraperSettings | None = None,
    *,
    session: requests.Session | None = None,
) -> ScrapeOrchestrator:
    """
    Wire loader, matcher, robots policy, cache and browser factory together.
    """

    settings = settings or get_scraper_settings()
    loader = SiteConfigLoader(config_dir=settings.config_dir)
    robots = RobotsPolicyManager(
        session=session or requests.Session(),
        user_agent=settings.robots_user_agent,
        timeout_seconds=settings.robots_timeout_seconds,
        cache_ttl_seconds=settings.robots_cache_ttl_seconds,
        allow_when_unreachable=settings.allow_when_robots_unreachable,
    )
    return ScrapeOrchestrator(
        loader=loader,
        matcher=SiteMatcherService(loader=loader, fallback_config=settings.fallback_config),
        robots=robots,
        engine_factory=partial(BrowserEngine, screenshot_dir=settings.screenshot_dir),
        cache=ResultCache(),
        frame_traversal=FrameTraversal(),
    )


def build_scheduler(
    orchestrator: ScrapeOrchestrator,
    settings: SchedulerSettings | None = None,
) -> ScrapeScheduler:
    settings = settings or get_scheduler_settings()
    return ScrapeScheduler(
        orchestrator=orchestrator,
        registrations=JSONRegistrationStore(sites_dir=settings.sites_dir),
        storage=JSONResultStorage(root_dir=settings.results_dir),
        settings=settings,
        notifier=LoggingNotifier(),
    )
