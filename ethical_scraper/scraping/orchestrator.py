"""
Scrape orchestrator.

Runs one scrape end to end: cache, robots policy, configuration resolution,
politeness delay, instruction execution, page and frame extraction, optional
screenshot and result caching. Every failure becomes a structured result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ethical_scraper.scraping.browser import BrowserEngine
from ethical_scraper.scraping.cache import ResultCache
from ethical_scraper.scraping.config.loader import SiteConfigLoader
from ethical_scraper.scraping.config.matcher import SiteMatcherService, normalize_url
from ethical_scraper.scraping.config.models import ActionKind, Extractor, Instruction, SiteConfig
from ethical_scraper.scraping.errors import (
    ConfigurationMissing,
    InvalidTargetURL,
    PolicyBlocked,
    ScrapeError,
    SiteConfigError,
)
from ethical_scraper.scraping.frames import FrameTraversal
from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.rate_limiter import PolitenessDelay
from ethical_scraper.scraping.robots import RobotsPolicyManager
from ethical_scraper.scraping.types import ScrapeMetadata, ScrapeRequest, ScrapeResult

logger = logging.getLogger(__name__)

INTERNAL_ERROR_CODE = "internal_error"


@dataclass
class _Progress:
    """
    Mutable counters collected while a scrape runs; frozen into metadata at the end.
    """

    instructions_executed: int = 0
    extractors_run: int = 0
    iframes_processed: int = 0
    screenshot_taken: bool = False
    robots_txt_checked: bool = False
    robots_txt_uncertain: bool = False
    user_agent: str | None = None
    final_url: str | None = None
    memory_usage: int = 0
    config_name: str | None = None
    warnings: list[str] = field(default_factory=list)

    def metadata(self, started: float) -> ScrapeMetadata:
        return ScrapeMetadata(
            processing_time_ms=int((time.monotonic() - started) * 1000),
            instructions_executed=self.instructions_executed,
            extractors_run=self.extractors_run,
            iframes_processed=self.iframes_processed,
            screenshot_taken=self.screenshot_taken,
            cache_used=False,
            robots_txt_checked=self.robots_txt_checked,
            robots_txt_uncertain=self.robots_txt_uncertain,
            user_agent=self.user_agent,
            final_url=self.final_url,
            memory_usage=self.memory_usage,
            config_name=self.config_name,
        )


class ScrapeOrchestrator:
    """
    Entry point for one-off and scheduled scrapes. Never raises to its caller.
    """

    def __init__(
        self,
        *,
        loader: SiteConfigLoader,
        matcher: SiteMatcherService,
        robots: RobotsPolicyManager,
        engine_factory: Callable[[], BrowserEngine],
        cache: ResultCache | None = None,
        frame_traversal: FrameTraversal | None = None,
        politeness: PolitenessDelay | None = None,
    ) -> None:
        self._loader = loader
        self._matcher = matcher
        self._robots = robots
        self._engine_factory = engine_factory
        self._cache = cache or ResultCache()
        self._frames = frame_traversal or FrameTraversal()
        self._politeness = politeness or PolitenessDelay()

    async def scrape(self, request: ScrapeRequest) -> ScrapeResult:
        started = time.monotonic()
        url = request.url

        if request.use_cache:
            cached = self._cache.get(url)
            if cached is not None:
                return cached

        log_event(logger, logging.INFO, "scrape_started", url=url, config_name=request.config_name)
        progress = _Progress()
        engine: BrowserEngine | None = None
        page: Page | None = None
        config: SiteConfig | None = None
        try:
            if normalize_url(url) is None:
                raise InvalidTargetURL(f"Invalid URL: {url}")

            decision = await self._robots.check(url)
            progress.robots_txt_checked = decision.checked
            progress.robots_txt_uncertain = decision.uncertain
            if decision.uncertain:
                progress.warnings.append(
                    "robots.txt could not be fetched; proceeding under fail-open policy"
                )
            if not decision.allowed:
                raise PolicyBlocked(
                    f"URL blocked by robots.txt: {url}",
                    details={"user_agent": self._robots.user_agent},
                )

            config = self._resolve_config(request)
            progress.config_name = config.name
            progress.user_agent = config.options.user_agent

            await self._politeness.wait(
                PolitenessDelay.effective_delay(
                    config.options.politeness_delay_ms,
                    decision.crawl_delay,
                )
            )

            engine = self._engine_factory()
            await engine.initialize(config.options)
            page = await engine.create_page(config.options)

            instructions = bind_target_url(request.actions or config.instructions, url)
            for instruction in instructions:
                if await engine.execute_instruction(page, instruction):
                    progress.instructions_executed += 1
                else:
                    progress.warnings.append(
                        f"Optional step {instruction.step} failed: {instruction.description}"
                    )

            extractors = request.extractors or config.extractors
            data = await engine.extract_data(page, extractors)
            progress.extractors_run = len(extractors)

            include_iframes = _pick(request.options.include_iframes, config.options.include_iframes)
            if include_iframes:
                sections, frame_warnings = await self._frames.extract_all(page, extractors)
                progress.warnings.extend(frame_warnings)
                progress.iframes_processed = len(sections)
                if sections:
                    data["iframes"] = sections

            if config.options.iframe_path:
                nested = await self._extract_nested(page, config, extractors, progress)
                if nested:
                    data["nested_iframe"] = nested

            if _pick(request.options.screenshot, config.options.screenshot) or config.options.screenshot_on_error:
                progress.screenshot_taken = await self._take_screenshot(engine, page, url, "page")

            progress.final_url = page.url
            progress.memory_usage = await engine.memory_usage()

            result = ScrapeResult(
                url=url,
                success=True,
                data=data,
                metadata=progress.metadata(started),
                warnings=tuple(progress.warnings),
            )
            if request.use_cache:
                self._cache.put(url, result, request.cache_ttl_seconds)
            log_event(
                logger,
                logging.INFO,
                "scrape_completed",
                url=url,
                config_name=config.name,
                fields=len(data),
                processing_time_ms=result.metadata.processing_time_ms,
            )
            return result
        except ScrapeError as exc:
            log_event(
                logger,
                logging.WARNING,
                "scrape_failed",
                url=url,
                code=exc.code,
                error=exc.message,
            )
            await self._capture_error_screenshot(engine, page, config, url, progress)
            return _failure(url, exc.message, exc.code, progress, started)
        except Exception as exc:
            logger.exception("Unexpected error while scraping %s", url)
            await self._capture_error_screenshot(engine, page, config, url, progress)
            return _failure(url, f"Unexpected error: {exc}", INTERNAL_ERROR_CODE, progress, started)
        finally:
            if engine is not None:
                await engine.close()

    def cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()

    def clear_cache(self) -> int:
        return self._cache.clear()

    def _resolve_config(self, request: ScrapeRequest) -> SiteConfig:
        config_name = request.config_name or self._matcher.find_config_for_url(request.url)
        if not config_name:
            raise ConfigurationMissing(f"No configuration found for URL: {request.url}")

        try:
            config = self._loader.load_config(config_name)
        except SiteConfigError as exc:
            raise ConfigurationMissing(f"Configuration '{config_name}' is invalid: {exc}") from exc
        if config is None:
            raise ConfigurationMissing(f"Configuration '{config_name}' not found")
        if not config.enabled:
            raise ConfigurationMissing(f"Configuration '{config_name}' is disabled")
        return config

    async def _extract_nested(
        self,
        page: Page,
        config: SiteConfig,
        extractors: Sequence[Extractor],
        progress: _Progress,
    ) -> dict[str, Any]:
        frame = await self._frames.handle_nested_iframes(page, config.options.iframe_path)
        if frame is None:
            progress.warnings.append(
                f"Nested iframe path not found: {' > '.join(config.options.iframe_path)}"
            )
            return {}
        try:
            return await self._frames.extract_from_iframe(frame, extractors)
        except (ScrapeError, PlaywrightError) as exc:
            progress.warnings.append(f"Failed to extract from nested iframe: {exc}")
            return {}

    @staticmethod
    async def _take_screenshot(engine: BrowserEngine, page: Page, url: str, label: str) -> bool:
        host = urlparse(url).netloc.replace(":", "_") or "page"
        instruction = Instruction(
            step=0,
            action=ActionKind.SCREENSHOT,
            description=f"Capture {label} screenshot",
            value=f"{label}-{host}-{int(time.time() * 1000)}.png",
            optional=True,
        )
        return await engine.execute_instruction(page, instruction)

    async def _capture_error_screenshot(
        self,
        engine: BrowserEngine | None,
        page: Page | None,
        config: SiteConfig | None,
        url: str,
        progress: _Progress,
    ) -> None:
        if engine is None or page is None or config is None:
            return
        if not config.options.screenshot_on_error:
            return
        progress.screenshot_taken = await self._take_screenshot(engine, page, url, "error")


def bind_target_url(instructions: Sequence[Instruction], url: str) -> tuple[Instruction, ...]:
    """
    Point the first navigate step at `url`, prepending one when absent.
    """

    for index, instruction in enumerate(instructions):
        if instruction.action is ActionKind.NAVIGATE:
            return (
                *instructions[:index],
                replace(instruction, target=url),
                *instructions[index + 1 :],
            )
    navigate = Instruction(
        step=0,
        action=ActionKind.NAVIGATE,
        description=f"Navigate to {url}",
        target=url,
    )
    return (navigate, *instructions)


def _pick(override: bool | None, default: bool) -> bool:
    return default if override is None else override


def _failure(
    url: str,
    message: str,
    code: str,
    progress: _Progress,
    started: float,
) -> ScrapeResult:
    return ScrapeResult(
        url=url,
        success=False,
        data={},
        metadata=progress.metadata(started),
        errors=(message,),
        warnings=tuple(progress.warnings),
        error_code=code,
    )
