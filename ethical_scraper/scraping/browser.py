"""
Playwright-backed browser automation engine.

One engine owns exactly one browser process. It executes declarative
instructions against a page and runs the extraction layer on the rendered
document.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from typing_extensions import assert_never

from ethical_scraper.scraping.config.models import (
    ActionKind,
    Extractor,
    Instruction,
    SiteOptions,
    WaitCondition,
)
from ethical_scraper.scraping.errors import (
    BrowserLaunchFailed,
    ExtractionFailed,
    InstructionFailed,
    NetworkFetchFailed,
    ScrapeError,
)
from ethical_scraper.scraping.extraction import ExtractionLayer
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

DEFAULT_TIMEOUTS_MS: dict[ActionKind, int] = {
    ActionKind.NAVIGATE: 30_000,
    ActionKind.CLICK: 5_000,
    ActionKind.WAIT: 10_000,
    ActionKind.TYPE: 5_000,
    ActionKind.SCROLL: 5_000,
    ActionKind.EXTRACT: 1_000,
    ActionKind.SCREENSHOT: 30_000,
}
POST_CLICK_NAVIGATION_TIMEOUT_MS = 10_000
NAVIGATION_BACKOFF_INITIAL_SECONDS = 1.0
NAVIGATION_BACKOFF_MULTIPLIER = 2.0
# Headroom on top of Playwright's own timeouts before the outer guard fires.
HANDLER_GRACE_SECONDS = 5.0

_SCROLL_TO_ELEMENT_JS = """(selector) => {
    const element = document.querySelector(selector);
    if (!element) { return false; }
    element.scrollIntoView({ behavior: 'smooth' });
    return true;
}"""
_SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"
_MEMORY_USAGE_JS = "() => (performance.memory && performance.memory.usedJSHeapSize) || 0"


class BrowserEngine:
    """
    Launches Chromium, creates pages and executes instructions against them.
    """

    def __init__(
        self,
        *,
        screenshot_dir: str | Path = "screenshots",
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self._screenshot_dir = Path(screenshot_dir)
        self._playwright_factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._options = SiteOptions()
        self.last_screenshot_path: Path | None = None

    async def __aenter__(self) -> "BrowserEngine":
        await self.initialize(self._options)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def initialize(self, options: SiteOptions | None = None) -> None:
        """
        Launch the browser process; raises BrowserLaunchFailed if it cannot start.
        """

        if self._browser is not None:
            return
        if options is not None:
            self._options = options

        started = time.monotonic()
        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._options.headless,
                args=LAUNCH_ARGS,
            )
        except Exception as exc:
            log_event(logger, logging.ERROR, "browser_launch_failed", error=str(exc))
            await self.close()
            raise BrowserLaunchFailed(f"Browser launch failed: {exc}") from exc

        log_event(
            logger,
            logging.INFO,
            "browser_launched",
            headless=self._options.headless,
            launch_ms=_elapsed_ms(started),
        )

    async def create_page(self, options: SiteOptions | None = None) -> Page:
        """
        Open a page with the configured user agent, viewport and passive observers.
        """

        if options is not None:
            self._options = options
        if self._browser is None:
            await self.initialize(self._options)

        context_kwargs: dict[str, Any] = {
            "viewport": {
                "width": self._options.viewport.width,
                "height": self._options.viewport.height,
            }
        }
        if self._options.user_agent:
            context_kwargs["user_agent"] = self._options.user_agent

        try:
            self._context = await self._browser.new_context(**context_kwargs)
            page = await self._context.new_page()
        except PlaywrightError as exc:
            log_event(logger, logging.ERROR, "page_creation_failed", error=str(exc))
            raise BrowserLaunchFailed(f"Page creation failed: {exc}") from exc

        page.on("console", self._on_console)
        page.on("response", self._on_response)
        page.on("requestfailed", self._on_request_failed)
        self._page = page
        log_event(
            logger,
            logging.INFO,
            "page_created",
            user_agent=self._options.user_agent,
            viewport=f"{self._options.viewport.width}x{self._options.viewport.height}",
        )
        return page

    async def execute_instruction(self, page: Page, instruction: Instruction) -> bool:
        """
        Run one instruction.

        Returns True on success and False when an optional instruction fails.
        A failing required instruction raises InstructionFailed (or
        NetworkFetchFailed for navigation).
        """

        started = time.monotonic()
        log_event(
            logger,
            logging.INFO,
            "instruction_started",
            step=instruction.step,
            action=instruction.action.value,
            description=instruction.description,
        )
        try:
            await asyncio.wait_for(
                self._dispatch(page, instruction),
                timeout=self._guard_seconds(instruction),
            )
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "instruction_failed",
                step=instruction.step,
                action=instruction.action.value,
                elapsed_ms=_elapsed_ms(started),
                optional=instruction.optional,
                error=str(exc) or type(exc).__name__,
            )
            if instruction.optional:
                return False
            if isinstance(exc, ScrapeError):
                raise
            if isinstance(exc, asyncio.TimeoutError):
                raise InstructionFailed(
                    f"Step {instruction.step} ({instruction.action.value}) timed out: "
                    f"{instruction.description}"
                ) from exc
            raise InstructionFailed(
                f"Step {instruction.step} ({instruction.action.value}) failed: "
                f"{instruction.description}: {exc}"
            ) from exc

        log_event(
            logger,
            logging.INFO,
            "instruction_completed",
            step=instruction.step,
            elapsed_ms=_elapsed_ms(started),
        )
        return True

    async def extract_data(self, page: Page, extractors: Sequence[Extractor]) -> dict[str, Any]:
        """
        Run extractors against the current page document.
        """

        try:
            html = await page.content()
        except PlaywrightError as exc:
            if any(extractor.required for extractor in extractors):
                raise ExtractionFailed(f"Could not read page content: {exc}") from exc
            log_event(logger, logging.WARNING, "page_content_unavailable", error=str(exc))
            return {}
        return ExtractionLayer.extract_fields(
            html=html,
            extractors=extractors,
            base_url=page.url,
            scope="page",
        )

    async def memory_usage(self) -> int:
        if self._page is None:
            return 0
        try:
            used = await self._page.evaluate(_MEMORY_USAGE_JS)
        except PlaywrightError:
            return 0
        return int(used or 0)

    async def close(self) -> None:
        """
        Tear down context, browser and driver. Safe to call repeatedly.
        """

        had_browser = self._browser is not None
        for closer in (self._context, self._browser):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as exc:
                log_event(logger, logging.WARNING, "browser_close_failed", error=str(exc))
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log_event(logger, logging.WARNING, "playwright_stop_failed", error=str(exc))

        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        if had_browser:
            log_event(logger, logging.INFO, "browser_closed")

    async def _dispatch(self, page: Page, instruction: Instruction) -> None:
        action = instruction.action
        if action is ActionKind.NAVIGATE:
            await self._handle_navigate(page, instruction)
        elif action is ActionKind.CLICK:
            await self._handle_click(page, instruction)
        elif action is ActionKind.WAIT:
            await self._handle_wait(page, instruction)
        elif action is ActionKind.TYPE:
            await self._handle_type(page, instruction)
        elif action is ActionKind.SCROLL:
            await self._handle_scroll(page, instruction)
        elif action is ActionKind.SCREENSHOT:
            await self._handle_screenshot(page, instruction)
        elif action is ActionKind.EXTRACT:
            # Extraction runs as a separate pass over the finished page.
            log_event(logger, logging.DEBUG, "extract_deferred", step=instruction.step)
        else:
            assert_never(action)

    async def _handle_navigate(self, page: Page, instruction: Instruction) -> None:
        url = instruction.target or page.url
        timeout = _timeout_ms(instruction)
        wait_until = "networkidle" if self._options.wait_for_network_idle else "load"
        attempts = self._options.max_retries + 1

        for attempt in range(attempts):
            try:
                response = await page.goto(url, wait_until=wait_until, timeout=timeout)
            except PlaywrightError as exc:
                if attempt + 1 >= attempts:
                    raise NetworkFetchFailed(
                        f"Navigation to {url} failed: {exc}",
                        details={"url": url, "attempts": attempts},
                    ) from exc
                backoff_seconds = NAVIGATION_BACKOFF_INITIAL_SECONDS * (
                    NAVIGATION_BACKOFF_MULTIPLIER**attempt
                )
                log_event(
                    logger,
                    logging.WARNING,
                    "navigation_retry",
                    url=url,
                    attempt=attempt + 1,
                    backoff_seconds=backoff_seconds,
                    error=str(exc),
                )
                await asyncio.sleep(backoff_seconds)
                continue

            log_event(
                logger,
                logging.INFO,
                "navigation_completed",
                url=url,
                final_url=page.url,
                status=response.status if response is not None else None,
            )
            return

    async def _handle_click(self, page: Page, instruction: Instruction) -> None:
        if not instruction.target:
            raise InstructionFailed("Click action requires a target selector")

        timeout = _timeout_ms(instruction)
        await page.wait_for_selector(instruction.target, timeout=timeout, state="attached")
        if instruction.wait_for is WaitCondition.NAVIGATION:
            async with page.expect_navigation(
                wait_until="networkidle",
                timeout=POST_CLICK_NAVIGATION_TIMEOUT_MS,
            ):
                await page.click(instruction.target, timeout=timeout)
        else:
            await page.click(instruction.target, timeout=timeout)

    async def _handle_wait(self, page: Page, instruction: Instruction) -> None:
        timeout = _timeout_ms(instruction)
        condition = instruction.wait_for or WaitCondition.TIMEOUT

        if condition is WaitCondition.SELECTOR:
            if not instruction.target:
                raise InstructionFailed("Wait for selector requires a target selector")
            await page.wait_for_selector(instruction.target, timeout=timeout, state="attached")
        elif condition is WaitCondition.NAVIGATION:
            await page.wait_for_load_state("load", timeout=timeout)
        elif condition is WaitCondition.NETWORK_IDLE:
            await page.wait_for_load_state("networkidle", timeout=timeout)
        elif condition is WaitCondition.TIMEOUT:
            await asyncio.sleep(timeout / 1000)
        else:
            assert_never(condition)

    async def _handle_type(self, page: Page, instruction: Instruction) -> None:
        if not instruction.target or not instruction.value:
            raise InstructionFailed("Type action requires both target selector and value")

        timeout = _timeout_ms(instruction)
        await page.wait_for_selector(instruction.target, timeout=timeout, state="attached")
        await page.fill(instruction.target, instruction.value, timeout=timeout)

    async def _handle_scroll(self, page: Page, instruction: Instruction) -> None:
        if instruction.target:
            found = await page.evaluate(_SCROLL_TO_ELEMENT_JS, instruction.target)
            if not found:
                log_event(
                    logger,
                    logging.WARNING,
                    "scroll_target_missing",
                    target=instruction.target,
                )
        else:
            await page.evaluate(_SCROLL_TO_BOTTOM_JS)

    async def _handle_screenshot(self, page: Page, instruction: Instruction) -> None:
        filename = instruction.value or f"screenshot-{int(time.time() * 1000)}.png"
        self._screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self._screenshot_dir / Path(filename).name
        await page.screenshot(path=str(path), full_page=True, timeout=_timeout_ms(instruction))
        self.last_screenshot_path = path
        log_event(logger, logging.INFO, "screenshot_saved", path=path)

    def _guard_seconds(self, instruction: Instruction) -> float:
        timeout_seconds = _timeout_ms(instruction) / 1000
        if instruction.action is ActionKind.NAVIGATE:
            retries = self._options.max_retries
            backoff = sum(
                NAVIGATION_BACKOFF_INITIAL_SECONDS * (NAVIGATION_BACKOFF_MULTIPLIER**attempt)
                for attempt in range(retries)
            )
            timeout_seconds = timeout_seconds * (retries + 1) + backoff
        elif instruction.action is ActionKind.CLICK and instruction.wait_for is WaitCondition.NAVIGATION:
            timeout_seconds += POST_CLICK_NAVIGATION_TIMEOUT_MS / 1000
        return timeout_seconds + HANDLER_GRACE_SECONDS

    @staticmethod
    def _on_console(message: Any) -> None:
        log_event(logger, logging.DEBUG, "page_console", type=message.type, text=message.text)

    @staticmethod
    def _on_response(response: Any) -> None:
        if not response.ok:
            log_event(
                logger,
                logging.WARNING,
                "response_failed",
                status=response.status,
                url=response.url,
            )

    @staticmethod
    def _on_request_failed(request: Any) -> None:
        log_event(logger, logging.WARNING, "request_failed", url=request.url, failure=request.failure)


def _timeout_ms(instruction: Instruction) -> int:
    if instruction.timeout is not None and instruction.timeout >= 0:
        return instruction.timeout
    return DEFAULT_TIMEOUTS_MS[instruction.action]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
