"""
Recursive iframe discovery and extraction over Playwright frames.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page

from ethical_scraper.scraping.config.matcher import wildcard_match
from ethical_scraper.scraping.config.models import Extractor
from ethical_scraper.scraping.errors import ScrapeError
from ethical_scraper.scraping.extraction import ExtractionLayer
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_FRAME_LOAD_TIMEOUT_MS = 10_000
_BLANK_URLS = {"", "about:blank"}


class FrameTraversal:
    """
    Enumerates every frame attached to a page and runs extractors inside each.
    """

    def __init__(self, *, load_timeout_ms: int = DEFAULT_FRAME_LOAD_TIMEOUT_MS) -> None:
        self._load_timeout_ms = load_timeout_ms

    def get_all_iframes(self, page: Page) -> list[Frame]:
        """
        All frames except the main one; nested frames at every depth are included.
        """

        main_frame = page.main_frame
        frames = [frame for frame in page.frames if frame is not main_frame]
        log_event(logger, logging.INFO, "iframes_discovered", count=len(frames))
        return frames

    async def wait_for_iframe_load(self, frame: Frame, timeout_ms: int | None = None) -> bool:
        try:
            await frame.wait_for_load_state(
                "domcontentloaded",
                timeout=timeout_ms if timeout_ms is not None else self._load_timeout_ms,
            )
        except PlaywrightError as exc:
            log_event(
                logger,
                logging.WARNING,
                "iframe_load_timeout",
                url=frame.url,
                error=str(exc),
            )
            return False
        return True

    async def extract_from_iframe(self, frame: Frame, extractors: Sequence[Extractor]) -> dict[str, Any]:
        html = await frame.content()
        return ExtractionLayer.extract_fields(
            html=html,
            extractors=extractors,
            base_url=frame.url,
            scope=f"iframe:{frame.url}",
        )

    async def handle_nested_iframes(self, page: Page, path: Sequence[str]) -> Frame | None:
        """
        Follow a chain of iframe selectors and return the innermost frame.

        Any missing step yields None; this never raises.
        """

        if not path:
            return None

        current: Page | Frame = page
        for depth, selector in enumerate(path, start=1):
            try:
                element = await current.query_selector(selector)
                frame = await element.content_frame() if element is not None else None
            except PlaywrightError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "nested_iframe_lookup_failed",
                    selector=selector,
                    depth=depth,
                    error=str(exc),
                )
                return None
            if frame is None:
                log_event(
                    logger,
                    logging.WARNING,
                    "nested_iframe_missing",
                    selector=selector,
                    depth=depth,
                )
                return None
            current = frame
        return current

    def find_iframe_by_url(self, page: Page, url_pattern: str) -> Frame | None:
        for frame in self.get_all_iframes(page):
            if wildcard_match(frame.url, url_pattern):
                return frame
        return None

    async def find_iframe_by_selector(self, page: Page, selector: str) -> Frame | None:
        try:
            element = await page.query_selector(selector)
            if element is None:
                return None
            return await element.content_frame()
        except PlaywrightError as exc:
            log_event(logger, logging.WARNING, "iframe_selector_failed", selector=selector, error=str(exc))
            return None

    async def click_in_iframe(self, frame: Frame, selector: str, timeout_ms: int | None = None) -> bool:
        """
        Best-effort click inside a frame; False when the element never shows up.
        """

        timeout = timeout_ms if timeout_ms is not None else self._load_timeout_ms
        try:
            await frame.wait_for_selector(selector, state="attached", timeout=timeout)
            await frame.click(selector, timeout=timeout)
        except PlaywrightError as exc:
            log_event(
                logger,
                logging.WARNING,
                "iframe_click_failed",
                url=frame.url,
                selector=selector,
                error=str(exc),
            )
            return False
        return True

    async def type_in_iframe(
        self,
        frame: Frame,
        selector: str,
        text: str,
        timeout_ms: int | None = None,
    ) -> bool:
        timeout = timeout_ms if timeout_ms is not None else self._load_timeout_ms
        try:
            await frame.wait_for_selector(selector, state="attached", timeout=timeout)
            await frame.fill(selector, text, timeout=timeout)
        except PlaywrightError as exc:
            log_event(
                logger,
                logging.WARNING,
                "iframe_type_failed",
                url=frame.url,
                selector=selector,
                error=str(exc),
            )
            return False
        return True

    async def get_iframe_metadata(self, frame: Frame) -> dict[str, Any]:
        """
        Structural facts about a frame plus its document title and readyState.

        The document fields are None when the frame cannot be evaluated.
        """

        parent = frame.parent_frame
        metadata: dict[str, Any] = {
            "url": frame.url,
            "name": frame.name,
            "detached": frame.is_detached(),
            "parent_url": parent.url if parent is not None else None,
            "child_count": len(frame.child_frames),
            "title": None,
            "ready_state": None,
        }
        try:
            metadata["title"] = await frame.evaluate("() => document.title")
            metadata["ready_state"] = await frame.evaluate("() => document.readyState")
        except PlaywrightError as exc:
            log_event(logger, logging.DEBUG, "iframe_metadata_unavailable", url=frame.url, error=str(exc))
        return metadata

    async def extract_all(
        self,
        page: Page,
        extractors: Sequence[Extractor],
    ) -> tuple[dict[str, dict[str, Any]], list[str]]:
        """
        Extract from every loadable frame.

        Returns the `iframe_<n>` sections (n is the 1-based position in frame
        order) and warnings for frames whose extraction failed.
        """

        sections: dict[str, dict[str, Any]] = {}
        warnings: list[str] = []

        for index, frame in enumerate(self.get_all_iframes(page), start=1):
            if frame.url in _BLANK_URLS:
                continue
            if not await self.wait_for_iframe_load(frame):
                continue
            try:
                data = await self.extract_from_iframe(frame, extractors)
            except (ScrapeError, PlaywrightError) as exc:
                warnings.append(f"Failed to extract from iframe {index}: {exc}")
                log_event(
                    logger,
                    logging.WARNING,
                    "iframe_extraction_failed",
                    index=index,
                    url=frame.url,
                    error=str(exc),
                )
                continue
            if data:
                sections[f"iframe_{index}"] = {
                    "url": frame.url,
                    "name": frame.name,
                    "data": data,
                }

        log_event(
            logger,
            logging.INFO,
            "iframe_extraction_completed",
            sections=len(sections),
            warnings=len(warnings),
        )
        return sections, warnings
