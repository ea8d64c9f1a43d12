"""
tests/test_orchestrator.py

End-to-end ScrapeOrchestrator behaviour with a fake browser driver and
canned robots.txt responses. No browser is launched.

Coverage
--------
- Successful scrape metadata and URL substitution
- Cache hits skip the browser entirely
- Policy and configuration failures short-circuit before launch
- Optional versus required instruction failures
- Required extractor failures name the extractor
- Frame traversal, nested frames and screenshots
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path

import pytest

from ethical_scraper.scraping.browser import BrowserEngine
from ethical_scraper.scraping.config import SiteConfigLoader, SiteMatcherService
from ethical_scraper.scraping.config.models import ActionKind, Extractor, Instruction
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator, bind_target_url
from ethical_scraper.scraping.rate_limiter import PolitenessDelay
from ethical_scraper.scraping.robots import RobotsPolicyManager
from ethical_scraper.scraping.types import RequestOptions, ScrapeRequest
from scrape_fakes import (
    FakeFrame,
    FakeHTTPResponse,
    FakePage,
    FakePlaywrightDriver,
    FakeSession,
    connection_error,
)

URL = "https://events.example/listing"
ROBOTS_URL = "https://events.example/robots.txt"
PAGE_HTML = '<html><body><h1>Events</h1><div class="event">A</div><div class="event">B</div></body></html>'


def _config(**overrides) -> dict:
    document = {
        "name": "Events",
        "domain": "events.example",
        "enabled": True,
        "instructions": [
            {"step": 1, "action": "navigate", "target": "https://placeholder/", "description": "Open page"},
            {
                "step": 2,
                "action": "click",
                "target": "#cookie",
                "description": "Dismiss cookie banner",
                "optional": True,
            },
            {"step": 3, "action": "wait", "target": ".event", "waitFor": "selector", "description": "Wait for events"},
        ],
        "extractors": [
            {"name": "title", "selector": "h1", "required": True},
            {"name": "items", "selector": ".event", "multiple": True},
        ],
        "options": {"politenessDelay": 1000},
    }
    options = overrides.pop("options", None)
    document.update(overrides)
    if options:
        document["options"] = {**document["options"], **options}
    return document


@dataclass
class Harness:
    orchestrator: ScrapeOrchestrator
    driver: FakePlaywrightDriver
    session: FakeSession
    slept: list[float]
    screenshot_dir: Path

    def scrape(self, **kwargs):
        kwargs.setdefault("url", URL)
        return asyncio.run(self.orchestrator.scrape(ScrapeRequest(**kwargs)))


def _harness(
    tmp_path: Path,
    *,
    config: dict | None = None,
    robots: FakeHTTPResponse | Exception | None = None,
    page_builder=None,
    launch_error: Exception | None = None,
    close_error: Exception | None = None,
) -> Harness:
    config_dir = tmp_path / "sites"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "events.json").write_text(json.dumps(config or _config()), encoding="utf-8")

    loader = SiteConfigLoader(config_dir=config_dir)
    session = FakeSession({ROBOTS_URL: robots} if robots is not None else {})
    driver = FakePlaywrightDriver(
        page_builder=page_builder or (lambda: FakePage(html=PAGE_HTML, missing_selectors={"#cookie"})),
        launch_error=launch_error,
        close_error=close_error,
    )
    screenshot_dir = tmp_path / "shots"
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    orchestrator = ScrapeOrchestrator(
        loader=loader,
        matcher=SiteMatcherService(loader=loader),
        robots=RobotsPolicyManager(session=session),
        engine_factory=lambda: BrowserEngine(screenshot_dir=screenshot_dir, playwright_factory=driver),
        politeness=PolitenessDelay(sleep=fake_sleep),
    )
    return Harness(orchestrator, driver, session, slept, screenshot_dir)


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------


class TestSuccessfulScrape:
    def test_result_data_and_metadata(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)

        result = harness.scrape()

        assert result.success is True
        assert result.error_code is None
        assert result.data == {"title": "Events", "items": ["A", "B"]}
        assert result.metadata.instructions_executed == 2
        assert result.metadata.extractors_run == 2
        assert result.metadata.robots_txt_checked is True
        assert result.metadata.cache_used is False
        assert result.metadata.config_name == "Events"
        assert result.metadata.final_url == URL
        assert result.metadata.memory_usage == 2048
        assert result.warnings == ("Optional step 2 failed: Dismiss cookie banner",)

    def test_url_is_substituted_into_navigate_step(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)
        harness.scrape()

        page = harness.driver.last_page
        assert ("goto", URL) in page.calls
        assert ("goto", "https://placeholder/") not in page.calls

    def test_politeness_delay_runs_and_engine_is_closed(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)
        harness.scrape(use_cache=False)
        harness.scrape(use_cache=False)

        assert harness.slept == [1.0, 1.0]
        assert harness.driver.launches == 2
        assert all(browser.closed for browser in harness.driver.browsers)

    def test_robots_crawl_delay_extends_delay(self, tmp_path: Path) -> None:
        harness = _harness(
            tmp_path,
            robots=FakeHTTPResponse(200, "User-agent: *\nAllow: /\nCrawl-delay: 3\n"),
        )
        harness.scrape()
        assert harness.slept == [3.0]

    def test_browser_teardown_failure_still_returns_result(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, close_error=RuntimeError("browser already gone"))

        result = harness.scrape()

        assert result.success is True
        assert result.data["title"] == "Events"
        assert harness.driver.stops == 1

    def test_serialized_result_uses_camel_case(self, tmp_path: Path) -> None:
        payload = _harness(tmp_path).scrape().to_dict()

        assert payload["metadata"]["cacheUsed"] is False
        assert payload["metadata"]["robotsTxtChecked"] is True
        assert payload["errorCode"] is None
        assert "extractedAt" in payload


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestCaching:
    def test_second_call_within_ttl_is_served_from_cache(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)

        first = harness.scrape()
        second = harness.scrape()

        assert first.metadata.cache_used is False
        assert second.metadata.cache_used is True
        assert second.data == first.data
        assert harness.driver.launches == 1
        assert harness.slept == [1.0]

    def test_use_cache_false_always_scrapes(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)
        harness.scrape(use_cache=False)
        result = harness.scrape(use_cache=False)

        assert result.metadata.cache_used is False
        assert harness.orchestrator.cache_stats()["size"] == 0

    def test_failures_are_not_cached(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, robots=FakeHTTPResponse(200, "User-agent: *\nDisallow: /\n"))
        harness.scrape()
        assert harness.orchestrator.cache_stats()["size"] == 0

    def test_clear_cache(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)
        harness.scrape()
        assert harness.orchestrator.clear_cache() == 1
        harness.scrape()
        assert harness.driver.launches == 2


# ---------------------------------------------------------------------------
# Short-circuit failures
# ---------------------------------------------------------------------------


class TestPreLaunchFailures:
    def test_robots_disallow_blocks_before_launch(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, robots=FakeHTTPResponse(200, "User-agent: *\nDisallow: /listing\n"))

        result = harness.scrape()

        assert result.success is False
        assert result.error_code == "policy_blocked"
        assert result.errors and "robots.txt" in result.errors[0]
        assert harness.driver.launches == 0
        assert harness.slept == []

    def test_missing_robots_file_proceeds(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, robots=FakeHTTPResponse(404))

        result = harness.scrape()

        assert result.success is True
        assert result.to_dict()["metadata"]["robotsTxtChecked"] is True

    def test_unreachable_robots_proceeds_with_uncertainty(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, robots=connection_error())

        result = harness.scrape()

        assert result.success is True
        assert result.metadata.robots_txt_uncertain is True
        assert any("fail-open" in warning for warning in result.warnings)

    def test_disabled_configuration_is_missing(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, config=_config(enabled=False))

        result = harness.scrape()

        assert result.error_code == "configuration_missing"
        assert "disabled" in result.errors[0]
        assert harness.driver.launches == 0

    def test_unmatched_url_has_no_configuration(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)

        result = harness.scrape(url="https://unknown.example/page")

        assert result.error_code == "configuration_missing"
        assert harness.driver.launches == 0

    def test_explicit_config_name_bypasses_matching(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)

        result = harness.scrape(url="https://mirror.example/listing", config_name="events")

        assert result.success is True
        assert ("goto", "https://mirror.example/listing") in harness.driver.last_page.calls

    def test_invalid_url_is_rejected(self, tmp_path: Path) -> None:
        result = _harness(tmp_path).scrape(url="javascript:alert(1)")
        assert result.error_code == "invalid_url"

    def test_browser_launch_failure(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, launch_error=RuntimeError("no chromium"))

        result = harness.scrape()

        assert result.error_code == "browser_launch_failed"
        assert "no chromium" in result.errors[0]


# ---------------------------------------------------------------------------
# Instruction and extraction failures
# ---------------------------------------------------------------------------


class TestExecutionFailures:
    def test_required_instruction_failure_fails_scrape(self, tmp_path: Path) -> None:
        harness = _harness(
            tmp_path,
            page_builder=lambda: FakePage(html=PAGE_HTML, missing_selectors={"#cookie", ".event"}),
        )

        result = harness.scrape()

        assert result.success is False
        assert result.error_code == "instruction_failed"
        assert result.errors
        assert result.data == {}
        assert harness.driver.browsers[0].closed

    def test_required_extractor_without_match_names_it(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, page_builder=lambda: FakePage(html="<div class='event'>A</div>"))

        result = harness.scrape()

        assert result.success is False
        assert result.error_code == "extraction_failed"
        assert len(result.errors) == 1
        assert '"title"' in result.errors[0]

    def test_error_screenshot_when_configured(self, tmp_path: Path) -> None:
        harness = _harness(
            tmp_path,
            config=_config(options={"screenshotOnError": True}),
            page_builder=lambda: FakePage(html="<p>empty</p>"),
        )

        result = harness.scrape()

        assert result.success is False
        assert result.metadata.screenshot_taken is True
        assert any(path.name.startswith("error-") for path in harness.screenshot_dir.iterdir())


# ---------------------------------------------------------------------------
# Overrides, frames and screenshots
# ---------------------------------------------------------------------------


class TestRequestOverridesAndFrames:
    def test_request_actions_and_extractors_override_config(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)
        actions = (Instruction(step=1, action=ActionKind.SCROLL, description="Scroll down"),)
        extractors = (Extractor(name="first", selector=".event"),)

        result = harness.scrape(actions=actions, extractors=extractors)

        assert result.success is True
        assert result.data == {"first": "A"}
        assert result.metadata.instructions_executed == 2
        assert harness.driver.last_page.calls[0] == ("goto", URL)

    def test_iframe_sections_are_merged(self, tmp_path: Path) -> None:
        frame = FakeFrame(url="https://tickets.example/widget", name="tickets", html="<h1>Tickets</h1>")
        harness = _harness(tmp_path, page_builder=lambda: FakePage(html=PAGE_HTML, frames=[frame]))

        result = harness.scrape()

        assert result.data["iframes"] == {
            "iframe_1": {
                "url": "https://tickets.example/widget",
                "name": "tickets",
                "data": {"title": "Tickets"},
            }
        }
        assert result.metadata.iframes_processed == 1

    def test_iframe_without_required_field_becomes_warning(self, tmp_path: Path) -> None:
        frame = FakeFrame(url="https://ads.example/", html="<p>ad</p>")
        harness = _harness(tmp_path, page_builder=lambda: FakePage(html=PAGE_HTML, frames=[frame]))

        result = harness.scrape()

        assert result.success is True
        assert "iframes" not in result.data
        assert any("iframe 1" in warning for warning in result.warnings)

    def test_request_can_disable_iframes(self, tmp_path: Path) -> None:
        frame = FakeFrame(url="https://tickets.example/widget", html="<h1>Tickets</h1>")
        harness = _harness(tmp_path, page_builder=lambda: FakePage(html=PAGE_HTML, frames=[frame]))

        result = harness.scrape(options=RequestOptions(include_iframes=False))

        assert "iframes" not in result.data
        assert result.metadata.iframes_processed == 0

    def test_nested_iframe_path(self, tmp_path: Path) -> None:
        def build_page() -> FakePage:
            inner = FakeFrame(url="https://tickets.example/inner", html="<h1>Seat map</h1>")
            outer = FakeFrame(url="https://tickets.example/outer", children={"iframe.inner": inner})
            page = FakePage(html=PAGE_HTML)
            page.main_frame.children = {"iframe#tickets": outer}
            return page

        harness = _harness(
            tmp_path,
            config=_config(options={"iframePath": ["iframe#tickets", "iframe.inner"], "includeIframes": False}),
            page_builder=build_page,
        )

        result = harness.scrape()

        assert result.data["nested_iframe"] == {"title": "Seat map"}

    def test_requested_screenshot_is_saved(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path)

        result = harness.scrape(options=RequestOptions(screenshot=True))

        assert result.metadata.screenshot_taken is True
        assert len(list(harness.screenshot_dir.glob("page-*.png"))) == 1

    def test_screenshot_on_error_also_captures_successful_pages(self, tmp_path: Path) -> None:
        harness = _harness(tmp_path, config=_config(options={"screenshotOnError": True}))

        result = harness.scrape()

        assert result.success is True
        assert result.metadata.screenshot_taken is True
        assert len(list(harness.screenshot_dir.glob("page-*.png"))) == 1


def test_bind_target_url_prepends_navigation_when_absent() -> None:
    steps = (Instruction(step=1, action=ActionKind.CLICK, target="#a", description="Click"),)

    bound = bind_target_url(steps, URL)

    assert bound[0].action is ActionKind.NAVIGATE
    assert bound[0].target == URL
    assert bound[1:] == steps


def test_bind_target_url_replaces_first_navigation_only() -> None:
    steps = (
        Instruction(step=1, action=ActionKind.NAVIGATE, target="https://a/", description="First"),
        Instruction(step=2, action=ActionKind.NAVIGATE, target="https://b/", description="Second"),
    )

    bound = bind_target_url(steps, URL)

    assert [step.target for step in bound] == [URL, "https://b/"]


@pytest.mark.parametrize("url", ["", "ftp://files.example/"])
def test_non_http_urls_never_launch(tmp_path: Path, url: str) -> None:
    harness = _harness(tmp_path)
    result = harness.scrape(url=url)
    assert result.success is False
    assert harness.driver.launches == 0
