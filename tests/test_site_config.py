"""
tests/test_site_config.py

Site configuration parsing, loading and URL matching.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ethical_scraper.scraping.config import (
    ActionKind,
    SiteConfigLoader,
    SiteMatcher,
    SiteMatcherService,
    Transform,
    WaitCondition,
    parse_site_config,
)
from ethical_scraper.scraping.config.matcher import normalize_url, wildcard_match
from ethical_scraper.scraping.errors import SiteConfigError


def _document(**overrides) -> dict:
    document = {
        "name": "News Site",
        "domain": "News.example.com",
        "enabled": True,
        "instructions": [
            {"step": 1, "action": "navigate", "description": "Open page"},
            {
                "step": 2,
                "action": "click",
                "target": "#accept",
                "description": "Accept cookies",
                "optional": True,
                "waitFor": "navigation",
            },
        ],
        "extractors": [
            {"name": "title", "selector": "h1", "required": True, "transform": "trim"},
            {"name": "links", "selector": "a", "attribute": "href", "multiple": True},
        ],
        "options": {"politenessDelay": 2500, "viewport": {"width": 800, "height": 600}},
    }
    document.update(overrides)
    return document


def _write(config_dir: Path, name: str, document: dict | str) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    text = document if isinstance(document, str) else json.dumps(document)
    (config_dir / f"{name}.json").write_text(text, encoding="utf-8")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseSiteConfig:
    def test_parses_instructions_extractors_and_options(self) -> None:
        config = parse_site_config(_document(), source="news")

        assert config.domain == "news.example.com"
        assert [item.action for item in config.instructions] == [ActionKind.NAVIGATE, ActionKind.CLICK]
        assert config.instructions[1].optional is True
        assert config.instructions[1].wait_for is WaitCondition.NAVIGATION
        assert config.extractors[0].transform is Transform.TRIM
        assert config.extractors[0].attribute == "textContent"
        assert config.extractors[1].multiple is True
        assert config.options.politeness_delay_ms == 2500
        assert (config.options.viewport.width, config.options.viewport.height) == (800, 600)
        assert config.options.headless is True
        assert config.options.include_iframes is True

    def test_config_is_frozen(self) -> None:
        config = parse_site_config(_document(), source="news")
        with pytest.raises((AttributeError, TypeError)):
            config.enabled = False  # type: ignore[misc]

    def test_missing_required_fields_are_listed(self) -> None:
        document = _document()
        del document["options"]
        del document["enabled"]

        with pytest.raises(SiteConfigError, match="enabled, options"):
            parse_site_config(document, source="news")

    def test_instruction_without_description_is_rejected(self) -> None:
        document = _document(instructions=[{"action": "navigate"}])
        with pytest.raises(SiteConfigError, match="description"):
            parse_site_config(document, source="news")

    def test_unknown_action_is_rejected(self) -> None:
        document = _document(instructions=[{"action": "hover", "description": "Hover"}])
        with pytest.raises(SiteConfigError, match="unknown action"):
            parse_site_config(document, source="news")

    def test_extractor_requires_name_and_selector(self) -> None:
        document = _document(extractors=[{"name": "title"}])
        with pytest.raises(SiteConfigError, match="name and selector"):
            parse_site_config(document, source="news")

    def test_unknown_transform_is_rejected(self) -> None:
        document = _document(extractors=[{"name": "t", "selector": "h1", "transform": "reverse"}])
        with pytest.raises(SiteConfigError, match="transform"):
            parse_site_config(document, source="news")

    def test_negative_politeness_delay_is_clamped(self) -> None:
        config = parse_site_config(_document(options={"politenessDelay": -50}), source="news")
        assert config.options.politeness_delay_ms == 0


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TestSiteConfigLoader:
    def test_load_config_caches_and_reloads(self, tmp_path: Path) -> None:
        _write(tmp_path, "news", _document())
        loader = SiteConfigLoader(config_dir=tmp_path)

        first = loader.load_config("news")
        _write(tmp_path, "news", _document(name="Renamed"))
        cached = loader.load_config("news")
        reloaded = loader.reload_config("news")

        assert first is cached
        assert reloaded is not None and reloaded.name == "Renamed"
        assert loader.cache_stats() == {"size": 1, "configs": ["news"]}

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        loader = SiteConfigLoader(config_dir=tmp_path)
        assert loader.load_config("absent") is None

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        _write(tmp_path, "broken", "{not json")
        loader = SiteConfigLoader(config_dir=tmp_path)
        with pytest.raises(SiteConfigError):
            loader.load_config("broken")

    def test_load_all_skips_invalid_files(self, tmp_path: Path) -> None:
        _write(tmp_path, "news", _document())
        _write(tmp_path, "broken", {"name": "only a name"})
        loader = SiteConfigLoader(config_dir=tmp_path)

        loaded = loader.load_all()

        assert list(loaded) == ["news"]
        assert loader.available_configs() == ["broken", "news"]
        assert loader.clear_cache() == 1


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def test_wildcard_match_is_case_insensitive_and_full() -> None:
    assert wildcard_match("https://www.BBC.co.uk/news/world", "*.bbc.co.uk/news/*")
    assert not wildcard_match("https://www.bbc.co.uk/sport/x", "*.bbc.co.uk/news/*")
    assert wildcard_match("a.b+c", "a.b+c")
    assert not wildcard_match("axb+c", "a.b+c")


def test_normalize_url_rejects_non_http() -> None:
    assert normalize_url("ftp://example.com/file") is None
    assert normalize_url("not a url") is None
    assert normalize_url("https://Example.com") == "https://example.com/"


class TestSiteMatcherService:
    @pytest.fixture()
    def matcher(self, tmp_path: Path) -> SiteMatcherService:
        _write(tmp_path, "news", _document(urlPatterns=["*://news.example.com/articles/*"], priority=10))
        _write(tmp_path, "shop", _document(name="Shop", domain="shop.example.com", priority=5))
        loader = SiteConfigLoader(config_dir=tmp_path)
        return SiteMatcherService(loader=loader, fallback_config="generic")

    def test_matches_declared_pattern(self, matcher: SiteMatcherService) -> None:
        assert matcher.find_config_for_url("https://news.example.com/articles/1") == "news"

    def test_domain_patterns_cover_subdomains(self, matcher: SiteMatcherService) -> None:
        assert matcher.find_config_for_url("https://shop.example.com/cart") == "shop"
        assert matcher.find_config_for_url("https://eu.shop.example.com/cart") == "shop"

    def test_unmatched_url_uses_fallback(self, matcher: SiteMatcherService) -> None:
        assert matcher.find_config_for_url("https://other.org/") == "generic"

    def test_invalid_url_matches_nothing(self, matcher: SiteMatcherService) -> None:
        assert matcher.find_config_for_url("mailto:someone@example.com") is None

    def test_runtime_matcher_wins_by_priority(self, matcher: SiteMatcherService) -> None:
        matcher.add_matcher(SiteMatcher(pattern="*://news.example.com/*", config_name="override", priority=50))
        assert matcher.find_config_for_url("https://news.example.com/articles/1") == "override"

        assert matcher.remove_matcher("*://news.example.com/*") is True
        assert matcher.find_config_for_url("https://news.example.com/articles/1") == "news"

    def test_test_url_reports_each_pattern(self, matcher: SiteMatcherService) -> None:
        report = matcher.test_url("https://news.example.com/articles/1")
        matching = {entry["config_name"] for entry in report if entry["matches"]}
        assert matching == {"news"}
