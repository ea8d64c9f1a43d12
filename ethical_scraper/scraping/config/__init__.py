"""
Site configuration loading and URL matching.
"""

from ethical_scraper.scraping.config.loader import SiteConfigLoader, parse_site_config
from ethical_scraper.scraping.config.matcher import SiteMatcher, SiteMatcherService
from ethical_scraper.scraping.config.models import (
    ActionKind,
    Extractor,
    Instruction,
    SiteConfig,
    SiteOptions,
    Transform,
    WaitCondition,
)

__all__ = [
    "ActionKind",
    "Extractor",
    "Instruction",
    "SiteConfig",
    "SiteConfigLoader",
    "SiteMatcher",
    "SiteMatcherService",
    "SiteOptions",
    "Transform",
    "WaitCondition",
    "parse_site_config",
]
