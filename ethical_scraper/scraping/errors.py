"""
Scraping failure taxonomy.

Every failure the orchestrator can surface is a ``ScrapeError`` subclass with a
stable ``code``. The orchestrator converts them into structured failure results.
"""

from __future__ import annotations


class ScrapeError(Exception):
    """Base exception for scrape failures."""

    code = "scrape_failed"

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PolicyBlocked(ScrapeError):
    """Raised when robots.txt disallows the URL for the engine user agent."""

    code = "policy_blocked"


class ConfigurationMissing(ScrapeError):
    """Raised when no enabled site configuration applies to the URL."""

    code = "configuration_missing"


class InstructionFailed(ScrapeError):
    """Raised when a required instruction fails."""

    code = "instruction_failed"


class ExtractionFailed(InstructionFailed):
    """Raised when a required extractor yields nothing."""

    code = "extraction_failed"


class BrowserLaunchFailed(ScrapeError):
    """Raised when the browser process or page cannot be created."""

    code = "browser_launch_failed"


class NetworkFetchFailed(ScrapeError):
    """Raised when page navigation fails at the network level."""

    code = "network_fetch_failed"


class InvalidTargetURL(ScrapeError):
    """Raised when the requested URL is not an absolute http(s) URL."""

    code = "invalid_url"


class SiteConfigError(ValueError):
    """Raised when a site configuration document is malformed."""
