"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from ethical_scraper.scraping.config.models import Extractor, Instruction


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class RequestOptions:
    """
    Request-level overrides; None defers to the site configuration.
    """

    include_iframes: bool | None = None
    screenshot: bool | None = None


@dataclass(frozen=True)
class ScrapeRequest:
    url: str
    actions: tuple[Instruction, ...] | None = None
    extractors: tuple[Extractor, ...] | None = None
    options: RequestOptions = field(default_factory=RequestOptions)
    use_cache: bool = True
    cache_ttl_seconds: int = 300
    config_name: str | None = None


@dataclass(frozen=True)
class ScrapeMetadata:
    processing_time_ms: int = 0
    instructions_executed: int = 0
    extractors_run: int = 0
    iframes_processed: int = 0
    screenshot_taken: bool = False
    cache_used: bool = False
    robots_txt_checked: bool = False
    robots_txt_uncertain: bool = False
    user_agent: str | None = None
    final_url: str | None = None
    memory_usage: int = 0
    config_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {to_camel(key): value for key, value in asdict(self).items()}


@dataclass(frozen=True)
class ScrapeResult:
    """
    Outcome of one scrape; serialized with camelCase keys.
    """

    url: str
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    metadata: ScrapeMetadata = field(default_factory=ScrapeMetadata)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error_code: str | None = None
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "success": self.success,
            "data": self.data,
            "metadata": self.metadata.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "errorCode": self.error_code,
            "extractedAt": self.extracted_at.isoformat(),
        }
