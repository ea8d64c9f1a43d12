"""
ethical_scraper/schemas/scraping.py

Request and response schemas for scrape and cache endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base model exchanging camelCase JSON while exposing snake_case attributes.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapeOptionsPayload(CamelModel):
    include_iframes: bool | None = None
    screenshot: bool | None = None
    use_cache: bool = True
    cache_ttl: int | None = Field(default=None, ge=1, alias="cacheTTL")


class ScrapeRequestPayload(CamelModel):
    """
    One-off scrape request. Actions and extractors use the site configuration
    vocabulary and replace the matched configuration's lists when non-empty.
    """

    url: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)
    extractors: list[dict[str, Any]] = Field(default_factory=list)
    options: ScrapeOptionsPayload = Field(default_factory=ScrapeOptionsPayload)


class ScrapeMetadataResponse(CamelModel):
    processing_time_ms: int = Field(..., ge=0)
    instructions_executed: int = Field(..., ge=0)
    extractors_run: int = Field(..., ge=0)
    iframes_processed: int = Field(..., ge=0)
    screenshot_taken: bool
    cache_used: bool
    robots_txt_checked: bool
    robots_txt_uncertain: bool
    user_agent: str | None = None
    final_url: str | None = None
    memory_usage: int = 0
    config_name: str | None = None


class ScrapeResultResponse(CamelModel):
    url: str
    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: ScrapeMetadataResponse
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error_code: str | None = None
    extracted_at: datetime


class CacheStatsResponse(CamelModel):
    size: int = Field(..., ge=0)
    urls: list[str] = Field(default_factory=list)
    total_hits: int = Field(..., ge=0)


class CacheClearResponse(CamelModel):
    message: str
    cleared: int = Field(..., ge=0)
