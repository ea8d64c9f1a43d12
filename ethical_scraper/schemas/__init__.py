"""
HTTP request and response schemas.
"""

from ethical_scraper.schemas.scheduler import (
    HealthResponse,
    SchedulerActionResponse,
    SchedulerStatusResponse,
)
from ethical_scraper.schemas.scraping import (
    CacheClearResponse,
    CacheStatsResponse,
    ScrapeRequestPayload,
    ScrapeResultResponse,
)

__all__ = [
    "CacheClearResponse",
    "CacheStatsResponse",
    "HealthResponse",
    "SchedulerActionResponse",
    "SchedulerStatusResponse",
    "ScrapeRequestPayload",
    "ScrapeResultResponse",
]
