"""
ethical_scraper/api/dependencies.py

Shared FastAPI dependencies: service lookup from app state and rate limiting.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status

from ethical_scraper.scheduler import ScrapeScheduler
from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator
from ethical_scraper.scraping.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> ScrapeOrchestrator:
    return request.app.state.orchestrator


def get_scheduler(request: Request) -> ScrapeScheduler:
    return request.app.state.scheduler


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def enforce_scrape_rate_limit(
    request: Request,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> None:
    """
    Reject the request with 429 when the client IP exhausted its window.
    """

    client_key = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.hit(client_key)
    if allowed:
        return

    log_event(logger, logging.WARNING, "rate_limit_exceeded", client=client_key, retry_after=retry_after)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"error": "Rate limit exceeded", "retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)},
    )
