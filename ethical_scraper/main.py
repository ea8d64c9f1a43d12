"""
ASGI application factory.

Serve with `uvicorn --factory ethical_scraper.main:create_app`; importing this
module builds no services.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request

from ethical_scraper.config import get_api_settings, load_env_files
from ethical_scraper.scheduler import ScrapeScheduler
from ethical_scraper.schemas.scheduler import HealthResponse
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator
from ethical_scraper.scraping.rate_limiter import FixedWindowRateLimiter
from ethical_scraper.services import build_orchestrator, build_scheduler


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Stop the scheduler (if it was started over HTTP) on shutdown."""
    try:
        yield
    finally:
        scheduler: ScrapeScheduler = application.state.scheduler
        await scheduler.stop()
        logging.getLogger(__name__).info("Scheduler shut down")


def create_app(
    *,
    orchestrator: ScrapeOrchestrator | None = None,
    scheduler: ScrapeScheduler | None = None,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Services are built from environment settings unless injected.
    """

    load_env_files()
    _configure_logging()

    orchestrator = orchestrator or build_orchestrator()
    scheduler = scheduler or build_scheduler(orchestrator)
    if rate_limiter is None:
        api_settings = get_api_settings()
        rate_limiter = FixedWindowRateLimiter(
            max_requests=api_settings.rate_limit_max_requests,
            window_seconds=api_settings.rate_limit_window_seconds,
        )

    application = FastAPI(
        title="Ethical Scraper API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.orchestrator = orchestrator
    application.state.scheduler = scheduler
    application.state.rate_limiter = rate_limiter

    from ethical_scraper.api.routers import scheduler_router, scraping_router

    application.include_router(scraping_router)
    application.include_router(scheduler_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck(request: Request) -> HealthResponse:
        return HealthResponse(
            status="ok",
            scheduler_running=request.app.state.scheduler.is_running,
            timestamp=datetime.now(timezone.utc),
        )

    return application
