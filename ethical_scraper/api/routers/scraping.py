"""
ethical_scraper/api/routers/scraping.py

One-off scrape and result cache endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ethical_scraper.api.dependencies import enforce_scrape_rate_limit, get_orchestrator
from ethical_scraper.config import get_scraper_settings
from ethical_scraper.schemas.scraping import (
    CacheClearResponse,
    CacheStatsResponse,
    ScrapeRequestPayload,
    ScrapeResultResponse,
)
from ethical_scraper.scraping.config.loader import parse_extractor, parse_instruction
from ethical_scraper.scraping.config.matcher import normalize_url
from ethical_scraper.scraping.errors import SiteConfigError
from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator
from ethical_scraper.scraping.types import RequestOptions, ScrapeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scrape", tags=["scraping"])


@router.post(
    "",
    response_model=ScrapeResultResponse,
    dependencies=[Depends(enforce_scrape_rate_limit)],
)
async def scrape(
    payload: ScrapeRequestPayload,
    orchestrator: ScrapeOrchestrator = Depends(get_orchestrator),
) -> ScrapeResultResponse:
    """
    Scrape one URL. Scrape failures are reported in the body, not as HTTP errors.
    """

    if not payload.url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="URL is required")
    if normalize_url(payload.url) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid URL format")

    try:
        actions = tuple(
            parse_instruction(entry, index=index)
            for index, entry in enumerate(payload.actions, start=1)
        )
        extractors = tuple(parse_extractor(entry) for entry in payload.extractors)
    except SiteConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    request = ScrapeRequest(
        url=payload.url.strip(),
        actions=actions or None,
        extractors=extractors or None,
        options=RequestOptions(
            include_iframes=payload.options.include_iframes,
            screenshot=payload.options.screenshot,
        ),
        use_cache=payload.options.use_cache,
        cache_ttl_seconds=payload.options.cache_ttl or get_scraper_settings().default_cache_ttl_seconds,
    )
    result = await orchestrator.scrape(request)
    log_event(
        logger,
        logging.INFO,
        "scrape_request_served",
        url=request.url,
        success=result.success,
        cache_used=result.metadata.cache_used,
    )
    return ScrapeResultResponse.model_validate(result.to_dict())


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats(
    orchestrator: ScrapeOrchestrator = Depends(get_orchestrator),
) -> CacheStatsResponse:
    return CacheStatsResponse.model_validate(orchestrator.cache_stats())


@router.delete("/cache", response_model=CacheClearResponse)
def clear_cache(
    orchestrator: ScrapeOrchestrator = Depends(get_orchestrator),
) -> CacheClearResponse:
    cleared = orchestrator.clear_cache()
    return CacheClearResponse(message="Cache cleared successfully", cleared=cleared)
