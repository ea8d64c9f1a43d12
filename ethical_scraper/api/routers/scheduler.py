"""
ethical_scraper/api/routers/scheduler.py

Scheduler lifecycle endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ethical_scraper.api.dependencies import get_scheduler
from ethical_scraper.scheduler import ScrapeScheduler
from ethical_scraper.schemas.scheduler import SchedulerActionResponse, SchedulerStatusResponse

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.post("/start", response_model=SchedulerActionResponse)
async def start_scheduler(
    scheduler: ScrapeScheduler = Depends(get_scheduler),
) -> SchedulerActionResponse:
    await scheduler.start()
    return SchedulerActionResponse(
        message="Scheduler started successfully",
        status=SchedulerStatusResponse.model_validate(scheduler.status()),
    )


@router.post("/stop", response_model=SchedulerActionResponse)
async def stop_scheduler(
    scheduler: ScrapeScheduler = Depends(get_scheduler),
) -> SchedulerActionResponse:
    await scheduler.stop()
    return SchedulerActionResponse(
        message="Scheduler stopped successfully",
        status=SchedulerStatusResponse.model_validate(scheduler.status()),
    )


@router.get("/status", response_model=SchedulerStatusResponse)
def scheduler_status(
    scheduler: ScrapeScheduler = Depends(get_scheduler),
) -> SchedulerStatusResponse:
    return SchedulerStatusResponse.model_validate(scheduler.status())
