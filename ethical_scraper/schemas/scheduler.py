"""
ethical_scraper/schemas/scheduler.py

Response schemas for scheduler lifecycle endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from ethical_scraper.schemas.scraping import CamelModel


class SchedulerConfigResponse(CamelModel):
    run_interval_minutes: int = Field(..., ge=1)
    max_concurrent_jobs: int = Field(..., ge=1)
    global_timeout_minutes: int = Field(..., ge=1)
    stop_grace_seconds: float = Field(..., ge=0)
    sites_dir: str
    results_dir: str


class SchedulerStatusResponse(CamelModel):
    is_running: bool
    active_jobs: int = Field(..., ge=0)
    active_job_ids: list[str] = Field(default_factory=list)
    next_tick_at: datetime | None = None
    config: SchedulerConfigResponse


class SchedulerActionResponse(CamelModel):
    message: str
    status: SchedulerStatusResponse


class HealthResponse(CamelModel):
    status: str
    scheduler_running: bool
    timestamp: datetime
