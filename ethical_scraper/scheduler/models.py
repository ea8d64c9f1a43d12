"""
Scheduler-owned data models: site registrations and scrape jobs.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

_JOB_ID_ALPHABET = string.ascii_lowercase + string.digits


class RegistrationError(ValueError):
    """Raised when a site registration document is malformed."""


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}[self]


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class NotificationSettings:
    on_new_content: bool = True
    on_error: bool = True
    webhook_url: str | None = None
    email_recipients: tuple[str, ...] = ()


@dataclass(frozen=True)
class RegistrationScrapingOptions:
    include_iframes: bool = True
    take_screenshots: bool = False


@dataclass
class ScheduleState:
    next_check_at: datetime | None = None
    last_checked_at: datetime | None = None
    last_success_at: datetime | None = None
    consecutive_failures: int = 0
    total_runs: int = 0


@dataclass
class SiteRegistration:
    """
    A monitored site: which URLs to revisit, how often, and with which
    site configuration. Schedule state is mutated after every job attempt.
    """

    id: str
    name: str
    domain: str
    target_urls: list[str]
    config_name: str
    check_interval_days: float = 1.0
    enabled: bool = True
    priority: Priority = Priority.MEDIUM
    timeout_minutes: float | None = None
    tags: list[str] = field(default_factory=list)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    scraping_options: RegistrationScrapingOptions = field(
        default_factory=RegistrationScrapingOptions
    )
    schedule: ScheduleState = field(default_factory=ScheduleState)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    source_path: Path | None = field(default=None, compare=False, repr=False)

    def is_due(self, now: datetime) -> bool:
        next_check_at = self.schedule.next_check_at
        return next_check_at is None or now >= next_check_at

    def due_at(self) -> datetime:
        return self.schedule.next_check_at or datetime.min.replace(tzinfo=timezone.utc)

    @property
    def check_interval(self) -> timedelta:
        return timedelta(days=self.check_interval_days)

    def to_dict(self) -> dict[str, Any]:
        schedule = self.schedule
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "targetUrls": list(self.target_urls),
            "configName": self.config_name,
            "checkIntervalDays": self.check_interval_days,
            "enabled": self.enabled,
            "priority": self.priority.value,
            "timeoutMinutes": self.timeout_minutes,
            "tags": list(self.tags),
            "notifications": {
                "onNewContent": self.notifications.on_new_content,
                "onError": self.notifications.on_error,
                "webhookUrl": self.notifications.webhook_url,
                "emailRecipients": list(self.notifications.email_recipients),
            },
            "scrapingOptions": {
                "includeIframes": self.scraping_options.include_iframes,
                "takeScreenshots": self.scraping_options.take_screenshots,
            },
            "schedule": {
                "lastCheckedAt": _iso(schedule.last_checked_at),
                "nextCheckAt": _iso(schedule.next_check_at),
                "lastSuccessAt": _iso(schedule.last_success_at),
                "consecutiveFailures": schedule.consecutive_failures,
                "totalRuns": schedule.total_runs,
            },
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class JobResults:
    urls_scraped: int = 0
    items_extracted: int = 0
    errors_encountered: int = 0
    new_content_found: bool = False
    data_hash: str | None = None


@dataclass
class ScrapeJob:
    id: str
    site_id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    processing_time_ms: int | None = None
    errors: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    results: JobResults = field(default_factory=JobResults)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "processingTimeMs": self.processing_time_ms,
            "errors": list(self.errors),
            "logs": list(self.logs),
            "results": {
                "urlsScraped": self.results.urls_scraped,
                "itemsExtracted": self.results.items_extracted,
                "errorsEncountered": self.results.errors_encountered,
                "newContentFound": self.results.new_content_found,
                "dataHash": self.results.data_hash,
            },
        }


def new_job_id() -> str:
    suffix = "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(6))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
