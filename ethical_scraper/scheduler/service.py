"""
ethical_scraper/scheduler/service.py

APScheduler-based periodic scraper for registered sites.

Tick
----
Every ``run_interval_minutes`` the scheduler loads enabled registrations,
keeps the ones whose ``next_check_at`` has passed, orders them by priority
(high, medium, low) and then by how long they have been due, and launches
jobs while fewer than ``max_concurrent_jobs`` are running. Sites that do not
fit are left untouched and picked up by a later tick.

Job
---
A job scrapes each target URL of its site in turn through the orchestrator,
hashes the extracted data to detect changes, persists every successful result
and notifies on new content. One URL failing never aborts the job; the job
fails when all URLs fail or a job-level error or timeout occurs.

Lifecycle
---------
``start()`` arms the interval trigger and runs one tick immediately.
``stop()`` disarms it, waits up to ``stop_grace_seconds`` for in-flight jobs
and abandons the rest (status ``cancelled``). Abandonment is cooperative; a
browser call already in progress is not interrupted.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ethical_scraper.config import SchedulerSettings
from ethical_scraper.scheduler.models import JobStatus, ScrapeJob, SiteRegistration, new_job_id
from ethical_scraper.scheduler.notifications import ERROR, NEW_CONTENT, LoggingNotifier
from ethical_scraper.scheduler.registry import JSONRegistrationStore
from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.orchestrator import ScrapeOrchestrator
from ethical_scraper.scraping.storage import ResultStorage, StoredResult
from ethical_scraper.scraping.types import RequestOptions, ScrapeRequest

logger = logging.getLogger(__name__)

TICK_JOB_ID = "scrape_tick"


def generate_content_hash(data: Any) -> str:
    """
    Deterministic md5 hex digest over sorted-key JSON.
    """

    encoded = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def count_items(data: dict[str, Any]) -> int:
    return sum(len(value) if isinstance(value, (list, dict)) else 1 for value in data.values())


@dataclass
class _RunningJob:
    job: ScrapeJob
    registration: SiteRegistration
    task: asyncio.Task


class ScrapeScheduler:
    """
    Construct, ``start()``, ``stop()``. All methods run on the event loop.
    """

    def __init__(
        self,
        *,
        orchestrator: ScrapeOrchestrator,
        registrations: JSONRegistrationStore,
        storage: ResultStorage,
        settings: SchedulerSettings | None = None,
        notifier: LoggingNotifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._registrations = registrations
        self._storage = storage
        self._settings = settings or SchedulerSettings()
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._scheduler: AsyncIOScheduler | None = None
        self._running: dict[str, _RunningJob] = {}
        # Strong references to abandoned tasks so they are not garbage collected mid-run.
        self._abandoned: set[asyncio.Task] = set()

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        if self._scheduler is not None:
            log_event(logger, logging.INFO, "scheduler_already_running")
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self.run_tick,
            trigger="interval",
            minutes=self._settings.run_interval_minutes,
            id=TICK_JOB_ID,
            name="Periodic site scrape tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        scheduler.start()
        self._scheduler = scheduler
        log_event(
            logger,
            logging.INFO,
            "scheduler_started",
            run_interval_minutes=self._settings.run_interval_minutes,
            max_concurrent_jobs=self._settings.max_concurrent_jobs,
        )
        await self.run_tick()

    async def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            log_event(logger, logging.INFO, "scheduler_disarmed")

        pending = [entry.task for entry in self._running.values() if not entry.task.done()]
        if pending:
            log_event(
                logger,
                logging.INFO,
                "scheduler_waiting_for_jobs",
                jobs=len(pending),
                grace_seconds=self._settings.stop_grace_seconds,
            )
            await asyncio.wait(pending, timeout=self._settings.stop_grace_seconds)

        for job_id, entry in list(self._running.items()):
            if entry.task.done():
                continue
            entry.job.status = JobStatus.CANCELLED
            entry.job.errors.append("Abandoned at scheduler shutdown")
            self._abandoned.add(entry.task)
            entry.task.add_done_callback(self._abandoned.discard)
            del self._running[job_id]
            log_event(
                logger,
                logging.WARNING,
                "job_abandoned",
                job_id=job_id,
                site_id=entry.job.site_id,
            )

        log_event(logger, logging.INFO, "scheduler_stopped")

    # ---------------------------------------------------------------------------
    # Tick
    # ---------------------------------------------------------------------------

    async def run_tick(self) -> list[ScrapeJob]:
        """
        Launch jobs for due registrations up to the concurrency cap.
        """

        now = self._clock()
        registrations = await asyncio.to_thread(self._registrations.load_enabled)
        busy_sites = {entry.job.site_id for entry in self._running.values()}
        due = sorted(
            (
                registration
                for registration in registrations
                if registration.is_due(now) and registration.id not in busy_sites
            ),
            key=lambda registration: (registration.priority.rank, registration.due_at()),
        )

        created: list[ScrapeJob] = []
        for registration in due:
            if len(self._running) >= self._settings.max_concurrent_jobs:
                break
            job = ScrapeJob(id=new_job_id(), site_id=registration.id, created_at=now)
            task = asyncio.create_task(self._run_job(job, registration), name=job.id)
            self._running[job.id] = _RunningJob(job=job, registration=registration, task=task)
            task.add_done_callback(partial(self._on_job_done, job.id))
            created.append(job)

        log_event(
            logger,
            logging.INFO,
            "scheduler_tick",
            registrations=len(registrations),
            due=len(due),
            launched=len(created),
            deferred=len(due) - len(created),
            running=len(self._running),
        )
        return created

    # ---------------------------------------------------------------------------
    # Job execution
    # ---------------------------------------------------------------------------

    async def _run_job(self, job: ScrapeJob, registration: SiteRegistration) -> ScrapeJob:
        started = time.monotonic()
        now = self._clock()
        job.status = JobStatus.RUNNING
        job.started_at = now
        self._job_log(job, f"Job started for {registration.name} ({len(registration.target_urls)} URLs)")

        schedule = registration.schedule
        schedule.total_runs += 1
        schedule.last_checked_at = now
        schedule.next_check_at = now + registration.check_interval
        await self._save_registration(registration)

        timeout_minutes = registration.timeout_minutes or self._settings.global_timeout_minutes
        job_error: str | None = None
        try:
            await asyncio.wait_for(
                self._scrape_targets(job, registration),
                timeout=timeout_minutes * 60,
            )
        except asyncio.TimeoutError:
            job_error = f"Job timed out after {timeout_minutes} minutes"
        except Exception as exc:
            logger.exception("Scheduler: job %s failed for site %s", job.id, registration.id)
            job_error = f"Job failed: {exc}"

        if job_error is not None:
            job.errors.append(job_error)

        finished = self._clock()
        job.finished_at = finished
        job.processing_time_ms = int((time.monotonic() - started) * 1000)

        if job.status is JobStatus.CANCELLED:
            self._job_log(job, "Abandoned job finished after shutdown")
            return job

        all_failed = job.results.urls_scraped == 0
        if job_error is not None or all_failed:
            job.status = JobStatus.FAILED
            schedule.consecutive_failures += 1
            if registration.notifications.on_error:
                self._notifier.notify(
                    registration,
                    ERROR,
                    {"job_id": job.id, "errors": list(job.errors)},
                )
        else:
            job.status = JobStatus.COMPLETED
            schedule.consecutive_failures = 0
            schedule.last_success_at = finished

        schedule.next_check_at = finished + registration.check_interval
        await self._save_registration(registration)

        log_event(
            logger,
            logging.INFO if job.status is JobStatus.COMPLETED else logging.WARNING,
            "job_finished",
            job_id=job.id,
            site_id=registration.id,
            status=job.status.value,
            urls_scraped=job.results.urls_scraped,
            errors_encountered=job.results.errors_encountered,
            new_content_found=job.results.new_content_found,
            processing_time_ms=job.processing_time_ms,
        )
        return job

    async def _scrape_targets(self, job: ScrapeJob, registration: SiteRegistration) -> None:
        if not registration.target_urls:
            raise ValueError("Registration has no target URLs")

        url_hashes: dict[str, str] = {}
        for url in registration.target_urls:
            try:
                content_hash = await self._scrape_url(job, registration, url)
            except (OSError, ValueError) as exc:
                job.results.errors_encountered += 1
                job.errors.append(f"{url}: {exc}")
                self._job_log(job, f"Failed to persist result for {url}: {exc}")
                continue
            if content_hash is not None:
                url_hashes[url] = content_hash

        if url_hashes:
            job.results.data_hash = generate_content_hash(url_hashes)

    async def _scrape_url(self, job: ScrapeJob, registration: SiteRegistration, url: str) -> str | None:
        request = ScrapeRequest(
            url=url,
            options=RequestOptions(
                include_iframes=registration.scraping_options.include_iframes,
                screenshot=registration.scraping_options.take_screenshots,
            ),
            use_cache=False,
            config_name=registration.config_name,
        )
        result = await self._orchestrator.scrape(request)
        if not result.success:
            job.results.errors_encountered += 1
            job.errors.extend(f"{url}: {error}" for error in result.errors)
            self._job_log(job, f"Scrape failed for {url} ({result.error_code})")
            return None

        content_hash = generate_content_hash(result.data)
        previous_hash = await self._storage.latest_content_hash(registration.id, url)
        is_new_content = previous_hash != content_hash

        await self._storage.save(
            StoredResult(
                job_id=job.id,
                site_id=registration.id,
                url=url,
                success=True,
                data=result.data,
                content_hash=content_hash,
                is_new_content=is_new_content,
                metadata=result.metadata.to_dict(),
                extracted_at=result.extracted_at,
            )
        )

        job.results.urls_scraped += 1
        job.results.items_extracted += count_items(result.data)
        self._job_log(job, f"Scraped {url} (new content: {is_new_content})")
        if is_new_content:
            job.results.new_content_found = True
            if registration.notifications.on_new_content:
                self._notifier.notify(
                    registration,
                    NEW_CONTENT,
                    {"job_id": job.id, "url": url, "content_hash": content_hash},
                )
        return content_hash

    async def _save_registration(self, registration: SiteRegistration) -> None:
        try:
            await asyncio.to_thread(self._registrations.save, registration)
        except OSError as exc:
            log_event(
                logger,
                logging.ERROR,
                "registration_save_failed",
                site_id=registration.id,
                error=str(exc),
            )

    def _on_job_done(self, job_id: str, task: asyncio.Task) -> None:
        self._running.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            log_event(
                logger,
                logging.ERROR,
                "job_crashed",
                job_id=job_id,
                error=str(task.exception()),
            )

    @staticmethod
    def _job_log(job: ScrapeJob, message: str) -> None:
        job.logs.append(f"[{datetime.now(timezone.utc).isoformat()}] {message}")
        log_event(logger, logging.DEBUG, "job_log", job_id=job.id, message=message)

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    def running_jobs(self) -> list[ScrapeJob]:
        return [entry.job for entry in self._running.values()]

    def status(self) -> dict[str, Any]:
        next_tick_at = None
        if self._scheduler is not None:
            tick = self._scheduler.get_job(TICK_JOB_ID)
            if tick is not None:
                next_tick_at = tick.next_run_time
        return {
            "is_running": self.is_running,
            "active_jobs": len(self._running),
            "active_job_ids": sorted(self._running),
            "next_tick_at": next_tick_at,
            "config": {
                "run_interval_minutes": self._settings.run_interval_minutes,
                "max_concurrent_jobs": self._settings.max_concurrent_jobs,
                "global_timeout_minutes": self._settings.global_timeout_minutes,
                "stop_grace_seconds": self._settings.stop_grace_seconds,
                "sites_dir": self._settings.sites_dir,
                "results_dir": self._settings.results_dir,
            },
        }

    generate_content_hash = staticmethod(generate_content_hash)
