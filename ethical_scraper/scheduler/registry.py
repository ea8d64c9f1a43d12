"""
JSON-file store for site registrations.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ethical_scraper.scheduler.models import (
    NotificationSettings,
    Priority,
    RegistrationError,
    RegistrationScrapingOptions,
    ScheduleState,
    SiteRegistration,
)
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


class JSONRegistrationStore:
    """
    One registration per `<sites_dir>/*.json` file; schedule state is written back in place.
    """

    def __init__(self, *, sites_dir: str | Path) -> None:
        self._sites_dir = Path(sites_dir)

    def load_all(self) -> list[SiteRegistration]:
        registrations: list[SiteRegistration] = []
        if not self._sites_dir.is_dir():
            log_event(logger, logging.WARNING, "registrations_dir_missing", path=self._sites_dir)
            return registrations

        for path in sorted(self._sites_dir.glob("*.json")):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
                registrations.append(parse_registration(raw, source_path=path))
            except (OSError, json.JSONDecodeError, RegistrationError) as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "registration_invalid",
                    path=path,
                    error=str(exc),
                )
        return registrations

    def load_enabled(self) -> list[SiteRegistration]:
        return [registration for registration in self.load_all() if registration.enabled]

    def save(self, registration: SiteRegistration) -> Path:
        path = registration.source_path or self._sites_dir / f"{registration.id}.json"
        document: dict[str, Any] = {}
        if path.exists():
            try:
                existing = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                existing = None
            if isinstance(existing, dict):
                document = existing

        registration.updated_at = datetime.now(timezone.utc)
        document.update(registration.to_dict())

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".json.tmp")
        temp_path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(path)
        registration.source_path = path
        log_event(logger, logging.DEBUG, "registration_saved", site_id=registration.id, path=path)
        return path


def parse_registration(raw: object, *, source_path: Path | None = None) -> SiteRegistration:
    """
    Convert one raw JSON document (camelCase keys) into a SiteRegistration.
    """

    if not isinstance(raw, dict):
        raise RegistrationError("Registration must be a JSON object.")

    site_id = _required_str(raw, "id")
    target_urls = raw.get("targetUrls")
    if not isinstance(target_urls, list) or not all(isinstance(url, str) for url in target_urls):
        raise RegistrationError(f"Registration '{site_id}': targetUrls must be a list of strings.")

    config_name = raw.get("configName")
    if not config_name and isinstance(raw.get("rulesPath"), str):
        config_name = Path(raw["rulesPath"]).stem
    if not isinstance(config_name, str) or not config_name.strip():
        raise RegistrationError(f"Registration '{site_id}' requires configName.")

    raw_priority = str(raw.get("priority") or "medium").lower()
    try:
        priority = Priority(raw_priority)
    except ValueError as exc:
        raise RegistrationError(
            f"Registration '{site_id}' has unknown priority {raw_priority!r}."
        ) from exc

    interval = raw.get("checkIntervalDays", 1)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise RegistrationError(f"Registration '{site_id}': checkIntervalDays must be positive.")

    timeout_minutes = raw.get("timeoutMinutes")
    if timeout_minutes is not None and (
        isinstance(timeout_minutes, bool)
        or not isinstance(timeout_minutes, (int, float))
        or timeout_minutes <= 0
    ):
        timeout_minutes = None

    notifications = _optional_object(raw, "notifications", site_id)
    scraping_options = _optional_object(raw, "scrapingOptions", site_id)
    schedule = _optional_object(raw, "schedule", site_id)

    return SiteRegistration(
        id=site_id,
        name=str(raw.get("name") or site_id),
        domain=str(raw.get("domain") or ""),
        target_urls=[url.strip() for url in target_urls if url.strip()],
        config_name=config_name.strip(),
        check_interval_days=float(interval),
        enabled=bool(raw.get("enabled", True)),
        priority=priority,
        timeout_minutes=float(timeout_minutes) if timeout_minutes is not None else None,
        tags=_string_items(raw.get("tags")),
        notifications=NotificationSettings(
            on_new_content=bool(notifications.get("onNewContent", True)),
            on_error=bool(notifications.get("onError", True)),
            webhook_url=notifications.get("webhookUrl") or None,
            email_recipients=tuple(_string_items(notifications.get("emailRecipients"))),
        ),
        scraping_options=RegistrationScrapingOptions(
            include_iframes=bool(scraping_options.get("includeIframes", True)),
            take_screenshots=bool(scraping_options.get("takeScreenshots", False)),
        ),
        schedule=ScheduleState(
            next_check_at=parse_timestamp(schedule.get("nextCheckAt")),
            last_checked_at=parse_timestamp(schedule.get("lastCheckedAt")),
            last_success_at=parse_timestamp(schedule.get("lastSuccessAt")),
            consecutive_failures=_counter(schedule, "consecutiveFailures", site_id),
            total_runs=_counter(schedule, "totalRuns", site_id),
        ),
        created_at=parse_timestamp(raw.get("createdAt")),
        updated_at=parse_timestamp(raw.get("updatedAt")),
        source_path=source_path,
    )


def parse_timestamp(value: object) -> datetime | None:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.
    """

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _required_str(entry: dict, key: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RegistrationError(f"Registration field '{key}' must be a non-empty string.")
    return value.strip()


def _optional_object(entry: dict, key: str, site_id: str) -> dict:
    value = entry.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RegistrationError(f"Registration '{site_id}': {key} must be an object.")
    return value


def _counter(schedule: dict, key: str, site_id: str) -> int:
    value = schedule.get(key)
    if value is None:
        return 0
    if isinstance(value, bool):
        raise RegistrationError(f"Registration '{site_id}': schedule.{key} must be a number.")
    try:
        return max(0, int(value))
    except (TypeError, ValueError) as exc:
        raise RegistrationError(
            f"Registration '{site_id}': schedule.{key} must be a number."
        ) from exc


def _string_items(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]
