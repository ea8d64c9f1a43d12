"""
ethical_scraper/config.py

Environment-driven settings for the scraping engine, scheduler and HTTP layer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = _project_root()
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def resolve_path(raw_path: str) -> Path:
    """
    Resolve a configured path; relative paths are anchored at the project root.
    """

    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


@dataclass(frozen=True)
class ScraperSettings:
    """
    Runtime settings for the scrape orchestrator and its collaborators.
    """

    config_dir: str = "config/sites"
    fallback_config: str | None = "generic-article"
    robots_user_agent: str = "EthicalScraper/1.0"
    robots_timeout_seconds: float = 10.0
    robots_cache_ttl_seconds: float = 3600.0
    allow_when_robots_unreachable: bool = True
    default_cache_ttl_seconds: int = 300
    screenshot_dir: str = "screenshots"


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Runtime settings for the periodic scrape scheduler.
    """

    sites_dir: str = "config/registrations"
    results_dir: str = "scraping-results"
    run_interval_minutes: int = 1440
    max_concurrent_jobs: int = 3
    global_timeout_minutes: int = 30
    stop_grace_seconds: float = 300.0


@dataclass(frozen=True)
class APISettings:
    """
    Settings for the inbound HTTP surface.
    """

    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0


@lru_cache(maxsize=1)
def get_scraper_settings() -> ScraperSettings:
    """
    Return cached scraper settings from environment variables.
    """

    return ScraperSettings(
        config_dir=str(resolve_path(_get_str_env("SCRAPER_CONFIG_DIR", "config/sites"))),
        fallback_config=_get_optional_str_env("SCRAPER_FALLBACK_CONFIG") or "generic-article",
        robots_user_agent=_get_str_env("SCRAPER_ROBOTS_USER_AGENT", "EthicalScraper/1.0"),
        robots_timeout_seconds=max(1.0, _get_float_env("SCRAPER_ROBOTS_TIMEOUT_SECONDS", 10.0)),
        robots_cache_ttl_seconds=max(
            0.0,
            _get_float_env("SCRAPER_ROBOTS_CACHE_TTL_SECONDS", 3600.0),
        ),
        allow_when_robots_unreachable=_get_bool_env(
            "SCRAPER_ALLOW_WHEN_ROBOTS_UNREACHABLE",
            True,
        ),
        default_cache_ttl_seconds=max(1, _get_int_env("SCRAPER_DEFAULT_CACHE_TTL_SECONDS", 300)),
        screenshot_dir=str(resolve_path(_get_str_env("SCRAPER_SCREENSHOT_DIR", "screenshots"))),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return cached scheduler settings from environment variables.
    """

    return SchedulerSettings(
        sites_dir=str(resolve_path(_get_str_env("SCHEDULER_SITES_DIR", "config/registrations"))),
        results_dir=str(resolve_path(_get_str_env("SCHEDULER_RESULTS_DIR", "scraping-results"))),
        run_interval_minutes=max(1, _get_int_env("SCHEDULER_RUN_INTERVAL_MINUTES", 1440)),
        max_concurrent_jobs=max(1, _get_int_env("SCHEDULER_MAX_CONCURRENT_JOBS", 3)),
        global_timeout_minutes=max(1, _get_int_env("SCHEDULER_GLOBAL_TIMEOUT_MINUTES", 30)),
        stop_grace_seconds=max(0.0, _get_float_env("SCHEDULER_STOP_GRACE_SECONDS", 300.0)),
    )


@lru_cache(maxsize=1)
def get_api_settings() -> APISettings:
    """
    Return cached HTTP layer settings from environment variables.
    """

    return APISettings(
        rate_limit_max_requests=max(1, _get_int_env("SCRAPE_RATE_LIMIT_MAX_REQUESTS", 10)),
        rate_limit_window_seconds=max(
            1.0,
            _get_float_env("SCRAPE_RATE_LIMIT_WINDOW_SECONDS", 60.0),
        ),
    )
