"""
Periodic scraping of registered sites.
"""

from ethical_scraper.scheduler.models import (
    JobStatus,
    Priority,
    RegistrationError,
    ScrapeJob,
    SiteRegistration,
)
from ethical_scraper.scheduler.notifications import LoggingNotifier
from ethical_scraper.scheduler.registry import JSONRegistrationStore, parse_registration
from ethical_scraper.scheduler.service import ScrapeScheduler, generate_content_hash

__all__ = [
    "JSONRegistrationStore",
    "JobStatus",
    "LoggingNotifier",
    "Priority",
    "RegistrationError",
    "ScrapeJob",
    "ScrapeScheduler",
    "SiteRegistration",
    "generate_content_hash",
    "parse_registration",
]
