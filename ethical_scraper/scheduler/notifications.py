"""
Job notifications. Delivery to webhooks or email is not wired; events are logged.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

from ethical_scraper.scheduler.models import SiteRegistration
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

NEW_CONTENT = "new_content"
ERROR = "error"


class LoggingNotifier:
    def __init__(self) -> None:
        self.recent: deque[tuple[str, str, dict[str, Any]]] = deque(maxlen=100)

    def notify(self, registration: SiteRegistration, event: str, payload: dict[str, Any]) -> None:
        self.recent.append((registration.id, event, payload))
        log_event(
            logger,
            logging.WARNING if event == ERROR else logging.INFO,
            "site_notification",
            site_id=registration.id,
            notification=event,
            webhook_url=registration.notifications.webhook_url,
            recipients=len(registration.notifications.email_recipients),
            **payload,
        )
