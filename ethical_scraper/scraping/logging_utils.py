"""
Structured logging helpers for scraping and scheduling workflows.
"""

from __future__ import annotations

import json
import logging
from typing import Any

_PREVIEW_LIMIT = 100


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def preview_value(value: Any) -> str:
    """
    Short, log-safe rendering of an extracted value.
    """

    if isinstance(value, list):
        return f"[{len(value)} items]"
    text = str(value)
    if len(text) > _PREVIEW_LIMIT:
        return f"{text[:_PREVIEW_LIMIT]}..."
    return text
