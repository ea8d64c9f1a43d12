"""
Storage layer interfaces for persisted scrape results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class StoredResult:
    """
    One scraped URL as handed from the scheduler to persistence.
    """

    job_id: str
    site_id: str
    url: str
    success: bool
    data: dict[str, Any]
    content_hash: str
    is_new_content: bool
    metadata: dict[str, Any] = field(default_factory=dict)
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "siteId": self.site_id,
            "url": self.url,
            "success": self.success,
            "data": self.data,
            "contentHash": self.content_hash,
            "isNewContent": self.is_new_content,
            "metadata": self.metadata,
            "extractedAt": self.extracted_at.isoformat(),
        }


@dataclass(frozen=True)
class SavedResult:
    path: Path
    filename: str
    filesize: int


class ResultStorage(ABC):
    """
    Storage abstraction for scrape result writes and change-detection lookups.
    """

    @abstractmethod
    async def save(self, result: StoredResult) -> SavedResult:
        """
        Persist one result and return where it was written.
        """

    @abstractmethod
    async def load(self, path: str | Path) -> dict[str, Any]:
        """
        Read a previously saved result document.
        """

    @abstractmethod
    async def latest_content_hash(self, site_id: str, url: str) -> str | None:
        """
        Most recent persisted content hash for the site and URL, if any.
        """
