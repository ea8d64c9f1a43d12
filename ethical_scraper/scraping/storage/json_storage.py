"""
JSON file storage for scrape results, partitioned by day.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ethical_scraper.scraping.logging_utils import log_event
from ethical_scraper.scraping.storage.base import ResultStorage, SavedResult, StoredResult

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


class JSONResultStorage(ResultStorage):
    """
    Writes `<root>/<YYYY-MM-DD>/<siteId>_<YYYYMMDD-HHMMSS>.json` documents.

    File I/O runs on worker threads. The latest hash per (site, URL) is kept
    in memory and seeded from disk on first use.
    """

    def __init__(self, *, root_dir: str | Path, clock=None) -> None:
        self._root = Path(root_dir)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._latest: dict[tuple[str, str], tuple[str, str]] | None = None
        self._lock = threading.Lock()

    @property
    def root_dir(self) -> Path:
        return self._root

    async def save(self, result: StoredResult) -> SavedResult:
        return await asyncio.to_thread(self._save_sync, result)

    async def load(self, path: str | Path) -> dict[str, Any]:
        return await asyncio.to_thread(self._load_sync, Path(path))

    async def latest_content_hash(self, site_id: str, url: str) -> str | None:
        return await asyncio.to_thread(self._latest_hash_sync, site_id, url)

    def _latest_hash_sync(self, site_id: str, url: str) -> str | None:
        with self._lock:
            entry = self._index().get((site_id, url))
        return entry[1] if entry is not None else None

    def _save_sync(self, result: StoredResult) -> SavedResult:
        saved_at = self._clock()
        day_dir = self._root / saved_at.strftime("%Y-%m-%d")
        day_dir.mkdir(parents=True, exist_ok=True)

        payload = result.to_dict()
        payload["savedAt"] = saved_at.isoformat()

        # Concurrent saves must never pick the same name.
        with self._lock:
            path = self._unique_path(day_dir, sanitize_site_id(result.site_id), saved_at)
            payload["filename"] = path.name
            path.write_text(_dump(payload), encoding="utf-8")
            # Recorded size is that of the document before the size field is added.
            payload["filesize"] = path.stat().st_size
            path.write_text(_dump(payload), encoding="utf-8")

            index = self._index()
            index[(result.site_id, result.url)] = (payload["savedAt"], result.content_hash)

        log_event(
            logger,
            logging.INFO,
            "result_saved",
            site_id=result.site_id,
            url=result.url,
            path=path,
            filesize=payload["filesize"],
        )
        return SavedResult(path=path, filename=path.name, filesize=payload["filesize"])

    @staticmethod
    def _load_sync(path: Path) -> dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _unique_path(day_dir: Path, site_id: str, saved_at: datetime) -> Path:
        stem = f"{site_id}_{saved_at.strftime('%Y%m%d-%H%M%S')}"
        path = day_dir / f"{stem}.json"
        counter = 2
        while path.exists():
            path = day_dir / f"{stem}_{counter}.json"
            counter += 1
        return path

    def _index(self) -> dict[tuple[str, str], tuple[str, str]]:
        if self._latest is not None:
            return self._latest

        latest: dict[tuple[str, str], tuple[str, str]] = {}
        if self._root.is_dir():
            for path in self._root.glob("*/*.json"):
                try:
                    payload = json.loads(path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as exc:
                    log_event(logger, logging.WARNING, "result_file_unreadable", path=path, error=str(exc))
                    continue
                site_id = payload.get("siteId")
                url = payload.get("url")
                content_hash = payload.get("contentHash")
                saved_at = str(payload.get("savedAt") or "")
                if not site_id or not url or not content_hash:
                    continue
                current = latest.get((site_id, url))
                if current is None or saved_at >= current[0]:
                    latest[(site_id, url)] = (saved_at, content_hash)

        self._latest = latest
        log_event(logger, logging.DEBUG, "result_index_seeded", entries=len(latest))
        return latest


def sanitize_site_id(site_id: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", site_id).strip("_")
    return cleaned or "site"


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)
