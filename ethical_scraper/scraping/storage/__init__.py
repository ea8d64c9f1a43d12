"""
Storage layer exports.
"""

from ethical_scraper.scraping.storage.base import ResultStorage, SavedResult, StoredResult
from ethical_scraper.scraping.storage.json_storage import JSONResultStorage

__all__ = ["JSONResultStorage", "ResultStorage", "SavedResult", "StoredResult"]
