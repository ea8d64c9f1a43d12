"""
ethical_scraper/api/routers package marker.
"""

from ethical_scraper.api.routers.scheduler import router as scheduler_router
from ethical_scraper.api.routers.scraping import router as scraping_router

__all__ = [
    "scheduler_router",
    "scraping_router",
]
