"""
Sources package - Scrapers for park reservation systems.

Each scraper module handles:
1. Fetching raw availability from its platform
2. Normalizing it into AvailableSite objects
3. Building booking links

get_scraper() hands out one shared instance per park system.
"""

from typing import Optional

from ..models import ParkSystem
from .base import BaseScraper
from .recreation_gov import RecreationGovScraper
from .reserve_america import ReserveAmericaScraper
from .reserve_california import ReserveCaliforniaScraper

SCRAPER_CLASSES: dict[ParkSystem, type[BaseScraper]] = {
    ParkSystem.RECREATION_GOV: RecreationGovScraper,
    ParkSystem.RESERVE_AMERICA: ReserveAmericaScraper,
    ParkSystem.RESERVE_CALIFORNIA: ReserveCaliforniaScraper,
}

# Scraper registry (lazy loaded)
_scrapers: dict[ParkSystem, BaseScraper] = {}


def get_scraper(park_system: ParkSystem) -> Optional[BaseScraper]:
    """Get the scraper for a park system (singleton per system)."""
    if park_system not in _scrapers:
        scraper_class = SCRAPER_CLASSES.get(park_system)
        if scraper_class is None:
            return None
        _scrapers[park_system] = scraper_class()
    return _scrapers[park_system]


__all__ = [
    "BaseScraper",
    "RecreationGovScraper",
    "ReserveAmericaScraper",
    "ReserveCaliforniaScraper",
    "SCRAPER_CLASSES",
    "get_scraper",
]
