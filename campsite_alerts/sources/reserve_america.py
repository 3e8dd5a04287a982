"""
ReserveAmerica scraper for state parks.

ReserveAmerica has no public API; availability lives in an HTML calendar
whose markup varies by state. We issue the search so network and HTTP
failures surface, but there is no parser for the page yet, so a
successful fetch reports zero availability.
"""

import logging

from ..models import AvailableSite, CampsiteAlert, ParkSystem
from .base import BaseScraper

logger = logging.getLogger(__name__)


class ReserveAmericaScraper(BaseScraper):
    """Scraper for ReserveAmerica (HTML only, parser not implemented)."""

    park_system = ParkSystem.RESERVE_AMERICA
    name = "ReserveAmerica"
    parser_implemented = False

    BASE_URL = "https://www.reserveamerica.com"

    def get_reservation_url(self, site_id: str, campground_id: str) -> str:
        return f"{self.BASE_URL}/campsite/{campground_id}/{site_id}"

    def build_search_params(self, alert: CampsiteAlert) -> dict:
        params = {
            "parkId": alert.park_id,
            "arvdate": alert.date_range_start.isoformat(),
            "lengthOfStay": "1",
            "camping_site_type": "all",
        }
        if alert.campground_id:
            params["campgroundId"] = alert.campground_id
        return params

    def fetch_availability(self, alert: CampsiteAlert) -> list[AvailableSite]:
        params = self.build_search_params(alert)
        self._with_retry(
            lambda: self._request(
                "GET",
                f"{self.BASE_URL}/campgroundAvailability.do",
                params=params,
                headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
                not_found_message=f"Park {alert.park_id} not found on ReserveAmerica.",
            ),
            f"fetching availability for park {alert.park_id}",
        )
        return self._unparsed("campground availability HTML")
