"""
ReserveCalifornia scraper for California State Parks.

ReserveCalifornia answers an AJAX grid request with per-unit daily
availability:
    { "d": { "Units": [ { "UnitId": ..., "Availabilities": [ { "Date": ..., "IsAvailable": ... } ] } ] } }

When that endpoint refuses the request we fall back to the unit
availability HTML page, which we cannot parse yet.
"""

import logging

from ..exceptions import TransientUpstreamError
from ..models import AvailableSite, CampsiteAlert, ParkSystem, parse_day
from ..normalization import build_date_ranges, infer_site_type
from .base import BaseScraper

logger = logging.getLogger(__name__)


class ReserveCaliforniaScraper(BaseScraper):
    """Scraper for ReserveCalifornia (California State Parks)."""

    park_system = ParkSystem.RESERVE_CALIFORNIA
    name = "ReserveCalifornia"

    BASE_URL = "https://www.reservecalifornia.com"
    API_URL = f"{BASE_URL}/CaliforniaWebHome/Facilities/AdvanceSearch.aspx/GetAvailability"
    UNIT_PAGE_URL = f"{BASE_URL}/CaliforniaWebHome/Facilities/SearchViewUnitAvailability.aspx"

    def get_reservation_url(self, site_id: str, campground_id: str) -> str:
        return f"{self.UNIT_PAGE_URL}?FacilityId={campground_id}&UnitId={site_id}"

    def fetch_availability(self, alert: CampsiteAlert) -> list[AvailableSite]:
        facility_id = alert.campground_id or alert.park_id
        return self._with_retry(
            lambda: self._fetch_facility(facility_id, alert),
            f"fetching availability for facility {facility_id}",
        )

    def _fetch_facility(self, facility_id: str, alert: CampsiteAlert) -> list[AvailableSite]:
        start = alert.date_range_start.isoformat()
        end = alert.date_range_end.isoformat()

        try:
            numeric_id = int(facility_id)
        except ValueError:
            numeric_id = 0

        response = self._request(
            "POST",
            self.API_URL,
            json={
                "outfitterId": 0,
                "facilityId": numeric_id,
                "startDate": start,
                "endDate": end,
                "isADA": False,
                "equipmentId": -32768,
                "subEquipmentId": -32768,
                "partySize": 1,
                "categoryId": 0,
            },
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            raise_for_status=False,
        )

        if not response.ok:
            logger.info(
                f"{self.name} grid API returned {response.status_code} for facility {facility_id}, "
                "falling back to HTML page"
            )
            return self._fetch_from_html(facility_id, start, end)

        return self.parse_api_response(self._json(response), facility_id, alert)

    def _fetch_from_html(self, facility_id: str, start: str, end: str) -> list[AvailableSite]:
        self._request(
            "GET",
            self.UNIT_PAGE_URL,
            params={"FacilityId": facility_id, "ArrivalDate": start, "DepartureDate": end},
            headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
            not_found_message=f"Facility {facility_id} not found on ReserveCalifornia.",
        )
        return self._unparsed("unit availability HTML")

    def parse_api_response(
        self,
        data: dict,
        facility_id: str,
        alert: CampsiteAlert,
    ) -> list[AvailableSite]:
        """Build AvailableSites from the grid API's Units list."""
        units = (data.get("d") or {}).get("Units") or []

        sites = []
        try:
            for unit in units:
                unit_id = unit.get("UnitId")
                if unit_id is None:
                    logger.debug(f"{self.name}: skipping unit without UnitId in facility {facility_id}")
                    continue

                availability = {
                    parse_day(slot["Date"]): bool(slot.get("IsAvailable"))
                    for slot in unit.get("Availabilities") or []
                }
                ranges = build_date_ranges(availability)
                if not ranges:
                    continue

                sites.append(
                    AvailableSite(
                        site_id=str(unit_id),
                        site_name=unit.get("Name") or f"Site {unit_id}",
                        site_type=infer_site_type(unit.get("UnitTypeName") or unit.get("CategoryName")),
                        campground_id=facility_id,
                        campground_name=(
                            unit.get("FacilityName") or alert.campground_name or "Unknown"
                        ),
                        available_dates=ranges,
                        reservation_url=self.get_reservation_url(str(unit_id), facility_id),
                        loop=unit.get("Loop"),
                    )
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransientUpstreamError(
                f"Unexpected grid payload for facility {facility_id}: {e}", source=self.name
            ) from e

        return sites
