"""
Recreation.gov scraper.

Recreation.gov exposes a public JSON availability grid, one month per
request, keyed by campsite and date:
    { "campsites": { "<siteId>": { "availabilities": { "<date>": "<status>" }, ... } } }

Availability can only be resolved for a specific campground (facility);
a park-level rec area id is not enough. Campground lookup goes through
the RIDB API, which wants an "apikey" header.
"""

import logging
from datetime import date

from ..exceptions import ConfigurationError, TransientUpstreamError
from ..models import (
    AvailableSite,
    CampgroundSearchResult,
    CampsiteAlert,
    ParkSystem,
    parse_day,
)
from ..normalization import (
    build_date_ranges,
    determine_site_types,
    infer_site_type,
    months_between,
    strip_html,
)
from .base import BaseScraper

logger = logging.getLogger(__name__)


class RecreationGovScraper(BaseScraper):
    """
    Scraper for Recreation.gov campgrounds.

    Queries the monthly availability grid for every month the alert's
    window touches and merges each site's days across months.
    """

    park_system = ParkSystem.RECREATION_GOV
    name = "RecreationGov"

    BASE_URL = "https://www.recreation.gov"
    AVAILABILITY_URL = "https://www.recreation.gov/api/camps/availability/campground"
    RIDB_URL = "https://ridb.recreation.gov/api/v1"

    AVAILABLE_STATUSES = {"Available", "Open"}

    def __init__(self, *args, api_key: str = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_key = self.config.recreation_gov_api_key if api_key is None else api_key
        self.session.headers["Accept"] = "application/json"
        if self.api_key:
            self.session.headers["apikey"] = self.api_key

    def validate_alert(self, alert: CampsiteAlert) -> None:
        if not alert.campground_id:
            logger.warning(
                f"Alert {alert.alert_id} has no campground selected. "
                "Recreation.gov requires a specific campground."
            )
            raise ConfigurationError(
                f"Alert {alert.alert_id} has no campground selected",
                source=self.name,
                user_message="No campground selected. Please edit your alert to select a specific campground.",
            )

    def get_reservation_url(self, site_id: str, campground_id: str) -> str:
        return f"{self.BASE_URL}/camping/campsites/{site_id}"

    # =========================================================================
    # AVAILABILITY
    # =========================================================================

    def fetch_availability(self, alert: CampsiteAlert) -> list[AvailableSite]:
        campground_id = alert.campground_id
        start, end = alert.date_range_start, alert.date_range_end
        months = months_between(start, end)
        logger.debug(f"Fetching availability for {len(months)} month(s) of campground {campground_id}")

        raw_sites: dict[str, dict] = {}
        for index, month_start in enumerate(months):
            if index:
                # Small delay between month requests to avoid rate limiting
                self._sleep(self.config.month_request_delay)

            campsites = self._with_retry(
                lambda: self._fetch_month(campground_id, month_start),
                f"fetching {month_start:%Y-%m} for campground {campground_id}",
            )
            # Same site in several months: accumulate its days, never replace them
            for site_id, (meta, days) in campsites.items():
                entry = raw_sites.setdefault(site_id, {"meta": meta, "avail": {}})
                entry["avail"].update(days)

        return self.parse_availability(raw_sites, campground_id, alert, start, end)

    def _fetch_month(self, campground_id: str, month_start: date) -> dict[str, tuple[dict, dict]]:
        """
        One monthly grid request.

        Returns:
            site_id -> (site metadata, {day: status string})
        """
        response = self._request(
            "GET",
            f"{self.AVAILABILITY_URL}/{campground_id}/month",
            params={"start_date": f"{month_start.isoformat()}T00:00:00.000Z"},
            not_found_message=(
                f"Campground {campground_id} not found on Recreation.gov. "
                "It may not be reservable through Recreation.gov."
            ),
        )
        data = self._json(response)

        try:
            return {
                str(site_id): (
                    site,
                    {
                        parse_day(date_str): status
                        for date_str, status in (site.get("availabilities") or {}).items()
                    },
                )
                for site_id, site in (data.get("campsites") or {}).items()
            }
        except (AttributeError, TypeError, ValueError) as e:
            raise TransientUpstreamError(
                f"Unexpected availability payload for campground {campground_id}: {e}",
                source=self.name,
            ) from e

    def parse_availability(
        self,
        raw_sites: dict[str, dict],  # site_id -> {"meta": ..., "avail": {day: status}}
        campground_id: str,
        alert: CampsiteAlert,
        start: date,
        end: date,
    ) -> list[AvailableSite]:
        """
        Turn merged per-site status maps into AvailableSites.

        Days outside [start, end] are ignored; sites with no available
        range in the window are dropped.
        """
        sites = []
        for site_id, entry in raw_sites.items():
            meta = entry["meta"]
            availability = {
                day: status in self.AVAILABLE_STATUSES
                for day, status in entry["avail"].items()
                if start <= day <= end
            }

            ranges = build_date_ranges(availability)
            if not ranges:
                continue

            sites.append(
                AvailableSite(
                    site_id=str(site_id),
                    site_name=meta.get("site") or f"Site {site_id}",
                    site_type=infer_site_type(
                        meta.get("campsite_type"),
                        " ".join(meta.get("equipment_allowed") or []),
                    ),
                    campground_id=campground_id,
                    campground_name=(
                        meta.get("campground_name") or alert.campground_name or "Unknown Campground"
                    ),
                    available_dates=ranges,
                    reservation_url=self.get_reservation_url(str(site_id), campground_id),
                    loop=meta.get("loop"),
                )
            )
        return sites

    # =========================================================================
    # CAMPGROUND LOOKUP
    # =========================================================================

    def get_campgrounds(self, rec_area_id: str) -> list[CampgroundSearchResult]:
        """
        Reservable campgrounds inside a Recreation.gov rec area.

        Used to let a user pick the campground this system insists on.
        """
        data = self._with_retry(
            lambda: self._json(self._request(
                "GET",
                f"{self.RIDB_URL}/recareas/{rec_area_id}/facilities",
                params={"limit": 50, "offset": 0},
                not_found_message=f"Rec area {rec_area_id} not found on Recreation.gov.",
            )),
            f"listing facilities for rec area {rec_area_id}",
        )

        facilities = data.get("RECDATA") or []
        logger.info(f"RIDB returned {len(facilities)} facilities for rec area {rec_area_id}")

        campgrounds = []
        for facility in facilities:
            if not self._is_reservable_campground(facility):
                continue
            description = strip_html(facility.get("FacilityDescription"))
            campgrounds.append(
                CampgroundSearchResult(
                    campground_id=str(facility["FacilityID"]),
                    park_id=rec_area_id,
                    name=facility.get("FacilityName") or "",
                    park_system=self.park_system,
                    site_types=determine_site_types(facility.get("FacilityName"), description),
                    total_sites=len(facility.get("CAMPSITE") or []),
                    description=description[:200] or None,
                    amenities=[
                        a.get("AttributeValue") or a.get("Name")
                        for a in facility.get("ATTRIBUTES") or []
                        if a.get("AttributeValue") or a.get("Name")
                    ],
                )
            )

        logger.info(f"Filtered to {len(campgrounds)} campgrounds for rec area {rec_area_id}")
        return campgrounds

    def _is_reservable_campground(self, facility: dict) -> bool:
        type_desc = (facility.get("FacilityTypeDescription") or "").lower()
        name = (facility.get("FacilityName") or "").lower()
        reservation_url = (facility.get("FacilityReservationURL") or "").lower()
        facility_id = str(facility.get("FacilityID") or "")

        is_campground = (
            "campground" in type_desc or "camping" in type_desc or "camp" in name
        )
        if not is_campground or not facility_id:
            return False

        # POI-style ids (8+ digits starting with 10) are not bookable facilities
        if facility_id.startswith("10") and len(facility_id) >= 8:
            logger.debug(f"Filtering out POI facility: {name} (ID: {facility_id})")
            return False

        reservable = facility.get("Reservable")
        if reservable is None:
            logger.debug(f"Unknown reservability for: {name}")
            return True

        return reservable is True and (
            reservation_url == "" or "recreation.gov/camping/campgrounds" in reservation_url
        )
