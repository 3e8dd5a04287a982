"""
Criteria Matching module for Campsite Alerts.

Narrows the sites a scraper found down to those that satisfy one alert.
A site passes only if ALL of these hold:
1. Its site type is one the alert accepts
2. It is on the alert's site allow-list (when the alert has one)
3. It belongs to the alert's campground (when the alert names one)
4. At least one of its date ranges overlaps the alert's window
5. One of those overlapping ranges is a stay of min..max nights

Passing sites have available_dates narrowed in place to the overlapping
ranges, so match records and notifications only show relevant dates.
"""

import logging
from datetime import date

from .models import AvailableSite, CampsiteAlert, DateRange

logger = logging.getLogger(__name__)


class CriteriaFilter:
    """
    Filters normalized sites against a single alert.

    Usage:
        matching = CriteriaFilter(alert).filter(sites)
    """

    def __init__(self, alert: CampsiteAlert):
        self.alert = alert
        self.site_types = set(alert.site_types)
        self.allowed_site_ids = set(alert.specific_site_ids or [])
        _check_window(alert.date_range_start, alert.date_range_end, f"alert {alert.alert_id}")

    def filter(self, sites: list[AvailableSite]) -> list[AvailableSite]:
        """Sites that satisfy every criterion (available_dates narrowed in place)."""
        matching = [site for site in sites if self.matches(site)]
        logger.debug(
            f"Alert {self.alert.alert_id}: {len(matching)}/{len(sites)} sites match criteria"
        )
        return matching

    def matches(self, site: AvailableSite) -> bool:
        alert = self.alert

        if site.site_type not in self.site_types:
            return False

        if self.allowed_site_ids and site.site_id not in self.allowed_site_ids:
            return False

        if alert.campground_id and site.campground_id != alert.campground_id:
            return False

        overlapping = self.overlapping_ranges(site.available_dates)
        if not overlapping:
            return False

        if not any(self.stay_fits(r) for r in overlapping):
            return False

        site.available_dates = overlapping
        return True

    def overlapping_ranges(self, ranges: list[DateRange]) -> list[DateRange]:
        """Ranges touching [date_range_start, date_range_end] (inclusive on both ends)."""
        overlapping = []
        for r in ranges:
            _check_window(r.start, r.end, "date range")
            if r.overlaps(self.alert.date_range_start, self.alert.date_range_end):
                overlapping.append(r)
        return overlapping

    def stay_fits(self, date_range: DateRange) -> bool:
        return self.alert.min_nights <= date_range.nights <= self.alert.max_nights


def _check_window(start, end, what: str) -> None:
    # Malformed dates must fail loudly, never slip through a comparison
    if not isinstance(start, date) or not isinstance(end, date):
        raise ValueError(f"Invalid {what}: {start!r} - {end!r} (expected dates)")
    if end < start:
        raise ValueError(f"Invalid {what}: end {end} is before start {start}")


def filter_sites(sites: list[AvailableSite], alert: CampsiteAlert) -> list[AvailableSite]:
    """
    Convenience function to filter sites for one alert.

    Args:
        sites: Normalized sites from a scraper
        alert: The alert whose criteria apply

    Returns:
        Matching sites, each narrowed to its overlapping date ranges
    """
    return CriteriaFilter(alert).filter(sites)
