"""
Normalization module for Campsite Alerts.

Helpers that turn each park system's raw availability data into the
canonical models: daily status grids become contiguous DateRanges, free
text becomes SiteTypes, and date windows become the months a monthly API
must be asked about.
"""

import logging
import re
from datetime import date, timedelta
from typing import Mapping, Optional

from bs4 import BeautifulSoup

from .models import DateRange, SiteType

logger = logging.getLogger(__name__)


# =============================================================================
# KEYWORD MAPPINGS FOR SITE TYPE DETECTION
# =============================================================================

# Checked in order; the first family that matches wins for a single site
SITE_TYPE_KEYWORDS: dict[SiteType, list[str]] = {
    SiteType.CABIN: ["cabin", "yurt", "lodge"],
    SiteType.RV: ["rv", "hookup", "electric", "trailer"],
    SiteType.GROUP: ["group"],
}

# Facility-level detection (campground search) looks at more generic wording
FACILITY_TYPE_KEYWORDS: dict[SiteType, list[str]] = {
    SiteType.TENT: ["tent", "campground"],
    SiteType.RV: ["rv", "trailer", "hookup"],
    SiteType.CABIN: ["cabin", "yurt", "lodge"],
    SiteType.GROUP: ["group"],
}


def _has_keyword(text: str, keywords: list[str]) -> bool:
    # Keywords must start a word: "NONELECTRIC" is not "electric", "river" is not "rv"
    return any(re.search(rf"\b{re.escape(keyword)}", text) for keyword in keywords)


def infer_site_type(*texts: Optional[str], families: Optional[Mapping] = None) -> SiteType:
    """
    Guess a single site's type from free-text fields.

    Args:
        *texts: Name, type label, description, equipment list... (None ignored)
        families: Keyword families to check, in priority order

    Returns:
        The first matching SiteType, or TENT when nothing matches
    """
    combined = " ".join(t for t in texts if t).lower()
    for site_type, keywords in (families or SITE_TYPE_KEYWORDS).items():
        if _has_keyword(combined, keywords):
            return site_type
    return SiteType.TENT


def determine_site_types(name: Optional[str], description: Optional[str]) -> list[SiteType]:
    """
    Every site type a whole facility seems to offer.

    Unlike infer_site_type() several families may apply at once.
    Defaults to [TENT] if nothing is detected.
    """
    combined = f"{name or ''} {description or ''}".lower()
    types = [
        site_type
        for site_type, keywords in FACILITY_TYPE_KEYWORDS.items()
        if _has_keyword(combined, keywords)
    ]
    return types or [SiteType.TENT]


def strip_html(html: Optional[str]) -> str:
    """Plain text from an HTML fragment (RIDB descriptions are HTML)."""
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return " ".join(text.replace("\xa0", " ").split())


# =============================================================================
# DATE HANDLING
# =============================================================================

def build_date_ranges(availability: Mapping[date, bool]) -> list[DateRange]:
    """
    Collapse a per-day availability map into maximal contiguous ranges.

    Days are scanned in ascending order. Consecutive available days extend
    the open range; an unavailable day or a calendar gap closes it.

    Example:
        {Jun1: True, Jun2: True, Jun3: False, Jun4: True}
        -> [DateRange(Jun1, Jun2), DateRange(Jun4, Jun4)]
    """
    ranges: list[DateRange] = []
    start: Optional[date] = None
    end: Optional[date] = None

    for day in sorted(availability):
        if availability[day]:
            if start is None:
                start = end = day
            elif day == end + timedelta(days=1):
                end = day
            else:
                ranges.append(DateRange(start, end))
                start = end = day
        elif start is not None:
            ranges.append(DateRange(start, end))
            start = end = None

    if start is not None:
        ranges.append(DateRange(start, end))

    return ranges


def months_between(start: date, end: date) -> list[date]:
    """First day of every calendar month intersecting [start, end]."""
    months = []
    current = start.replace(day=1)
    while current <= end:
        months.append(current)
        # advance to first day of next month
        if current.month == 12:
            current = current.replace(year=current.year + 1, month=1)
        else:
            current = current.replace(month=current.month + 1)
    return months
