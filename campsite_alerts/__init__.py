"""
Campsite Alerts - availability polling and match dedup engine

Polls campground reservation systems for newly opened sites and tells
users before someone else books them.

Modules:
- config: Configuration and environment variables
- models: Canonical data models (dataclasses)
- exceptions: Error taxonomy (transient / not found / configuration / delivery)
- db: Supabase integration for storage
- sources: Scrapers for each park reservation system
- normalization: Daily grids to date ranges, site type inference
- criteria_matching: Filter sites against an alert's criteria
- matches: Dedup, persist and notify matches; match expiry
- notifications: Quiet hours, method selection, email and SMS delivery
- pipeline: Per-alert orchestration and periodic jobs
- scheduler: Tier sweeps and APScheduler setup
- ops_server: Health check and manual check server
"""

__version__ = "0.1.0"

# Convenient imports
from .models import (
    AlertMatch,
    AvailableSite,
    CampgroundSearchResult,
    CampsiteAlert,
    DateRange,
    NotificationMethod,
    NotificationPreferences,
    ParkSystem,
    SiteType,
    SubscriptionTier,
    UserProfile,
)
from .exceptions import (
    CampsiteAlertsError,
    ConfigurationError,
    DeliveryError,
    ResourceNotFoundError,
    TransientUpstreamError,
    UpstreamError,
)
from .normalization import build_date_ranges, infer_site_type
from .criteria_matching import filter_sites, CriteriaFilter
from .matches import MatchProcessor
from .notifications import NotificationDispatcher, is_quiet_hours, select_methods
from .pipeline import check_alert, run_manual_check, run_scraper_for_alert

__all__ = [
    # Models
    "AlertMatch",
    "AvailableSite",
    "CampgroundSearchResult",
    "CampsiteAlert",
    "DateRange",
    "NotificationMethod",
    "NotificationPreferences",
    "ParkSystem",
    "SiteType",
    "SubscriptionTier",
    "UserProfile",
    # Errors
    "CampsiteAlertsError",
    "ConfigurationError",
    "DeliveryError",
    "ResourceNotFoundError",
    "TransientUpstreamError",
    "UpstreamError",
    # Normalization
    "build_date_ranges",
    "infer_site_type",
    # Criteria matching
    "filter_sites",
    "CriteriaFilter",
    # Matches / notifications
    "MatchProcessor",
    "NotificationDispatcher",
    "is_quiet_hours",
    "select_methods",
    # Pipeline
    "check_alert",
    "run_manual_check",
    "run_scraper_for_alert",
]
