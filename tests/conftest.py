from datetime import date, datetime

import pytest

from campsite_alerts.config import ScraperConfig, SchedulerConfig
from campsite_alerts.models import (
    AlertMatch,
    CampsiteAlert,
    NotificationMethod,
    NotificationPreferences,
    ParkSystem,
    SiteType,
    SubscriptionTier,
    UserProfile,
)
from campsite_alerts.notifications import DeliveryOutcome, DispatchResult, NotificationDispatcher


class FakeDatabase:
    """In-memory stand-in for the Supabase Database (same method surface)."""

    def __init__(self):
        self.users: dict[str, UserProfile] = {}
        self.alerts: dict[str, CampsiteAlert] = {}
        self.matches: dict[str, AlertMatch] = {}
        self.checks: list[tuple] = []

    def add_user(self, user: UserProfile) -> UserProfile:
        self.users[user.user_id] = user
        return user

    def add_alert(self, alert: CampsiteAlert) -> CampsiteAlert:
        self.alerts[alert.alert_id] = alert
        return alert

    # Reads hand out copies, like a real store would
    def get_user(self, user_id):
        return self.users.get(user_id)

    def get_user_ids_by_tier(self, tier):
        return [u.user_id for u in self.users.values() if u.subscription_tier == tier]

    def get_alert(self, alert_id):
        alert = self.alerts.get(alert_id)
        return CampsiteAlert.from_dict(alert.to_dict()) if alert else None

    def get_active_alerts_for_user(self, user_id):
        return [
            CampsiteAlert.from_dict(a.to_dict())
            for a in self.alerts.values()
            if a.user_id == user_id and a.is_active
        ]

    def update_alert_checked(self, alert_id, checked_at, error=None):
        self.checks.append((alert_id, checked_at, error))
        if alert_id in self.alerts:
            self.alerts[alert_id].last_checked = checked_at
            self.alerts[alert_id].last_error = error

    def update_alert_match_count(self, alert_id, matches_found):
        if alert_id in self.alerts:
            self.alerts[alert_id].matches_found = matches_found

    def get_active_matches(self, alert_id):
        return [m for m in self.matches.values() if m.alert_id == alert_id and not m.is_expired]

    def get_all_active_matches(self):
        return [m for m in self.matches.values() if not m.is_expired]

    def get_unnotified_matches(self):
        return [m for m in self.matches.values() if not m.is_expired and m.notified_at is None]

    def create_match(self, match):
        self.matches[match.match_id] = AlertMatch.from_dict(match.to_dict())
        return match.match_id

    def mark_matches_notified(self, match_ids, notified_at):
        for match_id in match_ids:
            self.matches[match_id].notified_at = notified_at

    def mark_matches_expired(self, match_ids):
        for match_id in match_ids:
            self.matches[match_id].is_expired = True


def build_alert(**overrides) -> CampsiteAlert:
    fields = dict(
        alert_id="alert-1",
        user_id="user-1",
        park_system=ParkSystem.RECREATION_GOV,
        park_id="2991",
        park_name="Yosemite National Park",
        campground_id="12345",
        campground_name="Upper Pines",
        date_range_start=date(2024, 8, 1),
        date_range_end=date(2024, 8, 10),
        site_types=[SiteType.TENT],
        min_nights=1,
        max_nights=3,
        created_at=datetime(2024, 7, 1),
        updated_at=datetime(2024, 7, 1),
    )
    fields.update(overrides)
    return CampsiteAlert(**fields)


def build_user(**overrides) -> UserProfile:
    fields = dict(
        user_id="user-1",
        email="camper@example.com",
        display_name="Sam",
        phone_number="(415) 555-0100",
        subscription_tier=SubscriptionTier.PREMIUM,
        notification_preferences=NotificationPreferences(
            methods=[NotificationMethod.EMAIL, NotificationMethod.SMS],
        ),
    )
    fields.update(overrides)
    return UserProfile(**fields)


@pytest.fixture
def make_alert():
    return build_alert


@pytest.fixture
def make_user():
    return build_user


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def scraper_config():
    return ScraperConfig(
        recreation_gov_api_key="test-key",
        retry_attempts=3,
        retry_base_delay_ms=1000,
        month_request_delay_ms=0,
    )


@pytest.fixture
def scheduler_config():
    return SchedulerConfig(inter_alert_pacing_ms=2000)


@pytest.fixture
def sleeps():
    """Requested sleep durations; pass sleeps.append as the sleep function."""
    return []


@pytest.fixture
def dispatcher(mocker):
    mock = mocker.Mock(spec=NotificationDispatcher)
    mock.dispatch.return_value = DispatchResult(
        outcomes=[DeliveryOutcome(NotificationMethod.EMAIL, True)]
    )
    return mock
