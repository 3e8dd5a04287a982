"""
Data models for Campsite Alerts.

Defines canonical dataclasses that all park systems normalize into.
These models represent the unified schema for alerts, matches and users.

Store documents may carry dates as date objects, ISO strings or
timestamp maps ({"_seconds": ...}); from_dict() normalizes all of them so
core logic only ever sees datetime.date for calendar days and aware UTC
datetimes for instants.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from enum import Enum
import json


class ParkSystem(str, Enum):
    """Supported reservation platforms."""
    RECREATION_GOV = "recreation_gov"
    RESERVE_AMERICA = "reserve_america"
    RESERVE_CALIFORNIA = "reserve_california"


class SiteType(str, Enum):
    """Kinds of campsite an alert can ask for."""
    TENT = "tent"
    RV = "rv"
    CABIN = "cabin"
    GROUP = "group"


class SubscriptionTier(str, Enum):
    """Subscription levels (drive polling frequency)."""
    FREE = "free"
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class NotificationMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


# =============================================================================
# DATE NORMALIZATION
# =============================================================================

def parse_instant(value: Any) -> datetime:
    """
    Normalize a store value into an aware UTC datetime.

    Accepts datetime, date, ISO-8601 strings and Firestore-style
    timestamp maps ({"_seconds": n} or {"seconds": n}).

    Raises:
        ValueError: if the value is missing or cannot be interpreted
    """
    if value is None or value == "":
        raise ValueError("Date is required")

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)

    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if isinstance(seconds, (int, float)):
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        raise ValueError(f"Unrecognized timestamp object: {value!r}")

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_instant(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Invalid date string: {value!r}") from None

    raise ValueError(f"Unsupported date value: {value!r}")


def parse_day(value: Any) -> date:
    """Normalize a store value into a calendar date (no time-of-day)."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"Invalid date string: {value!r}") from None
    return parse_instant(value).date()


def _optional_instant(value: Any) -> Optional[datetime]:
    return parse_instant(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# AVAILABILITY
# =============================================================================

@dataclass(frozen=True)
class DateRange:
    """Closed interval of calendar days [start, end]."""
    start: date
    end: date

    @property
    def nights(self) -> int:
        """Whole days between start and end."""
        return abs((self.end - self.start).days)

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive overlap test against another [start, end] window."""
        return self.start <= end and self.end >= start

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "DateRange":
        return cls(start=parse_day(data["start"]), end=parse_day(data["end"]))


def serialize_date_ranges(ranges: list[DateRange]) -> str:
    """Canonical JSON form of a range list (used for storage and dedup keys)."""
    return json.dumps([r.to_dict() for r in ranges], separators=(",", ":"))


def deserialize_date_ranges(raw: Any) -> list[DateRange]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return [DateRange.from_dict(item) for item in raw]


@dataclass
class AvailableSite:
    """
    One campsite's availability as seen in a single fetch.

    Transient: produced by a scraper, narrowed by the criteria filter and
    consumed by the match processor within one polling cycle.
    """
    site_id: str
    site_name: str
    site_type: SiteType
    campground_id: str
    campground_name: str
    available_dates: list[DateRange]
    reservation_url: str
    loop: Optional[str] = None
    amenities: list[str] = field(default_factory=list)

    @property
    def dedup_key(self) -> str:
        return make_dedup_key(self.site_id, self.available_dates)


def make_dedup_key(site_id: str, ranges: list[DateRange]) -> str:
    return f"{site_id}-{serialize_date_ranges(ranges)}"


# =============================================================================
# ALERTS
# =============================================================================

@dataclass
class CampsiteAlert:
    """
    A user's saved monitoring request.

    The scheduler and match processor only ever touch last_checked,
    last_error, matches_found and updated_at; everything else is user-owned.
    """
    alert_id: str
    user_id: str
    park_system: ParkSystem
    park_id: str
    park_name: str
    date_range_start: date
    date_range_end: date

    name: str = ""
    campground_id: Optional[str] = None
    campground_name: Optional[str] = None
    site_types: list[SiteType] = field(default_factory=lambda: [SiteType.TENT])
    flexible_dates: bool = False  # Advisory only
    min_nights: int = 1
    max_nights: int = 14
    specific_site_ids: Optional[list[str]] = None

    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None
    matches_found: int = 0

    def validate(self) -> None:
        """
        Check the alert's own invariants.

        Raises:
            ConfigurationError: if the alert cannot be polled as configured
        """
        from .exceptions import ConfigurationError

        if self.date_range_end <= self.date_range_start:
            raise ConfigurationError(
                f"Alert {self.alert_id}: date range end must be after start",
                user_message="The end date of this alert must be after its start date.",
            )
        if self.min_nights > self.max_nights:
            raise ConfigurationError(
                f"Alert {self.alert_id}: min_nights > max_nights",
                user_message="Minimum nights cannot be greater than maximum nights.",
            )

    def has_elapsed(self, today: date) -> bool:
        """True once the whole date window lies in the past."""
        return self.date_range_end < today

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "name": self.name,
            "park_system": self.park_system.value,
            "park_id": self.park_id,
            "park_name": self.park_name,
            "campground_id": self.campground_id,
            "campground_name": self.campground_name,
            "site_types": [t.value for t in self.site_types],
            "date_range_start": self.date_range_start.isoformat(),
            "date_range_end": self.date_range_end.isoformat(),
            "flexible_dates": self.flexible_dates,
            "min_nights": self.min_nights,
            "max_nights": self.max_nights,
            "specific_site_ids": self.specific_site_ids,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_checked": _iso(self.last_checked),
            "last_error": self.last_error,
            "matches_found": self.matches_found,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CampsiteAlert":
        """Create from a store document, normalizing every date representation."""
        site_types = data.get("site_types")
        if isinstance(site_types, str):
            site_types = json.loads(site_types)
        specific = data.get("specific_site_ids")
        if isinstance(specific, str):
            specific = json.loads(specific)
        return cls(
            alert_id=str(data["alert_id"]),
            user_id=str(data["user_id"]),
            name=data.get("name") or "",
            park_system=ParkSystem(data["park_system"]),
            park_id=str(data.get("park_id") or ""),
            park_name=data.get("park_name") or "",
            campground_id=str(data["campground_id"]) if data.get("campground_id") else None,
            campground_name=data.get("campground_name"),
            site_types=[SiteType(t) for t in (site_types if site_types is not None else ["tent"])],
            date_range_start=parse_day(data["date_range_start"]),
            date_range_end=parse_day(data["date_range_end"]),
            flexible_dates=bool(data.get("flexible_dates", False)),
            min_nights=int(data.get("min_nights", 1)),
            max_nights=int(data.get("max_nights", 14)),
            specific_site_ids=[str(s) for s in specific] if specific else None,
            is_active=bool(data.get("is_active", True)),
            created_at=_optional_instant(data.get("created_at")) or utcnow(),
            updated_at=_optional_instant(data.get("updated_at")) or utcnow(),
            last_checked=_optional_instant(data.get("last_checked")),
            last_error=data.get("last_error"),
            matches_found=int(data.get("matches_found") or 0),
        )


@dataclass
class AlertMatch:
    """
    A recorded availability opportunity for an alert.

    Park/campground/site names are denormalized so notifications can be
    rendered without looking anything else up.
    """
    match_id: str
    alert_id: str
    user_id: str
    park_system: ParkSystem
    park_name: str
    campground_name: str
    site_name: str
    site_id: str
    site_type: SiteType
    available_dates: list[DateRange]
    reservation_url: str

    found_at: datetime = field(default_factory=utcnow)
    notified_at: Optional[datetime] = None
    notification_methods: list[NotificationMethod] = field(default_factory=list)
    is_expired: bool = False

    @property
    def dedup_key(self) -> str:
        return make_dedup_key(self.site_id, self.available_dates)

    def has_elapsed(self, today: date) -> bool:
        """True when every date range ended strictly before today."""
        return all(r.end < today for r in self.available_dates)

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "park_system": self.park_system.value,
            "park_name": self.park_name,
            "campground_name": self.campground_name,
            "site_name": self.site_name,
            "site_id": self.site_id,
            "site_type": self.site_type.value,
            "available_dates": serialize_date_ranges(self.available_dates),
            "reservation_url": self.reservation_url,
            "found_at": self.found_at.isoformat(),
            "notified_at": _iso(self.notified_at),
            "notification_methods": [m.value for m in self.notification_methods],
            "is_expired": self.is_expired,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertMatch":
        methods = data.get("notification_methods") or []
        if isinstance(methods, str):
            methods = json.loads(methods)
        return cls(
            match_id=str(data["match_id"]),
            alert_id=str(data["alert_id"]),
            user_id=str(data["user_id"]),
            park_system=ParkSystem(data["park_system"]),
            park_name=data.get("park_name") or "",
            campground_name=data.get("campground_name") or "",
            site_name=data.get("site_name") or "",
            site_id=str(data["site_id"]),
            site_type=SiteType(data.get("site_type", "tent")),
            available_dates=deserialize_date_ranges(data.get("available_dates")),
            reservation_url=data.get("reservation_url") or "",
            found_at=_optional_instant(data.get("found_at")) or utcnow(),
            notified_at=_optional_instant(data.get("notified_at")),
            notification_methods=[NotificationMethod(m) for m in methods],
            is_expired=bool(data.get("is_expired", False)),
        )


# =============================================================================
# USERS
# =============================================================================

@dataclass
class NotificationPreferences:
    methods: list[NotificationMethod] = field(
        default_factory=lambda: [NotificationMethod.EMAIL]
    )
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[str] = None  # HH:mm
    quiet_hours_end: Optional[str] = None    # HH:mm
    timezone: Optional[str] = None  # None: deployment default

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "NotificationPreferences":
        if not data:
            return cls()
        methods = data.get("methods") or ["email"]
        return cls(
            methods=[NotificationMethod(m) for m in methods],
            quiet_hours_enabled=bool(data.get("quiet_hours_enabled", False)),
            quiet_hours_start=data.get("quiet_hours_start"),
            quiet_hours_end=data.get("quiet_hours_end"),
            timezone=data.get("timezone") or None,
        )

    def to_dict(self) -> dict:
        return {
            "methods": [m.value for m in self.methods],
            "quiet_hours_enabled": self.quiet_hours_enabled,
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
            "timezone": self.timezone,
        }


@dataclass
class UserProfile:
    """The slice of a user record the core needs to notify them."""
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    notification_preferences: NotificationPreferences = field(
        default_factory=NotificationPreferences
    )

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        prefs = data.get("notification_preferences")
        if isinstance(prefs, str):
            prefs = json.loads(prefs)
        return cls(
            user_id=str(data["id"]),
            email=data.get("email") or None,
            display_name=data.get("display_name"),
            phone_number=data.get("phone_number") or None,
            subscription_tier=SubscriptionTier(data.get("subscription_tier") or "free"),
            notification_preferences=NotificationPreferences.from_dict(prefs),
        )


@dataclass
class CampgroundSearchResult:
    """A reservable campground inside a park, as offered to users picking one."""
    campground_id: str
    park_id: str
    name: str
    park_system: ParkSystem
    site_types: list[SiteType]
    total_sites: int = 0
    description: Optional[str] = None
    amenities: list[str] = field(default_factory=list)
