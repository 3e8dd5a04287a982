"""
Supabase database integration module.

Implements the three stores the polling core depends on:
- alert store: active alerts per user, last-checked / match counters
- match store: dedup lookups, new matches, notified / expired flags
- user store: contact details and notification preferences

Tables required:
- users: Profiles with subscription tier and notification preferences
- alerts: Campsite alerts (one row per CampsiteAlert)
- alert_matches: Availability found for an alert

Documents are converted with the models' from_dict(), which is where every
date representation the store hands back gets normalized.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Optional
from supabase import create_client, Client

from .config import get_supabase_config
from .models import (
    AlertMatch,
    CampsiteAlert,
    SubscriptionTier,
    UserProfile,
    utcnow,
)

logger = logging.getLogger(__name__)

USERS = "users"
ALERTS = "alerts"
ALERT_MATCHES = "alert_matches"

# Must not exceed the project's PostgREST max-rows, or paging stops early
PAGE_SIZE = 1000
# in_() filters travel in the URL
UPDATE_CHUNK_SIZE = 200


class Database:
    """
    Supabase database client wrapper.

    Provides methods for all database operations needed by the polling core.
    """

    def __init__(self):
        """Initialize Supabase client."""
        config = get_supabase_config()
        if not config.url or not config.key:
            raise ValueError("Supabase URL and key must be set in environment variables")
        self._client: Client = create_client(config.url, config.key)

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    def _select_all(self, build_query: Callable[[], Any], order_by: str) -> list[dict]:
        """
        Run a select page by page until a short page comes back.

        PostgREST truncates every response at max-rows, so a single execute()
        silently drops everything past the first page.
        """
        rows: list[dict] = []
        offset = 0
        while True:
            result = build_query().order(order_by).range(offset, offset + PAGE_SIZE - 1).execute()
            rows.extend(result.data)
            if len(result.data) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    # =========================================================================
    # USER OPERATIONS
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        """Get user profile by ID."""
        result = self._client.table(USERS).select("*").eq("id", user_id).execute()
        return UserProfile.from_dict(result.data[0]) if result.data else None

    def get_user_ids_by_tier(self, tier: SubscriptionTier) -> list[str]:
        """IDs of every user on the given subscription tier."""
        rows = self._select_all(
            lambda: self._client.table(USERS).select("id").eq("subscription_tier", tier.value),
            order_by="id",
        )
        return [str(row["id"]) for row in rows]

    # =========================================================================
    # ALERT OPERATIONS
    # =========================================================================

    def get_alert(self, alert_id: str) -> Optional[CampsiteAlert]:
        """Get an alert by ID."""
        result = self._client.table(ALERTS).select("*").eq("alert_id", alert_id).execute()
        return CampsiteAlert.from_dict(result.data[0]) if result.data else None

    def get_active_alerts_for_user(self, user_id: str) -> list[CampsiteAlert]:
        """Get all active alerts owned by a user."""
        result = (
            self._client.table(ALERTS)
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )

        alerts = []
        for data in result.data:
            try:
                alerts.append(CampsiteAlert.from_dict(data))
            except (KeyError, ValueError) as e:
                logger.error(f"Skipping malformed alert {data.get('alert_id')}: {e}")
        return alerts

    def update_alert_checked(
        self,
        alert_id: str,
        checked_at: datetime,
        error: Optional[str] = None,
    ) -> None:
        """Record that an alert was polled (and why it failed, if it did)."""
        self._client.table(ALERTS).update({
            "last_checked": checked_at.isoformat(),
            "last_error": error,
        }).eq("alert_id", alert_id).execute()

    def update_alert_match_count(self, alert_id: str, matches_found: int) -> None:
        """Set the cumulative match counter and bump updated_at."""
        self._client.table(ALERTS).update({
            "matches_found": matches_found,
            "updated_at": utcnow().isoformat(),
        }).eq("alert_id", alert_id).execute()

    # =========================================================================
    # MATCH OPERATIONS
    # =========================================================================

    def get_active_matches(self, alert_id: str) -> list[AlertMatch]:
        """Get non-expired matches for an alert."""
        rows = self._select_all(
            lambda: (
                self._client.table(ALERT_MATCHES)
                .select("*")
                .eq("alert_id", alert_id)
                .eq("is_expired", False)
            ),
            order_by="match_id",
        )
        return [AlertMatch.from_dict(data) for data in rows]

    def get_all_active_matches(self) -> list[AlertMatch]:
        """Get every non-expired match (for the expiry sweep)."""
        rows = self._select_all(
            lambda: self._client.table(ALERT_MATCHES).select("*").eq("is_expired", False),
            order_by="match_id",
        )
        return [AlertMatch.from_dict(data) for data in rows]

    def get_unnotified_matches(self) -> list[AlertMatch]:
        """Non-expired matches that were never successfully delivered."""
        rows = self._select_all(
            lambda: (
                self._client.table(ALERT_MATCHES)
                .select("*")
                .eq("is_expired", False)
                .is_("notified_at", "null")
            ),
            order_by="match_id",
        )
        return [AlertMatch.from_dict(data) for data in rows]

    def create_match(self, match: AlertMatch) -> str:
        """Create a new match record."""
        match_dict = match.to_dict()
        match_dict["notification_methods"] = json.dumps(match_dict["notification_methods"])

        self._client.table(ALERT_MATCHES).insert(match_dict).execute()
        logger.info(f"Created match: {match.match_id} for alert {match.alert_id}")
        return match.match_id

    def mark_matches_notified(self, match_ids: list[str], notified_at: datetime) -> None:
        """Stamp notified_at on a batch of matches."""
        if not match_ids:
            return
        for start in range(0, len(match_ids), UPDATE_CHUNK_SIZE):
            self._client.table(ALERT_MATCHES).update({
                "notified_at": notified_at.isoformat(),
            }).in_("match_id", match_ids[start:start + UPDATE_CHUNK_SIZE]).execute()

    def mark_matches_expired(self, match_ids: list[str]) -> None:
        """Flag a batch of matches as expired."""
        if not match_ids:
            return
        for start in range(0, len(match_ids), UPDATE_CHUNK_SIZE):
            self._client.table(ALERT_MATCHES).update({
                "is_expired": True,
            }).in_("match_id", match_ids[start:start + UPDATE_CHUNK_SIZE]).execute()
        logger.info(f"Marked {len(match_ids)} matches expired")


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
