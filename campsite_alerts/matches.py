"""
Match processing module for Campsite Alerts.

Turns the sites that passed an alert's criteria into AlertMatch records:
1. Dedup against the alert's non-expired matches by (site id, exact date ranges)
2. Persist each new match and bump the alert's counter
3. Notify the owner once per batch and stamp notified_at on success

Also owns the periodic duties on the match corpus: expiring matches whose
dates have passed and re-delivering matches held back by quiet hours.
"""

import uuid
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional

from .config import get_scheduler_config
from .db import Database, get_db
from .models import (
    AlertMatch,
    AvailableSite,
    CampsiteAlert,
    NotificationMethod,
    UserProfile,
    utcnow,
)
from .notifications import DispatchResult, NotificationDispatcher, select_methods

logger = logging.getLogger(__name__)


class MatchProcessor:
    """
    Deduplicates, persists and notifies matches for one alert at a time.

    Usage:
        processor = MatchProcessor()
        new_matches = processor.process_matches(alert, matching_sites)
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        quiet_hours_policy: Optional[str] = None,
    ):
        """Initialize the processor."""
        self.db = db or get_db()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.quiet_hours_policy = quiet_hours_policy or get_scheduler_config().quiet_hours_policy

    def process_matches(self, alert: CampsiteAlert, sites: list[AvailableSite]) -> list[AlertMatch]:
        """
        Record sites not seen before for this alert and notify about them.

        Failures are contained: a missing user skips the alert, a failed
        write skips that one site, a failed dispatch leaves matches unnotified.

        Args:
            alert: The alert the sites matched
            sites: Sites that passed the criteria filter

        Returns:
            Newly created matches only
        """
        try:
            user = self.db.get_user(alert.user_id)
        except Exception as e:
            logger.error(f"Failed to load user {alert.user_id} for alert {alert.alert_id}: {e}")
            return []

        if not user:
            logger.error(f"User not found for alert {alert.alert_id}")
            return []

        try:
            existing = self.db.get_active_matches(alert.alert_id)
        except Exception as e:
            logger.error(f"Failed to load existing matches for alert {alert.alert_id}: {e}")
            return []

        seen = {match.dedup_key for match in existing}
        methods = select_methods(user)
        new_matches = []

        for site in sites:
            key = site.dedup_key
            if key in seen:
                logger.debug(f"Skipping duplicate match for site {site.site_id}")
                continue

            match = self._build_match(alert, site, methods)
            try:
                self.db.create_match(match)
            except Exception as e:
                logger.error(f"Failed to save match for site {site.site_id} (alert {alert.alert_id}): {e}")
                continue

            seen.add(key)
            new_matches.append(match)

            alert.matches_found += 1
            try:
                self.db.update_alert_match_count(alert.alert_id, alert.matches_found)
            except Exception as e:
                logger.error(f"Failed to update match count for alert {alert.alert_id}: {e}")

            logger.info(f"New match found for alert {alert.alert_id}: {site.site_name}")

        if new_matches:
            self.notify(user, alert, new_matches)

        return new_matches

    def _build_match(
        self,
        alert: CampsiteAlert,
        site: AvailableSite,
        methods: list[NotificationMethod],
    ) -> AlertMatch:
        return AlertMatch(
            match_id=str(uuid.uuid4()),
            alert_id=alert.alert_id,
            user_id=alert.user_id,
            park_system=alert.park_system,
            park_name=alert.park_name,
            campground_name=site.campground_name,
            site_name=site.site_name,
            site_id=site.site_id,
            site_type=site.site_type,
            available_dates=list(site.available_dates),
            reservation_url=site.reservation_url,
            found_at=utcnow(),
            notified_at=None,
            notification_methods=list(methods),
            is_expired=False,
        )

    def notify(
        self,
        user: UserProfile,
        alert: CampsiteAlert,
        matches: list[AlertMatch],
        now: Optional[datetime] = None,
    ) -> Optional[DispatchResult]:
        """
        Dispatch one batch and stamp notified_at if anything was delivered.

        Returns:
            The DispatchResult, or None if dispatch itself blew up
        """
        try:
            result = self.dispatcher.dispatch(user, alert, matches, now=now)
        except Exception as e:
            logger.error(f"Error sending notifications for alert {alert.alert_id}: {e}")
            return None

        if result.suppressed:
            action = "held for later delivery" if self.quiet_hours_policy == "defer" else "dropped"
            logger.info(f"Quiet hours: {len(matches)} notification(s) for alert {alert.alert_id} {action}")
            return result

        if not result.delivered:
            if result.outcomes:
                logger.warning(f"No notification delivered for alert {alert.alert_id}")
            return result

        notified_at = utcnow()
        try:
            self.db.mark_matches_notified([m.match_id for m in matches], notified_at)
        except Exception as e:
            logger.error(f"Failed to mark matches notified for alert {alert.alert_id}: {e}")
            return result

        for match in matches:
            match.notified_at = notified_at
        return result

    # =========================================================================
    # PERIODIC DUTIES
    # =========================================================================

    def expire_old_matches(self, today: Optional[date] = None) -> int:
        """
        Flag every match whose date ranges have all ended before today.

        Returns:
            Number of matches expired
        """
        today = today or utcnow().date()
        matches = self.db.get_all_active_matches()

        expired_ids = [m.match_id for m in matches if m.has_elapsed(today)]
        if expired_ids:
            self.db.mark_matches_expired(expired_ids)
            logger.info(f"Expired {len(expired_ids)} old matches")
        return len(expired_ids)

    def deliver_pending(self, now: Optional[datetime] = None) -> dict:
        """
        Re-dispatch matches that were never successfully notified.

        Matches are grouped per alert so each user gets one message per
        alert, exactly as for a fresh batch.

        Returns:
            Summary dict with counts
        """
        pending = self.db.get_unnotified_matches()
        by_alert: dict[str, list[AlertMatch]] = defaultdict(list)
        for match in pending:
            by_alert[match.alert_id].append(match)

        summary = {"pending": len(pending), "alerts": len(by_alert), "delivered": 0, "suppressed": 0}

        for alert_id, matches in by_alert.items():
            try:
                alert = self.db.get_alert(alert_id)
                user = self.db.get_user(matches[0].user_id)
            except Exception as e:
                logger.error(f"Failed to load alert/user for pending matches of {alert_id}: {e}")
                continue

            if not alert or not user:
                logger.warning(f"Skipping {len(matches)} pending match(es): alert {alert_id} or its user is gone")
                continue

            result = self.notify(user, alert, matches, now=now)
            if result is None:
                continue
            if result.suppressed:
                summary["suppressed"] += len(matches)
            elif result.delivered:
                summary["delivered"] += len(matches)

        logger.info(f"Deferred delivery complete: {summary}")
        return summary
