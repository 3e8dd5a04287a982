"""
Main Pipeline module for Campsite Alerts.

Orchestrates one alert's check:
1. Validate → Fail fast on alerts that cannot be polled
2. Scrape → Fetch normalized availability from the alert's park system
3. Filter → Keep sites matching the alert's criteria
4. Match → Dedup, persist and notify new matches
5. Record → Stamp last_checked / last_error on the alert

Plus the periodic jobs that run outside the tier sweeps (match expiry,
deferred delivery) and the manual "check now" entry point.
"""

import logging
from typing import Optional

from .criteria_matching import filter_sites
from .db import Database, get_db
from .exceptions import ConfigurationError, UpstreamError
from .matches import MatchProcessor
from .models import AlertMatch, CampsiteAlert, utcnow
from .sources import get_scraper

logger = logging.getLogger(__name__)


# =============================================================================
# PIPELINE FUNCTIONS
# =============================================================================

def run_scraper_for_alert(
    alert: CampsiteAlert,
    processor: Optional[MatchProcessor] = None,
) -> list[AlertMatch]:
    """
    Run scrape → filter → match for one alert.

    Args:
        alert: The alert to check
        processor: Match processor to use (defaults to a new one)

    Returns:
        Newly created matches

    Raises:
        UpstreamError: the alert is misconfigured or its park system failed
    """
    alert.validate()

    scraper = get_scraper(alert.park_system)
    if scraper is None:
        raise ConfigurationError(
            f"No scraper available for park system {alert.park_system.value}",
            user_message="This reservation system is not supported yet.",
        )

    sites = scraper.check_availability(alert)
    matching = filter_sites(sites, alert)
    logger.info(f"Alert {alert.alert_id}: {len(matching)}/{len(sites)} sites match criteria")

    if not matching:
        return []

    processor = processor or MatchProcessor()
    return processor.process_matches(alert, matching)


def check_alert(
    alert: CampsiteAlert,
    db: Optional[Database] = None,
    processor: Optional[MatchProcessor] = None,
) -> dict:
    """
    Check one alert and record the attempt on it. Never raises.

    last_checked is updated whether or not the check succeeded, and
    last_error holds the user-facing reason of the latest failure.

    Returns:
        Summary dict with status, new match count, error (if any) and
        whether the park system's responses can be parsed at all
    """
    db = db or get_db()
    summary = {
        "alert_id": alert.alert_id,
        "status": "success",
        "new_matches": 0,
        "error": None,
        "parser_implemented": True,
    }

    try:
        new_matches = run_scraper_for_alert(alert, processor)
        summary["new_matches"] = len(new_matches)
        if not get_scraper(alert.park_system).parser_implemented:
            # Zero matches here means "cannot tell", not "nothing open"
            summary["parser_implemented"] = False
    except UpstreamError as e:
        logger.error(f"Alert {alert.alert_id} check failed ({e.source or 'config'}): {e}")
        summary["status"] = "error"
        summary["error"] = e.user_message
    except Exception as e:
        logger.exception(f"Unexpected error checking alert {alert.alert_id}: {e}")
        summary["status"] = "error"
        summary["error"] = str(e)

    checked_at = utcnow()
    alert.last_checked = checked_at
    alert.last_error = summary["error"]
    try:
        db.update_alert_checked(alert.alert_id, checked_at, summary["error"])
    except Exception as e:
        logger.error(f"Failed to record check time for alert {alert.alert_id}: {e}")

    return summary


def run_manual_check(
    alert_id: str,
    db: Optional[Database] = None,
    processor: Optional[MatchProcessor] = None,
) -> dict:
    """
    Check a single alert right now, outside any tier sweep.

    Returns:
        check_alert() summary, or a summary with status "not_found" /
        "inactive" when the alert cannot be checked
    """
    db = db or get_db()
    alert = db.get_alert(alert_id)

    if not alert:
        logger.warning(f"Manual check requested for unknown alert {alert_id}")
        return {"alert_id": alert_id, "status": "not_found", "new_matches": 0, "error": "Alert not found"}

    if not alert.is_active:
        return {"alert_id": alert_id, "status": "inactive", "new_matches": 0, "error": "Alert is not active"}

    logger.info(f"Running manual check for alert {alert_id}")
    return check_alert(alert, db=db, processor=processor)


# =============================================================================
# PERIODIC JOBS
# =============================================================================

def run_match_expiry(processor: Optional[MatchProcessor] = None) -> dict:
    """
    Expire matches whose dates have passed and return summary.

    Returns:
        Summary dict with counts
    """
    logger.info("Running match expiry...")

    try:
        expired = (processor or MatchProcessor()).expire_old_matches()
        return {"expired": expired, "status": "success"}
    except Exception as e:
        logger.error(f"Match expiry failed: {e}")
        return {"expired": 0, "status": "error", "error": str(e)}


def run_deferred_notifications(processor: Optional[MatchProcessor] = None) -> dict:
    """
    Deliver matches held back by quiet hours (or by a failed dispatch).

    Returns:
        Summary dict with counts
    """
    logger.info("Running deferred notification delivery...")

    try:
        summary = (processor or MatchProcessor()).deliver_pending()
        summary["status"] = "success"
        return summary
    except Exception as e:
        logger.error(f"Deferred delivery failed: {e}")
        return {"delivered": 0, "status": "error", "error": str(e)}
