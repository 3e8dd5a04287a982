"""
Scheduler module for Campsite Alerts.

Uses APScheduler to poll alerts on a per-tier schedule:
- Every 10/30/60 minutes: sweep premium/standard/basic tier alerts
- Daily: expire matches whose dates have passed
- Every 15 minutes (quiet-hours policy "defer"): deliver held-back notifications

Each tier has its own overlap guard: a sweep that fires while the previous
one for the same tier is still running is skipped, never run twice.

Can also be run manually via command line.
"""

import logging
import threading
import time
from typing import Callable, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import SchedulerConfig, get_scheduler_config
from .db import Database, get_db
from .matches import MatchProcessor
from .models import CampsiteAlert, SubscriptionTier, utcnow
from .pipeline import (
    check_alert,
    run_deferred_notifications,
    run_manual_check,
    run_match_expiry,
)

logger = logging.getLogger(__name__)


# =============================================================================
# TIER SWEEPS
# =============================================================================

class TierSweeper:
    """
    Runs sweeps over one subscription tier's active alerts.

    Owns the table of currently running tiers; a tier is added when its
    sweep starts and removed when it finishes, under a lock.

    Usage:
        sweeper = TierSweeper()
        summary = sweeper.run_sweep(SubscriptionTier.PREMIUM)
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        processor: Optional[MatchProcessor] = None,
        config: Optional[SchedulerConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._db = db
        self._processor = processor
        self.config = config or get_scheduler_config()
        self._sleep = sleep
        self._running: set[SubscriptionTier] = set()
        self._lock = threading.Lock()

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = get_db()
        return self._db

    @property
    def processor(self) -> MatchProcessor:
        if self._processor is None:
            self._processor = MatchProcessor(db=self.db)
        return self._processor

    @property
    def running_tiers(self) -> frozenset:
        with self._lock:
            return frozenset(self._running)

    def _try_start(self, tier: SubscriptionTier) -> bool:
        with self._lock:
            if tier in self._running:
                return False
            self._running.add(tier)
            return True

    def _finish(self, tier: SubscriptionTier) -> None:
        with self._lock:
            self._running.discard(tier)

    def run_sweep(self, tier: SubscriptionTier) -> Optional[dict]:
        """
        Check every pollable alert of a tier, one after another.

        Returns:
            Summary dict, or None if a sweep for this tier was already running
        """
        tier = SubscriptionTier(tier)
        if not self._try_start(tier):
            logger.warning(f"Skipping {tier.value} tier sweep - previous sweep still running")
            return None

        try:
            return self._sweep(tier)
        finally:
            self._finish(tier)

    def collect_alerts(self, tier: SubscriptionTier) -> tuple[list[CampsiteAlert], int]:
        """
        Active alerts of every user on the tier, minus those already over.

        Returns:
            (alerts to poll, number skipped because their window has elapsed)
        """
        today = utcnow().date()
        user_ids = self.db.get_user_ids_by_tier(tier)
        logger.debug(f"Found {len(user_ids)} users for {tier.value} tier")

        alerts = []
        skipped = 0
        for user_id in user_ids:
            try:
                user_alerts = self.db.get_active_alerts_for_user(user_id)
            except Exception as e:
                logger.error(f"Failed to load alerts for user {user_id} ({tier.value} tier): {e}")
                continue

            for alert in user_alerts:
                if alert.has_elapsed(today):
                    logger.debug(f"Skipping alert {alert.alert_id} - date range has passed")
                    skipped += 1
                    continue
                alerts.append(alert)

        return alerts, skipped

    def _sweep(self, tier: SubscriptionTier) -> dict:
        start_time = utcnow()
        logger.info(f"Starting sweep for {tier.value} tier")

        summary = {
            "tier": tier.value,
            "started_at": start_time.isoformat(),
            "alerts": 0,
            "skipped_elapsed": 0,
            "checked": 0,
            "failed": 0,
            "new_matches": 0,
            "unparsed": 0,
            "errors": [],
        }

        try:
            alerts, skipped = self.collect_alerts(tier)
        except Exception as e:
            logger.error(f"Failed to enumerate alerts for {tier.value} tier: {e}")
            summary["errors"].append(str(e))
            return summary

        summary["alerts"] = len(alerts)
        summary["skipped_elapsed"] = skipped

        for index, alert in enumerate(alerts):
            if index:
                # Pace requests so no upstream host sees a burst
                self._sleep(self.config.inter_alert_pacing)

            try:
                result = check_alert(alert, db=self.db, processor=self.processor)
            except Exception as e:
                logger.exception(f"Unhandled error for alert {alert.alert_id} ({tier.value} tier): {e}")
                summary["failed"] += 1
                summary["errors"].append(f"{alert.alert_id}: {e}")
                continue

            summary["checked"] += 1
            summary["new_matches"] += result["new_matches"]
            if not result.get("parser_implemented", True):
                summary["unparsed"] += 1
            if result["status"] != "success":
                summary["failed"] += 1
                summary["errors"].append(f"{alert.alert_id}: {result['error']}")

        duration = (utcnow() - start_time).total_seconds()
        summary["duration_seconds"] = duration
        logger.info(f"Completed {tier.value} tier sweep in {duration:.1f}s: {summary}")
        return summary


# =============================================================================
# APSCHEDULER WIRING
# =============================================================================

def create_scheduler(
    sweeper: Optional[TierSweeper] = None,
    config: Optional[SchedulerConfig] = None,
) -> BlockingScheduler:
    """
    Create and configure the APScheduler.

    Jobs:
    1. sweep_<tier>: one interval job per polled tier
    2. expire_matches: daily - flag matches whose dates have passed
    3. deliver_deferred: interval - only when quiet-hours policy is "defer"

    Returns:
        Configured BlockingScheduler
    """
    config = config or get_scheduler_config()
    sweeper = sweeper or TierSweeper(config=config)
    scheduler = BlockingScheduler()

    for tier_name, minutes in config.tier_interval_minutes.items():
        tier = SubscriptionTier(tier_name)
        scheduler.add_job(
            sweeper.run_sweep,
            trigger=IntervalTrigger(minutes=minutes),
            args=[tier],
            id=f"sweep_{tier.value}",
            name=f"Sweep {tier.value} tier alerts",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    scheduler.add_job(
        run_match_expiry,
        trigger=CronTrigger(hour=config.expiry_cron_hour, minute=0),
        id="expire_matches",
        name="Expire matches whose dates have passed",
        replace_existing=True,
        max_instances=1,
    )

    if config.quiet_hours_policy == "defer":
        scheduler.add_job(
            run_deferred_notifications,
            trigger=IntervalTrigger(minutes=config.deferred_delivery_interval_minutes),
            id="deliver_deferred",
            name="Deliver notifications held back by quiet hours",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    logger.info(f"Scheduler configured with {len(scheduler.get_jobs())} jobs")
    return scheduler


def start_scheduler() -> None:
    """Start the scheduler (blocking)."""
    scheduler = create_scheduler()

    logger.info("Starting Campsite Alerts scheduler...")
    logger.info("Press Ctrl+C to stop")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Campsite Alerts Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "sweep", "check", "expire", "deliver"],
        default="schedule",
        help=(
            "Mode to run: schedule (continuous), sweep (one tier once), check (one alert), "
            "expire (expire old matches), deliver (send deferred notifications)"
        ),
    )
    parser.add_argument(
        "--tier",
        choices=[t.value for t in SubscriptionTier],
        help="Subscription tier for --mode sweep",
    )
    parser.add_argument("--alert-id", help="Alert ID for --mode check")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level",
    )

    args = parser.parse_args()

    if args.mode == "sweep" and not args.tier:
        parser.error("--mode sweep requires --tier")
    if args.mode == "check" and not args.alert_id:
        parser.error("--mode check requires --alert-id")

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.mode == "schedule":
        start_scheduler()
    elif args.mode == "sweep":
        result = TierSweeper().run_sweep(SubscriptionTier(args.tier))
        print(f"Sweep complete: {result}")
    elif args.mode == "check":
        result = run_manual_check(args.alert_id)
        print(f"Check complete: {result}")
    elif args.mode == "expire":
        result = run_match_expiry()
        print(f"Match expiry: {result}")
    elif args.mode == "deliver":
        result = run_deferred_notifications()
        print(f"Deferred delivery: {result}")


if __name__ == "__main__":
    main()
