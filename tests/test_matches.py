from datetime import date

import pytest

from campsite_alerts.matches import MatchProcessor
from campsite_alerts.models import AvailableSite, DateRange, NotificationMethod, SiteType
from campsite_alerts.notifications import DeliveryOutcome, DispatchResult


def make_site(site_id="9", ranges=((date(2024, 8, 3), date(2024, 8, 5)),)):
    return AvailableSite(
        site_id=site_id,
        site_name=f"Site {site_id}",
        site_type=SiteType.TENT,
        campground_id="12345",
        campground_name="Upper Pines",
        available_dates=[DateRange(start, end) for start, end in ranges],
        reservation_url=f"https://www.recreation.gov/camping/campsites/{site_id}",
    )


@pytest.fixture
def alert(fake_db, make_alert, make_user):
    fake_db.add_user(make_user())
    return fake_db.add_alert(make_alert())


@pytest.fixture
def processor(fake_db, dispatcher):
    return MatchProcessor(db=fake_db, dispatcher=dispatcher, quiet_hours_policy="drop")


# ── Dedup ──────────────────────────────────────────────────────────────────────

def test_new_sites_become_matches(processor, fake_db, alert, dispatcher):
    new = processor.process_matches(alert, [make_site("9"), make_site("10")])

    assert len(new) == 2
    assert len(fake_db.matches) == 2
    assert fake_db.alerts["alert-1"].matches_found == 2
    stored = fake_db.matches[new[0].match_id]
    assert stored.alert_id == "alert-1"
    assert stored.park_name == "Yosemite National Park"
    assert stored.notification_methods == [NotificationMethod.EMAIL, NotificationMethod.SMS]
    assert not stored.is_expired
    dispatcher.dispatch.assert_called_once()  # one batch, not one call per match


def test_processing_same_sites_twice_is_idempotent(processor, fake_db, alert, dispatcher):
    first = processor.process_matches(alert, [make_site("9")])
    second = processor.process_matches(alert, [make_site("9")])

    assert len(first) == 1
    assert second == []
    assert len(fake_db.matches) == 1
    assert dispatcher.dispatch.call_count == 1


def test_changed_dates_are_a_new_opportunity(processor, fake_db, alert):
    processor.process_matches(alert, [make_site("9")])
    new = processor.process_matches(
        alert, [make_site("9", ranges=((date(2024, 8, 3), date(2024, 8, 6)),))]
    )
    assert len(new) == 1
    assert len(fake_db.matches) == 2


def test_expired_matches_do_not_block_rediscovery(processor, fake_db, alert):
    [first] = processor.process_matches(alert, [make_site("9")])
    fake_db.mark_matches_expired([first.match_id])

    assert len(processor.process_matches(alert, [make_site("9")])) == 1


# ── Notification ───────────────────────────────────────────────────────────────

def test_successful_dispatch_stamps_notified_at(processor, fake_db, alert):
    new = processor.process_matches(alert, [make_site("9"), make_site("10")])
    assert all(fake_db.matches[m.match_id].notified_at is not None for m in new)


def test_failed_dispatch_keeps_matches_unnotified(processor, fake_db, alert, dispatcher):
    dispatcher.dispatch.return_value = DispatchResult(
        outcomes=[DeliveryOutcome(NotificationMethod.EMAIL, False, "SMTP error")]
    )

    new = processor.process_matches(alert, [make_site("9")])

    assert len(new) == 1
    assert fake_db.matches[new[0].match_id].notified_at is None


def test_dispatch_crash_does_not_roll_back_matches(processor, fake_db, alert, dispatcher):
    dispatcher.dispatch.side_effect = RuntimeError("transport exploded")

    new = processor.process_matches(alert, [make_site("9")])

    assert len(new) == 1
    assert len(fake_db.matches) == 1
    assert fake_db.matches[new[0].match_id].notified_at is None


def test_suppressed_dispatch_leaves_matches_unnotified(processor, fake_db, alert, dispatcher):
    dispatcher.dispatch.return_value = DispatchResult(suppressed=True)
    new = processor.process_matches(alert, [make_site("9")])
    assert fake_db.matches[new[0].match_id].notified_at is None


# ── Failure isolation ──────────────────────────────────────────────────────────

def test_missing_user_skips_alert(processor, fake_db, make_alert, dispatcher):
    orphan = fake_db.add_alert(make_alert(alert_id="orphan", user_id="ghost"))

    assert processor.process_matches(orphan, [make_site("9")]) == []
    assert fake_db.matches == {}
    dispatcher.dispatch.assert_not_called()


def test_one_failed_write_does_not_stop_the_batch(mocker, processor, fake_db, alert):
    real_create = fake_db.create_match

    def flaky_create(match):
        if match.site_id == "9":
            raise RuntimeError("insert failed")
        return real_create(match)

    mocker.patch.object(fake_db, "create_match", side_effect=flaky_create)

    new = processor.process_matches(alert, [make_site("9"), make_site("10")])

    assert [m.site_id for m in new] == ["10"]
    assert fake_db.alerts["alert-1"].matches_found == 1


# ── Periodic duties ────────────────────────────────────────────────────────────

def test_expire_old_matches(processor, fake_db, alert):
    processor.process_matches(alert, [
        make_site("9", ranges=((date(2024, 8, 3), date(2024, 8, 5)),)),
        make_site("10", ranges=((date(2024, 8, 3), date(2024, 8, 5)), (date(2024, 8, 8), date(2024, 8, 9)))),
    ])

    assert processor.expire_old_matches(today=date(2024, 8, 6)) == 1
    expired = {m.site_id for m in fake_db.matches.values() if m.is_expired}
    assert expired == {"9"}
    assert processor.expire_old_matches(today=date(2024, 8, 6)) == 0


def test_deliver_pending_sends_one_batch_per_alert(processor, fake_db, alert, dispatcher):
    dispatcher.dispatch.return_value = DispatchResult(suppressed=True)
    processor.process_matches(alert, [make_site("9"), make_site("10")])

    dispatcher.dispatch.reset_mock()
    dispatcher.dispatch.return_value = DispatchResult(
        outcomes=[DeliveryOutcome(NotificationMethod.EMAIL, True)]
    )

    summary = processor.deliver_pending()

    assert summary["pending"] == 2
    assert summary["delivered"] == 2
    dispatcher.dispatch.assert_called_once()
    _, _, batch = dispatcher.dispatch.call_args.args
    assert {m.site_id for m in batch} == {"9", "10"}
    assert all(m.notified_at is not None for m in fake_db.matches.values())
