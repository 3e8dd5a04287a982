from datetime import date, datetime, timezone

import pytest
import pytz
import responses as resp_mock

from campsite_alerts.config import EmailConfig, SmsConfig
from campsite_alerts.exceptions import DeliveryError
from campsite_alerts.models import (
    AlertMatch,
    DateRange,
    NotificationMethod,
    NotificationPreferences,
    ParkSystem,
    SiteType,
)
from campsite_alerts.notifications import (
    NotificationDispatcher,
    format_phone_number,
    is_quiet_hours,
    render_email,
    render_sms,
    select_methods,
)

LA = pytz.timezone("America/Los_Angeles")
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"


def la_time(hour, minute):
    return LA.localize(datetime(2024, 8, 1, hour, minute))


def make_match(site_id="9", site_name="Site 009"):
    return AlertMatch(
        match_id=f"m-{site_id}",
        alert_id="alert-1",
        user_id="user-1",
        park_system=ParkSystem.RECREATION_GOV,
        park_name="Yosemite National Park",
        campground_name="Upper Pines",
        site_name=site_name,
        site_id=site_id,
        site_type=SiteType.TENT,
        available_dates=[DateRange(date(2024, 8, 3), date(2024, 8, 5))],
        reservation_url=f"https://www.recreation.gov/camping/campsites/{site_id}",
    )


@pytest.fixture
def email_config():
    return EmailConfig(
        provider="smtp",
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="user",
        smtp_password="secret",
        sendgrid_api_key="",
        from_email="alerts@example.com",
        from_name="Campsite Alerts",
    )


@pytest.fixture
def sms_config():
    return SmsConfig(account_sid="AC123", auth_token="token", phone_number="+15550001111")


@pytest.fixture
def dispatcher(email_config, sms_config):
    return NotificationDispatcher(email_config=email_config, sms_config=sms_config)


# ── Quiet hours ────────────────────────────────────────────────────────────────
# 22:00-08:00 wraps midnight.

def test_quiet_at_2330():
    assert is_quiet_hours(la_time(23, 30), "22:00", "08:00", "America/Los_Angeles") is True


def test_not_quiet_at_0900():
    assert is_quiet_hours(la_time(9, 0), "22:00", "08:00", "America/Los_Angeles") is False


def test_quiet_at_0600():
    assert is_quiet_hours(la_time(6, 0), "22:00", "08:00", "America/Los_Angeles") is True


def test_window_end_is_exclusive():
    assert is_quiet_hours(la_time(8, 0), "22:00", "08:00", "America/Los_Angeles") is False
    assert is_quiet_hours(la_time(22, 0), "22:00", "08:00", "America/Los_Angeles") is True


def test_same_day_window():
    assert is_quiet_hours(la_time(13, 0), "12:00", "14:00", "America/Los_Angeles") is True
    assert is_quiet_hours(la_time(14, 0), "12:00", "14:00", "America/Los_Angeles") is False


def test_now_is_converted_to_user_timezone():
    # 06:30 UTC is 23:30 the previous evening in Los Angeles (PDT)
    now = datetime(2024, 8, 2, 6, 30, tzinfo=timezone.utc)
    assert is_quiet_hours(now, "22:00", "08:00", "America/Los_Angeles") is True
    assert is_quiet_hours(now, "22:00", "08:00", "UTC") is True
    assert is_quiet_hours(now, "22:00", "06:00", "UTC") is False


def test_unset_or_malformed_bounds_never_suppress():
    assert is_quiet_hours(la_time(23, 30), None, "08:00", "America/Los_Angeles") is False
    assert is_quiet_hours(la_time(23, 30), "22:00", "", "America/Los_Angeles") is False
    assert is_quiet_hours(la_time(23, 30), "late", "08:00", "America/Los_Angeles") is False
    assert is_quiet_hours(la_time(23, 30), "22:00", "08:00", "Mars/Olympus") is False


# ── Method selection ───────────────────────────────────────────────────────────

def test_methods_need_an_address(make_user):
    assert select_methods(make_user()) == [NotificationMethod.EMAIL, NotificationMethod.SMS]
    assert select_methods(make_user(phone_number=None)) == [NotificationMethod.EMAIL]
    assert select_methods(make_user(email=None, phone_number=None)) == []


def test_methods_must_be_enabled(make_user):
    prefs = NotificationPreferences(methods=[NotificationMethod.SMS, NotificationMethod.PUSH])
    assert select_methods(make_user(notification_preferences=prefs)) == [NotificationMethod.SMS]


def test_format_phone_number():
    assert format_phone_number("(415) 555-0100") == "+14155550100"
    assert format_phone_number("1-415-555-0100") == "+14155550100"
    assert format_phone_number("+44 20 7946 0958") == "+442079460958"
    assert format_phone_number("555") == "555"


# ── Rendering ──────────────────────────────────────────────────────────────────

def test_email_lists_every_match(make_user, make_alert):
    matches = [make_match("9", "Site 009"), make_match("10", "Site 010")]
    subject, text, html = render_email(make_user(), make_alert(), matches)

    assert "Campsite Available: Yosemite National Park" in subject
    assert "Hi Sam" in text
    assert "Site 009 (tent): Sat, Aug 3 - Mon, Aug 5" in text
    assert "Site 010" in text
    assert "https://www.recreation.gov/camping/campsites/9" in html
    assert "https://www.recreation.gov/camping/campsites/10" in html
    assert "campsites matching" in html


def test_sms_summarizes_first_match(make_alert):
    message = render_sms(make_alert(), [make_match("9"), make_match("10")])
    assert "2 sites available at Yosemite National Park" in message
    assert message.endswith("https://www.recreation.gov/camping/campsites/9")


# ── Dispatch ───────────────────────────────────────────────────────────────────

@resp_mock.activate
def test_dispatch_reports_each_method(mocker, dispatcher, make_user, make_alert):
    smtp_cls = mocker.patch("campsite_alerts.notifications.smtplib.SMTP")
    server = smtp_cls.return_value.__enter__.return_value
    resp_mock.add(resp_mock.POST, TWILIO_URL, json={"sid": "SM1"}, status=201)

    result = dispatcher.dispatch(make_user(), make_alert(), [make_match()])

    assert not result.suppressed
    assert result.delivered
    assert [(o.method, o.success) for o in result.outcomes] == [
        (NotificationMethod.EMAIL, True),
        (NotificationMethod.SMS, True),
    ]
    smtp_cls.assert_called_once_with("smtp.example.com", 587)
    server.login.assert_called_once_with("user", "secret")
    server.send_message.assert_called_once()

    sms_request = resp_mock.calls[0].request
    assert "To=%2B14155550100" in sms_request.body
    assert sms_request.headers["Authorization"].startswith("Basic ")


@resp_mock.activate
def test_partial_failure_is_reported_not_raised(mocker, dispatcher, make_user, make_alert):
    mocker.patch("campsite_alerts.notifications.smtplib.SMTP", side_effect=OSError("refused"))
    resp_mock.add(resp_mock.POST, TWILIO_URL, json={"sid": "SM1"}, status=201)

    result = dispatcher.dispatch(make_user(), make_alert(), [make_match()])

    assert result.delivered
    [failure] = result.failures
    assert failure.method == NotificationMethod.EMAIL
    assert "refused" in failure.error


def test_quiet_hours_suppress_dispatch(mocker, dispatcher, make_user, make_alert):
    send_email = mocker.patch.object(dispatcher, "send_email")
    prefs = NotificationPreferences(
        quiet_hours_enabled=True,
        quiet_hours_start="22:00",
        quiet_hours_end="08:00",
        timezone="America/Los_Angeles",
    )

    result = dispatcher.dispatch(
        make_user(notification_preferences=prefs), make_alert(), [make_match()], now=la_time(23, 30)
    )

    assert result.suppressed
    assert result.outcomes == []
    send_email.assert_not_called()


def test_disabled_quiet_hours_do_not_suppress(mocker, dispatcher, make_user, make_alert):
    mocker.patch.object(dispatcher, "send_email")
    prefs = NotificationPreferences(
        quiet_hours_enabled=False, quiet_hours_start="22:00", quiet_hours_end="08:00"
    )

    result = dispatcher.dispatch(
        make_user(notification_preferences=prefs, phone_number=None),
        make_alert(),
        [make_match()],
        now=la_time(23, 30),
    )

    assert not result.suppressed
    assert result.delivered


def test_users_without_timezone_use_the_deployment_default(mocker, email_config, sms_config, make_user, make_alert):
    prefs = NotificationPreferences(
        quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="06:00"
    )
    user = make_user(notification_preferences=prefs, phone_number=None)
    # 23:30 the previous evening in Los Angeles
    now = datetime(2024, 8, 2, 6, 30, tzinfo=timezone.utc)

    pacific = NotificationDispatcher(
        email_config=email_config, sms_config=sms_config, default_timezone="America/Los_Angeles"
    )
    utc = NotificationDispatcher(email_config=email_config, sms_config=sms_config, default_timezone="UTC")
    mocker.patch.object(utc, "send_email")

    assert pacific.dispatch(user, make_alert(), [make_match()], now=now).suppressed
    assert not utc.dispatch(user, make_alert(), [make_match()], now=now).suppressed


def test_default_timezone_comes_from_config(mocker, email_config, sms_config):
    mocker.patch(
        "campsite_alerts.notifications.get_scheduler_config",
        return_value=mocker.Mock(default_timezone="Europe/Paris"),
    )
    dispatcher = NotificationDispatcher(email_config=email_config, sms_config=sms_config)
    assert dispatcher.default_timezone == "Europe/Paris"


def test_no_reachable_method_sends_nothing(mocker, dispatcher, make_user, make_alert):
    send_email = mocker.patch.object(dispatcher, "send_email")
    result = dispatcher.dispatch(make_user(email=None, phone_number=None), make_alert(), [make_match()])
    assert result.outcomes == []
    assert not result.delivered
    send_email.assert_not_called()


def test_unconfigured_sms_is_a_delivery_error(email_config, make_user, make_alert):
    dispatcher = NotificationDispatcher(
        email_config=email_config, sms_config=SmsConfig(account_sid="", auth_token="", phone_number="")
    )
    with pytest.raises(DeliveryError):
        dispatcher.send_sms("+14155550100", "hello")


@resp_mock.activate
def test_twilio_rejection_is_a_delivery_error(dispatcher):
    resp_mock.add(resp_mock.POST, TWILIO_URL, json={"message": "invalid number"}, status=400)
    with pytest.raises(DeliveryError) as exc_info:
        dispatcher.send_sms("555", "hello")
    assert exc_info.value.method == "sms"


def test_sendgrid_provider(mocker, email_config):
    email_config.provider = "sendgrid"
    email_config.sendgrid_api_key = "SG.key"
    client_cls = mocker.patch("sendgrid.SendGridAPIClient")
    client_cls.return_value.send.return_value = mocker.Mock(status_code=202)

    NotificationDispatcher(email_config=email_config, sms_config=mocker.Mock()).send_email(
        "camper@example.com", "Subject", "text", "<p>html</p>"
    )

    client_cls.assert_called_once_with(api_key="SG.key")
    client_cls.return_value.send.assert_called_once()
