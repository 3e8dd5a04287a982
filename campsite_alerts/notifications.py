"""
Notification module for Campsite Alerts.

Decides whether and how to tell a user about new matches, then delivers:
- Quiet hours: suppress dispatch inside the user's HH:mm window (in their timezone)
- Method selection: email / SMS, only where the user has an address for it
- Transports: SMTP or SendGrid for email, Twilio REST API for SMS

Dispatch is batched per alert and returns a per-method outcome list; a
transport failure is reported, never raised.
"""

import smtplib
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

import pytz
import requests

from .config import EmailConfig, SmsConfig, get_email_config, get_scheduler_config, get_sms_config
from .exceptions import DeliveryError
from .models import (
    AlertMatch,
    CampsiteAlert,
    NotificationMethod,
    UserProfile,
    utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EMAIL / SMS TEMPLATES
# =============================================================================

MATCH_EMAIL_SUBJECT = "🏕️ Campsite Available: {park_name}"

MATCH_EMAIL_HTML = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #2E7D32; color: white; padding: 20px; border-radius: 8px 8px 0 0; }}
        .content {{ background: #f9f9f9; padding: 20px; border-radius: 0 0 8px 8px; }}
        .match {{ background: white; padding: 15px; margin: 10px 0; border-radius: 4px; border-left: 4px solid #2E7D32; }}
        .btn {{ display: inline-block; background: #2E7D32; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; margin-top: 10px; }}
        .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>🏕️ Campsite Alert</h1>
            <p>Great news! We found availability at {park_name}</p>
        </div>
        <div class="content">
            <p>Hi {name},</p>
            <p>We found <strong>{match_count}</strong> available campsite{plural} matching your alert:</p>
            {match_blocks}
            <p style="margin-top: 20px;">Act fast - popular campsites get booked quickly!</p>
        </div>
        <div class="footer">
            <p>You're receiving this because you set up a campsite alert for {park_name}.</p>
        </div>
    </div>
</body>
</html>
"""

MATCH_BLOCK_HTML = """
            <div class="match">
                <h3>{site_name}</h3>
                <p><strong>Campground:</strong> {campground_name}</p>
                <p><strong>Site Type:</strong> {site_type}</p>
                <p><strong>Available Dates:</strong></p>
                <ul>{date_items}</ul>
                <a href="{reservation_url}" class="btn">Book Now</a>
            </div>"""

MATCH_EMAIL_TEXT = """
Campsite Alert: {park_name}

Hi {name},

We found {match_count} available campsite(s) matching your alert:

{match_lines}

Book now before they're gone!

{first_url}
"""

MATCH_SMS = (
    "🏕️ Campsite Alert: {match_count} site{plural} available at {park_name}! "
    "First available: {site_name}. Book now: {reservation_url}"
)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


def format_day(day: date) -> str:
    """Short human date, e.g. 'Sat, Aug 3'."""
    return f"{day:%a, %b} {day.day}"


def render_email(
    user: UserProfile,
    alert: CampsiteAlert,
    matches: list[AlertMatch],
) -> tuple[str, str, str]:
    """
    Build the email for a batch of matches.

    Returns:
        (subject, text body, html body)
    """
    name = user.display_name or "Camper"
    count = len(matches)

    match_lines = "\n".join(
        f"• {m.site_name} ({m.site_type.value}): "
        + ", ".join(f"{format_day(r.start)} - {format_day(r.end)}" for r in m.available_dates)
        for m in matches
    )
    match_blocks = "".join(
        MATCH_BLOCK_HTML.format(
            site_name=escape(m.site_name),
            campground_name=escape(m.campground_name),
            site_type=m.site_type.value,
            date_items="".join(
                f"<li>{format_day(r.start)} to {format_day(r.end)}</li>" for r in m.available_dates
            ),
            reservation_url=escape(m.reservation_url, quote=True),
        )
        for m in matches
    )

    subject = MATCH_EMAIL_SUBJECT.format(park_name=alert.park_name)
    text = MATCH_EMAIL_TEXT.format(
        park_name=alert.park_name,
        name=name,
        match_count=count,
        match_lines=match_lines,
        first_url=matches[0].reservation_url,
    )
    html = MATCH_EMAIL_HTML.format(
        park_name=escape(alert.park_name),
        name=escape(name),
        match_count=count,
        plural="s" if count > 1 else "",
        match_blocks=match_blocks,
    )
    return subject, text, html


def render_sms(alert: CampsiteAlert, matches: list[AlertMatch]) -> str:
    count = len(matches)
    return MATCH_SMS.format(
        match_count=count,
        plural="s" if count > 1 else "",
        park_name=alert.park_name,
        site_name=matches[0].site_name,
        reservation_url=matches[0].reservation_url,
    )


# =============================================================================
# DECISION LOGIC
# =============================================================================

def _minutes_since_midnight(hhmm: str) -> int:
    hours, minutes = hhmm.strip().split(":")
    hours, minutes = int(hours), int(minutes)
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: {hhmm!r}")
    return hours * 60 + minutes


def is_quiet_hours(
    now: datetime,
    start: Optional[str],
    end: Optional[str],
    timezone: str,
) -> bool:
    """
    Whether `now` falls inside a quiet-hours window.

    The window is [start, end) in the named timezone. When start > end it
    wraps past midnight (22:00-08:00 covers 23:30 and 06:00). An unset bound
    never suppresses; malformed times or timezones are logged and ignored.
    """
    if not start or not end:
        return False

    try:
        local = now.astimezone(pytz.timezone(timezone))
        start_minutes = _minutes_since_midnight(start)
        end_minutes = _minutes_since_midnight(end)
    except (ValueError, pytz.UnknownTimeZoneError) as e:
        logger.error(f"Error checking quiet hours ({start}-{end} {timezone}): {e}")
        return False

    current = local.hour * 60 + local.minute

    if start_minutes > end_minutes:
        return current >= start_minutes or current < end_minutes
    return start_minutes <= current < end_minutes


def in_quiet_hours(
    user: UserProfile,
    now: Optional[datetime] = None,
    default_timezone: str = "UTC",
) -> bool:
    """Apply the user's own quiet-hours preferences, in default_timezone if they set none."""
    prefs = user.notification_preferences
    if not prefs.quiet_hours_enabled:
        return False
    return is_quiet_hours(
        now or utcnow(),
        prefs.quiet_hours_start,
        prefs.quiet_hours_end,
        prefs.timezone or default_timezone,
    )


def select_methods(user: UserProfile) -> list[NotificationMethod]:
    """
    Enabled methods the user can actually be reached by.

    Methods without a delivery address (or without a transport, like push)
    are skipped silently.
    """
    enabled = user.notification_preferences.methods
    methods = []
    if NotificationMethod.EMAIL in enabled and user.email:
        methods.append(NotificationMethod.EMAIL)
    if NotificationMethod.SMS in enabled and user.phone_number:
        methods.append(NotificationMethod.SMS)
    return methods


def format_phone_number(phone: str) -> str:
    """
    E.164 form of a phone number, assuming US when no country code is given.

    Unrecognizable input is returned unchanged for the carrier to reject.
    """
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) > 10:
        return f"+{digits}"
    return phone


# =============================================================================
# DISPATCH
# =============================================================================

@dataclass
class DeliveryOutcome:
    """Result of one delivery method for one batch."""
    method: NotificationMethod
    success: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """What happened to a batch of matches."""
    suppressed: bool = False
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        """True if at least one method got the message out."""
        return any(o.success for o in self.outcomes)

    @property
    def failures(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if not o.success]


class NotificationDispatcher:
    """
    Delivers match notifications by email and SMS.

    Usage:
        dispatcher = NotificationDispatcher()
        result = dispatcher.dispatch(user, alert, new_matches)
    """

    def __init__(
        self,
        email_config: Optional[EmailConfig] = None,
        sms_config: Optional[SmsConfig] = None,
        session: Optional[requests.Session] = None,
        default_timezone: Optional[str] = None,
    ):
        """Initialize the dispatcher."""
        self.email_config = email_config or get_email_config()
        self.sms_config = sms_config or get_sms_config()
        self.session = session or requests.Session()
        self.default_timezone = default_timezone or get_scheduler_config().default_timezone

    def dispatch(
        self,
        user: UserProfile,
        alert: CampsiteAlert,
        matches: list[AlertMatch],
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Notify a user about a batch of new matches for one alert.

        Args:
            user: Owner of the alert
            alert: The alert the matches belong to
            matches: Newly created matches (one batch, one message per method)
            now: Current instant (defaults to utcnow)

        Returns:
            DispatchResult with suppression flag and per-method outcomes
        """
        if not matches:
            return DispatchResult()

        if in_quiet_hours(user, now, self.default_timezone):
            logger.info(f"Skipping notifications for user {user.user_id} - quiet hours active")
            return DispatchResult(suppressed=True)

        methods = select_methods(user)
        if not methods:
            logger.info(f"User {user.user_id} has no reachable notification method")
            return DispatchResult()

        result = DispatchResult()
        for method in methods:
            try:
                if method == NotificationMethod.EMAIL:
                    subject, text, html = render_email(user, alert, matches)
                    self.send_email(user.email, subject, text, html)
                elif method == NotificationMethod.SMS:
                    self.send_sms(user.phone_number, render_sms(alert, matches))
                result.outcomes.append(DeliveryOutcome(method, True))
                logger.info(
                    f"{method.value} notification sent to user {user.user_id} for alert {alert.alert_id}"
                )
            except DeliveryError as e:
                logger.error(f"Failed to send {method.value} for alert {alert.alert_id}: {e}")
                result.outcomes.append(DeliveryOutcome(method, False, str(e)))

        return result

    # =========================================================================
    # EMAIL TRANSPORT
    # =========================================================================

    def send_email(self, to_email: str, subject: str, text: str, html: Optional[str] = None) -> None:
        """
        Send one email via the configured provider.

        Raises:
            DeliveryError: provider not configured or rejected the message
        """
        if self.email_config.provider == "sendgrid":
            self._send_via_sendgrid(to_email, subject, text, html or text)
        else:
            self._send_via_smtp(to_email, subject, text, html or text)

    def _send_via_smtp(self, to_email: str, subject: str, text: str, html: str) -> None:
        """Send email via SMTP."""
        if not self.email_config.smtp_host:
            logger.warning("SMTP host not configured - skipping email")
            raise DeliveryError("SMTP host not configured", method="email")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.email_config.from_name} <{self.email_config.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.email_config.smtp_host, self.email_config.smtp_port) as server:
                server.starttls()
                if self.email_config.smtp_user and self.email_config.smtp_password:
                    server.login(self.email_config.smtp_user, self.email_config.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP error: {e}", method="email") from e

    def _send_via_sendgrid(self, to_email: str, subject: str, text: str, html: str) -> None:
        """Send email via SendGrid API."""
        if not self.email_config.sendgrid_api_key:
            logger.warning("SendGrid API key not configured - skipping email")
            raise DeliveryError("SendGrid API key not configured", method="email")

        import sendgrid
        from sendgrid.helpers.mail import Email, Mail, To

        sg = sendgrid.SendGridAPIClient(api_key=self.email_config.sendgrid_api_key)
        message = Mail(
            from_email=Email(self.email_config.from_email, self.email_config.from_name),
            to_emails=To(to_email),
            subject=subject,
            plain_text_content=text,
            html_content=html,
        )

        try:
            response = sg.send(message)
        except Exception as e:
            raise DeliveryError(f"SendGrid error: {e}", method="email") from e

        if response.status_code not in (200, 201, 202):
            raise DeliveryError(f"SendGrid error: {response.status_code}", method="email")

    # =========================================================================
    # SMS TRANSPORT
    # =========================================================================

    def send_sms(self, to_number: str, message: str) -> None:
        """
        Send one SMS through Twilio's Messages API.

        Raises:
            DeliveryError: Twilio not configured or the request failed
        """
        if not self.sms_config.is_configured:
            logger.warning("Twilio not configured - skipping SMS")
            raise DeliveryError("Twilio not configured", method="sms")

        formatted_to = format_phone_number(to_number)
        try:
            response = self.session.post(
                TWILIO_MESSAGES_URL.format(account_sid=self.sms_config.account_sid),
                data={"To": formatted_to, "From": self.sms_config.phone_number, "Body": message},
                auth=(self.sms_config.account_sid, self.sms_config.auth_token),
                timeout=30,
            )
        except requests.RequestException as e:
            raise DeliveryError(f"Twilio request failed: {e}", method="sms") from e

        if not response.ok:
            raise DeliveryError(
                f"Twilio error: {response.status_code} {response.text[:200]}", method="sms"
            )

        logger.info(f"SMS sent to {formatted_to}")
