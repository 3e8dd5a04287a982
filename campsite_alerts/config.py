"""
Configuration module for Campsite Alerts.

Loads environment variables and provides configuration constants.
All sensitive values should be in .env file (never commit to git).
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_KEY", ""),
        )


@dataclass
class EmailConfig:
    """Email sending configuration (SMTP or SendGrid)."""
    provider: str  # "smtp" or "sendgrid"
    # SMTP settings
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    # SendGrid settings
    sendgrid_api_key: str
    # Common
    from_email: str
    from_name: str

    @classmethod
    def from_env(cls) -> "EmailConfig":
        return cls(
            provider=os.getenv("EMAIL_PROVIDER", "smtp"),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", ""),
            from_email=os.getenv("FROM_EMAIL", "alerts@campsitealerts.com"),
            from_name=os.getenv("FROM_NAME", "Campsite Alerts"),
        )


@dataclass
class SmsConfig:
    """Twilio SMS configuration."""
    account_sid: str
    auth_token: str
    phone_number: str

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.phone_number)

    @classmethod
    def from_env(cls) -> "SmsConfig":
        return cls(
            account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            phone_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
        )


@dataclass
class ScraperConfig:
    """Settings shared by all park system scrapers."""
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    recreation_gov_api_key: str = ""

    # Timing (milliseconds, like the rest of the scheduling knobs)
    request_timeout_ms: int = 30000
    retry_attempts: int = 3
    retry_base_delay_ms: int = 5000
    month_request_delay_ms: int = 500  # Pause between monthly grid requests

    @property
    def request_timeout(self) -> float:
        """Request timeout in seconds (for requests)."""
        return self.request_timeout_ms / 1000

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_delay_ms / 1000

    @property
    def month_request_delay(self) -> float:
        return self.month_request_delay_ms / 1000

    @classmethod
    def from_env(cls) -> "ScraperConfig":
        defaults = cls()
        return cls(
            user_agent=os.getenv("SCRAPER_USER_AGENT", defaults.user_agent),
            recreation_gov_api_key=os.getenv("RECREATION_GOV_API_KEY", ""),
            request_timeout_ms=int(os.getenv("REQUEST_TIMEOUT_MS", "30000")),
            retry_attempts=int(os.getenv("RETRY_ATTEMPTS", "3")),
            retry_base_delay_ms=int(os.getenv("RETRY_BASE_DELAY_MS", "5000")),
            month_request_delay_ms=int(os.getenv("MONTH_REQUEST_DELAY_MS", "500")),
        )


def _default_tier_intervals() -> dict[str, int]:
    return {"premium": 10, "standard": 30, "basic": 60}


@dataclass
class SchedulerConfig:
    """Polling cadence and notification policy."""
    # Minutes between sweeps per subscription tier (free tier is manual-only)
    tier_interval_minutes: dict[str, int] = field(default_factory=_default_tier_intervals)

    # Pause between consecutive alerts inside one sweep
    inter_alert_pacing_ms: int = 2000

    # Daily match expiry job
    expiry_cron_hour: int = 0

    # What to do with notifications that fall inside quiet hours: "drop" or "defer"
    quiet_hours_policy: str = "drop"
    deferred_delivery_interval_minutes: int = 15

    default_timezone: str = "America/Los_Angeles"

    @property
    def inter_alert_pacing(self) -> float:
        return self.inter_alert_pacing_ms / 1000

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        intervals = {
            tier: int(os.getenv(f"{tier.upper()}_INTERVAL_MINUTES", str(minutes)))
            for tier, minutes in _default_tier_intervals().items()
        }
        policy = os.getenv("QUIET_HOURS_POLICY", "drop").lower()
        if policy not in ("drop", "defer"):
            raise ValueError(f"QUIET_HOURS_POLICY must be 'drop' or 'defer', got {policy!r}")
        return cls(
            tier_interval_minutes=intervals,
            inter_alert_pacing_ms=int(os.getenv("INTER_ALERT_PACING_MS", "2000")),
            expiry_cron_hour=int(os.getenv("EXPIRY_CRON_HOUR", "0")),
            quiet_hours_policy=policy,
            deferred_delivery_interval_minutes=int(
                os.getenv("DEFERRED_DELIVERY_INTERVAL_MINUTES", "15")
            ),
            default_timezone=os.getenv("DEFAULT_TIMEZONE", "America/Los_Angeles"),
        )


# Global configuration instances (lazy loaded)
_supabase_config: Optional[SupabaseConfig] = None
_email_config: Optional[EmailConfig] = None
_sms_config: Optional[SmsConfig] = None
_scraper_config: Optional[ScraperConfig] = None
_scheduler_config: Optional[SchedulerConfig] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_email_config() -> EmailConfig:
    """Get email configuration (cached)."""
    global _email_config
    if _email_config is None:
        _email_config = EmailConfig.from_env()
    return _email_config


def get_sms_config() -> SmsConfig:
    """Get SMS configuration (cached)."""
    global _sms_config
    if _sms_config is None:
        _sms_config = SmsConfig.from_env()
    return _sms_config


def get_scraper_config() -> ScraperConfig:
    """Get scraper configuration (cached)."""
    global _scraper_config
    if _scraper_config is None:
        _scraper_config = ScraperConfig.from_env()
    return _scraper_config


def get_scheduler_config() -> SchedulerConfig:
    """Get scheduler configuration (cached)."""
    global _scheduler_config
    if _scheduler_config is None:
        _scheduler_config = SchedulerConfig.from_env()
    return _scheduler_config
