"""Configuration management."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BackendConfig:
    """Hosted backend (row API + auth API) configuration."""
    url: str        # e.g. "https://xyzcompany.supabase.co"
    anon_key: str   # public API key sent as `apikey`
    timeout_seconds: float = 15.0


@dataclass
class TwilioConfig:
    """Twilio SMS configuration."""
    account_sid: Optional[str]
    auth_token: Optional[str]
    from_number: Optional[str]
    to_number: Optional[str]

    def is_complete(self) -> bool:
        return all([self.account_sid, self.auth_token, self.from_number, self.to_number])


@dataclass
class SMTPConfig:
    """SMTP configuration for the email channel."""
    host: Optional[str]
    port: int
    username: Optional[str]
    password: Optional[str]
    to_email: Optional[str]
    from_email: Optional[str] = None

    def is_complete(self) -> bool:
        return all([self.host, self.username, self.password, self.to_email])


@dataclass
class ReminderConfig:
    """Reminder checker configuration."""
    interval_minutes: int = 30
    lookahead_hours: int = 24
    notified_ttl_hours: int = 48
    auto_close_seconds: float = 8.0


@dataclass
class NotificationConfig:
    """Notification delivery configuration."""
    method: str = "console"  # "console", "sms" or "email"
    twilio: Optional[TwilioConfig] = None
    smtp: Optional[SMTPConfig] = None


@dataclass
class AppConfig:
    """Complete application configuration."""
    db_path: str
    timezone: Optional[str]  # IANA name; None means the system local zone
    backend: BackendConfig
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)


def _int_env(key: str, default: int) -> int:
    """Parse an integer environment variable."""
    value = os.getenv(key, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {key} must be an integer, got {value!r}")


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Raises:
        ValueError: If required configuration values are missing.
    """
    # Backend
    backend_url = os.getenv("SUPABASE_URL")
    backend_key = os.getenv("SUPABASE_ANON_KEY")

    missing = []
    if not backend_url:
        missing.append("SUPABASE_URL")
    if not backend_key:
        missing.append("SUPABASE_ANON_KEY")
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    # Local state
    db_path = os.getenv("DB_PATH", "uni_tracker_state.db")
    timezone_name = os.getenv("TIMEZONE") or None

    # Reminder checker
    reminders = ReminderConfig(
        interval_minutes=_int_env("REMINDER_INTERVAL_MINUTES", 30),
        lookahead_hours=_int_env("REMINDER_LOOKAHEAD_HOURS", 24),
        notified_ttl_hours=_int_env("NOTIFIED_TTL_HOURS", 48),
        auto_close_seconds=float(os.getenv("NOTIFICATION_AUTO_CLOSE_SECONDS", "8")),
    )

    # Notification channels (both optional; a channel without credentials is "unsupported")
    twilio = TwilioConfig(
        account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        from_number=os.getenv("TWILIO_FROM_NUMBER"),
        to_number=os.getenv("TWILIO_TO_NUMBER"),
    )
    smtp = SMTPConfig(
        host=os.getenv("SMTP_HOST"),
        port=_int_env("SMTP_PORT", 587),
        username=os.getenv("SMTP_USERNAME"),
        password=os.getenv("SMTP_PASSWORD"),
        to_email=os.getenv("NOTIFICATION_EMAIL"),
        from_email=os.getenv("SMTP_FROM_EMAIL"),
    )
    method = os.getenv("NOTIFICATION_METHOD", "console").lower()
    if method not in ("console", "sms", "email"):
        raise ValueError(
            f"NOTIFICATION_METHOD must be 'console', 'sms' or 'email', got {method!r}"
        )

    return AppConfig(
        db_path=db_path,
        timezone=timezone_name,
        backend=BackendConfig(
            url=backend_url.rstrip("/"),
            anon_key=backend_key,
        ),
        reminders=reminders,
        notification=NotificationConfig(
            method=method,
            twilio=twilio,
            smtp=smtp,
        ),
    )
