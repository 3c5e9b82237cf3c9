"""
Centralized configuration with environment variable overrides.

Booking ceilings, reschedule policy, reminder lead times and notification
retry budgets are all configurable here. Per-provider values stored on the
provider record take precedence over these defaults.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 480


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BookingConfig:
    """Defaults for slot generation, daily ceilings and reschedule policy."""

    default_slot_duration: int = _safe_int("DEFAULT_SLOT_DURATION", "60")
    max_provider_per_day: int = _safe_int("MAX_PROVIDER_APPOINTMENTS_PER_DAY", "10")
    max_user_per_day: int = _safe_int("MAX_USER_APPOINTMENTS_PER_DAY", "5")
    reschedule_limit: int = _safe_int("RESCHEDULE_LIMIT", "2")
    late_reschedule_hours: int = _safe_int("LATE_RESCHEDULE_HOURS", "24")
    cancellation_notice_hours: int = _safe_int("CANCELLATION_NOTICE_HOURS", "24")
    conflict_retries: int = _safe_int("BOOKING_RETRY_ATTEMPTS", "1")


@dataclass(frozen=True)
class ReminderConfig:
    """Lead window and polling cadence for the reminder scan."""

    lead_min_minutes: int = _safe_int("REMINDER_LEAD_MIN_MINUTES", "60")
    lead_max_minutes: int = _safe_int("REMINDER_LEAD_MAX_MINUTES", "120")
    poll_seconds: float = _safe_float("REMINDER_POLL_SECONDS", "60")
    enabled: bool = _safe_bool("REMINDERS_ENABLED", "true")


@dataclass(frozen=True)
class NotificationConfig:
    """Retry budget for outbound notification jobs."""

    max_attempts: int = _safe_int("NOTIFICATION_MAX_ATTEMPTS", "3")
    backoff_seconds: float = _safe_float("NOTIFICATION_BACKOFF_SECONDS", "2.0")
    reminder_max_attempts: int = _safe_int("REMINDER_MAX_ATTEMPTS", "2")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    booking: BookingConfig = field(default_factory=BookingConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "slotbook")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    booking = config.booking
    if not MIN_SLOT_DURATION <= booking.default_slot_duration <= MAX_SLOT_DURATION:
        raise ValueError(
            f"DEFAULT_SLOT_DURATION must be between {MIN_SLOT_DURATION} and "
            f"{MAX_SLOT_DURATION}, got {booking.default_slot_duration}"
        )
    for name, value in [
        ("MAX_PROVIDER_APPOINTMENTS_PER_DAY", booking.max_provider_per_day),
        ("MAX_USER_APPOINTMENTS_PER_DAY", booking.max_user_per_day),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")
    if booking.reschedule_limit < 0:
        raise ValueError(f"RESCHEDULE_LIMIT must be >= 0, got {booking.reschedule_limit}")
    if booking.late_reschedule_hours < 0:
        raise ValueError(
            f"LATE_RESCHEDULE_HOURS must be >= 0, got {booking.late_reschedule_hours}"
        )
    if booking.conflict_retries < 0:
        raise ValueError(f"BOOKING_RETRY_ATTEMPTS must be >= 0, got {booking.conflict_retries}")

    reminders = config.reminders
    if reminders.lead_min_minutes < 0:
        raise ValueError(
            f"REMINDER_LEAD_MIN_MINUTES must be >= 0, got {reminders.lead_min_minutes}"
        )
    if reminders.lead_max_minutes <= reminders.lead_min_minutes:
        raise ValueError(
            "REMINDER_LEAD_MAX_MINUTES must be greater than REMINDER_LEAD_MIN_MINUTES, "
            f"got {reminders.lead_max_minutes} <= {reminders.lead_min_minutes}"
        )
    if reminders.poll_seconds <= 0:
        raise ValueError(f"REMINDER_POLL_SECONDS must be > 0, got {reminders.poll_seconds}")

    notifications = config.notifications
    if notifications.max_attempts < 1:
        raise ValueError(
            f"NOTIFICATION_MAX_ATTEMPTS must be >= 1, got {notifications.max_attempts}"
        )
    if notifications.reminder_max_attempts < 1:
        raise ValueError(
            f"REMINDER_MAX_ATTEMPTS must be >= 1, got {notifications.reminder_max_attempts}"
        )
    if notifications.backoff_seconds < 0:
        raise ValueError(
            f"NOTIFICATION_BACKOFF_SECONDS must be >= 0, got {notifications.backoff_seconds}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
