"""
Centralized configuration with environment variable overrides.

Opening hours, booking policy windows, payment keys and storage settings
are configurable here. Nothing is hardcoded in scheduling or payment logic.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import time

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Narrowest reminder window is the 2h reminder: (1.5h, 2h]
NARROWEST_REMINDER_WINDOW_MINUTES = 30


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_time(env_var: str, default: str) -> time:
    """Parse an HH:MM wall-clock time from an env var."""
    raw = os.getenv(env_var, default)
    try:
        hours, minutes = raw.split(":")
        return time(int(hours), int(minutes))
    except (ValueError, TypeError, AttributeError):
        raise ValueError(
            f"Invalid HH:MM time for {env_var}: {raw!r}"
        ) from None


def _safe_weekdays(env_var: str, default: str) -> frozenset[int]:
    """Parse a comma separated list of weekday numbers (Monday=0)."""
    raw = os.getenv(env_var, default)
    try:
        return frozenset(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid weekday list for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a true/false flag from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class BusinessConfig:
    """Salon opening hours and booking policy."""

    name: str = os.getenv("BUSINESS_NAME", "Meghan Hair Studio")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "America/New_York")
    business_days: frozenset[int] = _safe_weekdays("BUSINESS_DAYS", "1,2,3,4,5")
    opening_time: time = _safe_time("OPENING_TIME", "09:00")
    closing_time: time = _safe_time("CLOSING_TIME", "18:00")
    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "30")
    buffer_minutes: int = _safe_int("BOOKING_BUFFER_MINUTES", "15")
    default_duration_minutes: int = _safe_int("DEFAULT_DURATION_MINUTES", "60")
    cancellation_window_hours: int = _safe_int("CANCELLATION_WINDOW_HOURS", "24")
    currency: str = os.getenv("CURRENCY", "usd")

    @property
    def business_days_label(self) -> str:
        return ", ".join(DAY_NAMES[d] for d in sorted(self.business_days))

    @property
    def business_hours_label(self) -> str:
        return f"{self.opening_time:%H:%M} - {self.closing_time:%H:%M}"


@dataclass(frozen=True)
class ReminderConfig:
    """Cadence of the external reminder sweep."""

    poll_interval_minutes: int = _safe_int("REMINDER_POLL_MINUTES", "5")
    lookahead_hours: int = _safe_int("REMINDER_LOOKAHEAD_HOURS", "25")


@dataclass(frozen=True)
class PaymentConfig:
    """Payment provider credentials."""

    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")


@dataclass(frozen=True)
class StorageConfig:
    """Document database connection. A blank URL selects the in-memory store."""

    mongodb_url: str = os.getenv("MONGODB_URL", "")
    database_name: str = os.getenv("MONGODB_DATABASE", "salon")
    server_selection_timeout_ms: int = _safe_int("MONGODB_TIMEOUT_MS", "5000")
    max_reservation_attempts: int = _safe_int("MAX_RESERVATION_ATTEMPTS", "5")


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-client request limits, counted in a ``limits`` storage backend."""

    enabled: bool = _safe_bool("RATE_LIMIT_ENABLED", "true")
    storage_uri: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    window_minutes: int = _safe_int("RATE_LIMIT_WINDOW_MINUTES", "15")
    requests_per_window: int = _safe_int("RATE_LIMIT_REQUESTS", "100")
    payment_attempts_per_window: int = _safe_int("RATE_LIMIT_PAYMENT_ATTEMPTS", "10")
    trust_forwarded_for: bool = _safe_bool("RATE_LIMIT_TRUST_FORWARDED_FOR", "false")


@dataclass(frozen=True)
class AuthConfig:
    """Static API tokens in the form ``token:role[:email]``, comma separated."""

    api_tokens: str = os.getenv("API_TOKENS", "")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = _safe_int("PORT", "8000")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5500")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    business = config.business
    if not business.business_days:
        raise ValueError("BUSINESS_DAYS must name at least one weekday")
    if any(d < 0 or d > 6 for d in business.business_days):
        raise ValueError(
            f"BUSINESS_DAYS must be weekday numbers 0-6, got {sorted(business.business_days)}"
        )
    if business.opening_time >= business.closing_time:
        raise ValueError(
            f"OPENING_TIME must be before CLOSING_TIME, got "
            f"{business.opening_time:%H:%M} >= {business.closing_time:%H:%M}"
        )
    if business.slot_step_minutes < 1:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be >= 1, got {business.slot_step_minutes}"
        )
    if business.buffer_minutes < 0:
        raise ValueError(
            f"BOOKING_BUFFER_MINUTES must be >= 0, got {business.buffer_minutes}"
        )
    if not 15 <= business.default_duration_minutes <= 480:
        raise ValueError(
            "DEFAULT_DURATION_MINUTES must be between 15 and 480, "
            f"got {business.default_duration_minutes}"
        )
    if business.cancellation_window_hours < 0:
        raise ValueError(
            "CANCELLATION_WINDOW_HOURS must be >= 0, "
            f"got {business.cancellation_window_hours}"
        )
    if len(business.currency) != 3:
        raise ValueError(f"CURRENCY must be a 3-letter code, got {business.currency!r}")

    poll = config.reminders.poll_interval_minutes
    if not 1 <= poll < NARROWEST_REMINDER_WINDOW_MINUTES:
        raise ValueError(
            "REMINDER_POLL_MINUTES must be between 1 and "
            f"{NARROWEST_REMINDER_WINDOW_MINUTES - 1} so no reminder window is skipped, "
            f"got {poll}"
        )
    if config.reminders.lookahead_hours < 24:
        raise ValueError(
            f"REMINDER_LOOKAHEAD_HOURS must be >= 24, got {config.reminders.lookahead_hours}"
        )

    if config.storage.server_selection_timeout_ms < 1:
        raise ValueError(
            "MONGODB_TIMEOUT_MS must be >= 1, "
            f"got {config.storage.server_selection_timeout_ms}"
        )
    if config.storage.max_reservation_attempts < 1:
        raise ValueError(
            "MAX_RESERVATION_ATTEMPTS must be >= 1, "
            f"got {config.storage.max_reservation_attempts}"
        )
    limits = config.rate_limit
    if limits.window_minutes < 1:
        raise ValueError(f"RATE_LIMIT_WINDOW_MINUTES must be >= 1, got {limits.window_minutes}")
    if limits.requests_per_window < 1 or limits.payment_attempts_per_window < 1:
        raise ValueError(
            "RATE_LIMIT_REQUESTS and RATE_LIMIT_PAYMENT_ATTEMPTS must be >= 1, "
            f"got {limits.requests_per_window} and {limits.payment_attempts_per_window}"
        )
    if not 1 <= config.api_port <= 65535:
        raise ValueError(f"PORT must be between 1 and 65535, got {config.api_port}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
